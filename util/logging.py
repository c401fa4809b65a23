"""
Structured logging for scan, publish, approval and signing operations.
"""

import logging
from typing import Any, Dict, List, Optional

SENSITIVE_FIELDS = ['updatedContent', 'updated_content', 'content', 'token', 'secret', 'signing_key', 'admin_key']


class StructuredLogger:
    """Structured logger for patch lifecycle operations."""

    def __init__(self, name: str = "autofix"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def set_level(self, level: str) -> None:
        """Apply a level name such as 'DEBUG' or 'WARNING'."""
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        self.logger.log(level, message)

    def log_scan(self, repo_url: str, mode: str, status: str, details: Dict[str, Any] = None):
        """Log a scan request moving through the pipeline."""
        log_details = {"repo_url": repo_url, "mode": mode}
        if details:
            log_details.update(details)
        level = logging.WARNING if status in ("failed", "quota_exceeded") else logging.INFO
        self.log_operation("scan", status, log_details, level)

    def log_patch_persisted(self, patch_id: str, repo_url: str, source: str, edit_count: int, demo_fallback: bool = False):
        """Log a patch record appended to the audit store."""
        self.log_operation("patch.persisted", "success", {
            "patch_id": patch_id,
            "repo_url": repo_url,
            "source": source,
            "edit_count": edit_count,
            "demo_fallback": demo_fallback,
        })

    def log_publish_step(self, step: str, repo: str, status: str = "success", details: Dict[str, Any] = None):
        """Log one branch/commit/PR call made against the hosting API."""
        log_details = {"repo": repo}
        if details:
            log_details.update(details)
        level = logging.ERROR if status == "failed" else logging.INFO
        self.log_operation(f"publish.{step}", status, log_details, level)

    def log_proposal_decision(self, proposal_id: str, decision: str, repo_url: str, pr_url: Optional[str] = None):
        """Log a proposal approval or rejection."""
        log_details = {"proposal_id": proposal_id, "repo_url": repo_url}
        if pr_url:
            log_details["pr_url"] = pr_url
        self.log_operation("proposal.decision", decision, log_details)

    def log_signing(self, patch_id: str, signer: str, ephemeral_key: bool):
        """Log a patch signature being attached."""
        self.log_operation("patch.signed", "success", {
            "patch_id": patch_id,
            "signer": signer,
            "ephemeral_key": ephemeral_key,
        })

    def log_autoscan_repo(self, repo_url: str, outcome: str, details: Dict[str, Any] = None):
        """Log the outcome of one repository inside an autoscan pass."""
        log_details = {"repo_url": repo_url}
        if details:
            log_details.update(details)
        level = logging.ERROR if outcome == "failed" else logging.INFO
        self.log_operation("autoscan.repo", outcome, log_details, level)

    def log_admin_access(self, path: str, granted: bool, reason: str = ""):
        """Log an admin-gated request."""
        details = {"path": path}
        if reason:
            details["reason"] = reason
        level = logging.INFO if granted else logging.WARNING
        self.log_operation("admin.access", "granted" if granted else "denied", details, level)

    def log_config_issues(self, issues: List[str]):
        for issue in issues:
            self.logger.warning(f"Configuration: {issue}")

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)

    def exception(self, message: str) -> None:
        """Log an error message with the active traceback."""
        self.logger.exception(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
