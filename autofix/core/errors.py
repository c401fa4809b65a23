"""
Error taxonomy for the patch lifecycle service.
Every domain failure maps to one HTTP status and a JSON body carrying an `error` field.
"""

from typing import Any, Dict, Optional


class AutofixError(Exception):
    """Base class for all domain errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body returned by the HTTP layer."""
        return {"error": self.message}


class InvalidRepositoryURL(AutofixError):
    status_code = 400

    def __init__(self, repo_url: str):
        super().__init__(f"Invalid GitHub URL: {repo_url}")
        self.repo_url = repo_url


class MissingRepository(AutofixError):
    status_code = 400

    def __init__(self):
        super().__init__("repoUrl required")


class MalformedGenerationResponse(AutofixError):
    status_code = 502

    def __init__(self, reason: str, raw: str = ""):
        super().__init__(f"Malformed generation response: {reason}")
        self.reason = reason
        self.raw = raw


class GenerationFailed(AutofixError):
    """The generative collaborator call itself failed (transport, SDK or model error)."""

    status_code = 502


class GenerationUnavailable(AutofixError):
    status_code = 503


class QuotaExceeded(AutofixError):
    status_code = 429

    def __init__(self, retry_after: int, original: str = ""):
        super().__init__(original or "QuotaExceeded")
        self.retry_after = retry_after
        self.original = original

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "quotaExceeded": True,
            "retryAfter": self.retry_after,
            "message": "Generation quota exceeded. Please retry after the specified delay or use demo edits.",
        }


class HostAPIFailure(AutofixError):
    """A branch, commit, PR or check-run call to the hosting API returned non-2xx."""

    status_code = 502

    def __init__(self, operation: str, status: int, body: str = ""):
        super().__init__(f"{operation} failed: {status} {body}".strip())
        self.operation = operation
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "upstreamStatus": self.status,
            "upstreamBody": self.body,
        }


class HostCredentialMissing(AutofixError):
    status_code = 500

    def __init__(self):
        super().__init__("GITHUB_TOKEN missing on server.")


class AutoPublishDisabled(AutofixError):
    status_code = 501

    def __init__(self):
        super().__init__("AUTO_PR not enabled on server.")


class NotFound(AutofixError):
    status_code = 404

    def __init__(self, kind: str, item_id: Optional[str] = None):
        super().__init__(f"{kind} not found")
        self.kind = kind
        self.item_id = item_id


class NotPending(AutofixError):
    status_code = 400

    def __init__(self, proposal_id: str, status: str):
        super().__init__("proposal not pending")
        self.proposal_id = proposal_id
        self.status = status


class NotSigned(AutofixError):
    status_code = 404

    def __init__(self, patch_id: str):
        super().__init__("patch not signed")
        self.patch_id = patch_id


class AdminUnauthorized(AutofixError):
    status_code = 403

    def __init__(self):
        super().__init__("admin key missing or invalid")


class StoreError(AutofixError):
    status_code = 500
