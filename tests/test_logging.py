"""
Structured logger output and payload redaction.
"""

import logging

from util.logging import StructuredLogger, sanitize_payload


class TestSanitizePayload:

    def test_redacts_sensitive_fields(self):
        payload = {"path": "a.js", "updatedContent": "secret code", "nested": {"token": "ghp_x"}}
        assert sanitize_payload(payload) == {
            "path": "a.js",
            "updatedContent": "[REDACTED]",
            "nested": {"token": "[REDACTED]"},
        }

    def test_reveal_sensitive(self):
        assert sanitize_payload({"token": "t"}, reveal_sensitive=True) == {"token": "t"}

    def test_truncates_long_strings(self):
        sanitized = sanitize_payload(["x" * 150])
        assert sanitized[0] == "x" * 100 + "..."


class TestStructuredLogger:

    def test_log_operation_includes_sanitized_details(self, caplog):
        structured = StructuredLogger("autofix.test")
        with caplog.at_level(logging.INFO, logger="autofix.test"):
            structured.log_operation("publish", "success", {"repo": "acme/widgets", "token": "t"})

        message = caplog.records[-1].getMessage()
        assert "Operation: publish, Status: success" in message
        assert "acme/widgets" in message
        assert "[REDACTED]" in message

    def test_failed_scan_logged_as_warning(self, caplog):
        structured = StructuredLogger("autofix.test")
        with caplog.at_level(logging.INFO, logger="autofix.test"):
            structured.log_scan("https://github.com/acme/widgets", "autofix", "failed")
        assert caplog.records[-1].levelno == logging.WARNING

    def test_set_level(self):
        structured = StructuredLogger("autofix.test.level")
        structured.set_level("warning")
        assert structured.logger.level == logging.WARNING
        structured.set_level("bogus")
        assert structured.logger.level == logging.INFO
