"""Tests for secret masking and redaction helpers."""

from salesbot.utils.redaction import mask_secret, redact_for_logging, sanitize_error_message


class TestMaskSecret:
    """mask_secret reveals only the tail."""

    def test_long_secret(self):
        secret = "a" * 60 + "beef"
        assert mask_secret(secret) == "****beef"

    def test_short_secret_fully_masked(self):
        assert mask_secret("abcd1234") == "****"

    def test_none_passes_through(self):
        assert mask_secret(None) is None


class TestRedactForLogging:
    """redact_for_logging replaces sensitive keys recursively."""

    def test_nested(self):
        payload = {
            "url": "https://hooks.example.com",
            "secret": "s3cr3t",
            "headers": {"X-Webhook-Signature": "abc", "Content-Type": "application/json"},
            "targets": [{"access_token": "tok", "id": 1}],
        }

        redacted = redact_for_logging(payload)

        assert redacted["url"] == "https://hooks.example.com"
        assert redacted["secret"] == "***REDACTED***"
        assert redacted["headers"]["X-Webhook-Signature"] == "***REDACTED***"
        assert redacted["headers"]["Content-Type"] == "application/json"
        assert redacted["targets"][0] == {"access_token": "***REDACTED***", "id": 1}
        assert payload["secret"] == "s3cr3t"


class TestSanitizeErrorMessage:
    """sanitize_error_message scrubs free text."""

    def test_key_value_secrets(self):
        msg = "request to https://x.example.com?token=abc123 failed"
        assert "abc123" not in sanitize_error_message(msg)

    def test_bearer_header(self):
        assert "xyz" not in sanitize_error_message("Authorization: Bearer xyz")

    def test_truncates(self):
        result = sanitize_error_message("x" * 1000, max_length=50)
        assert len(result) == 50
        assert result.endswith("...")

    def test_none(self):
        assert sanitize_error_message(None) is None
