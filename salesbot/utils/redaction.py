"""Secret masking for logs, error text and list responses.

Webhook secrets are returned in cleartext exactly once, in the creation
response. Everywhere else (logs, list endpoints, delivery error text) they
pass through these helpers first.
"""

import re

_DEFAULT_SENSITIVE_PATTERNS = frozenset({
    "secret", "token", "signature", "authorization", "api_key", "password",
    "access_token",
})

_REDACTED = "***REDACTED***"
_VISIBLE_SUFFIX = 4

_SENSITIVE_KEYWORDS = r"secret|token|signature|password|api_key|access_token|authorization"
_SENSITIVE_VALUE_PATTERNS = re.compile(
    r"(?i)"
    r"(?:"
    r"Authorization\s*:\s*Bearer\s+\S+"
    r"|"
    r'"(?:' + _SENSITIVE_KEYWORDS + r')"\s*:\s*"[^"]*"'
    r"|"
    r"(?:" + _SENSITIVE_KEYWORDS + r")\s*[=:]\s*\S+"
    r")",
)


def mask_secret(secret: str | None) -> str | None:
    """Show only the last four characters of a secret.

    Args:
        secret: Cleartext secret (None passes through).

    Returns:
        '****' followed by the final four characters, or '****' for short values.
    """
    if secret is None:
        return None
    if len(secret) <= _VISIBLE_SUFFIX * 2:
        return "****"
    return "****" + secret[-_VISIBLE_SUFFIX:]


def _is_sensitive_key(key: str, sensitive_patterns: frozenset[str]) -> bool:
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in sensitive_patterns)


def redact_for_logging(
    obj: dict,
    sensitive_patterns: frozenset[str] = _DEFAULT_SENSITIVE_PATTERNS,
) -> dict:
    """Copy ``obj`` with sensitive values replaced, recursing into dicts and lists.

    Args:
        obj: Dict to redact (not mutated).
        sensitive_patterns: Case-insensitive substrings marking sensitive keys.

    Returns:
        Redacted copy.
    """
    result = {}
    for key, value in obj.items():
        if _is_sensitive_key(key, sensitive_patterns):
            result[key] = _REDACTED
        elif isinstance(value, dict):
            result[key] = redact_for_logging(value, sensitive_patterns)
        elif isinstance(value, list):
            result[key] = [
                redact_for_logging(item, sensitive_patterns) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


def sanitize_error_message(msg: str | None, max_length: int = 500) -> str | None:
    """Redact key=value style secrets in free text and truncate it."""
    if msg is None:
        return None
    sanitized = _SENSITIVE_VALUE_PATTERNS.sub(_REDACTED, msg)
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length - 3] + "..."
    return sanitized
