"""Secret redaction for safe logging.

Request payloads, headers, and config dumps pass through here before they
reach a log line or the terminal. Matching is a case-insensitive substring
test on dict keys, applied recursively through nested dicts and lists.
"""

import re

_SENSITIVE_PATTERNS = frozenset({
    "token", "authorization", "secret", "password", "api_key", "credential",
})

_REDACTED = "***REDACTED***"

_BEARER_PATTERN = re.compile(r"(?i)Bearer\s+\S+")


def _is_sensitive_key(key: str) -> bool:
    """Check whether a dict key names a secret.

    Args:
        key: Dict key to check.

    Returns:
        True if the key contains any sensitive pattern.
    """
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in _SENSITIVE_PATTERNS)


def redact_for_logging(obj: dict) -> dict:
    """Return a copy of ``obj`` with secret values replaced.

    Args:
        obj: Dict to redact. Not mutated.

    Returns:
        New dict with sensitive values replaced by '***REDACTED***'.
    """
    result = {}
    for key, value in obj.items():
        if _is_sensitive_key(str(key)):
            result[key] = _REDACTED if value else value
        elif isinstance(value, dict):
            result[key] = redact_for_logging(value)
        elif isinstance(value, list):
            result[key] = [
                redact_for_logging(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value
    return result


def mask_secret(value: str | None, visible: int = 4) -> str:
    """Mask a secret for display, keeping only its last few characters.

    Args:
        value: Secret to mask.
        visible: Number of trailing characters to keep.

    Returns:
        Masked string like "***abcd", or "(not set)" when empty.
    """
    if not value:
        return "(not set)"
    if len(value) <= visible * 2:
        return "***"
    return "***" + value[-visible:]


def scrub_bearer(text: str) -> str:
    """Redact ``Bearer <token>`` fragments from free text."""
    return _BEARER_PATTERN.sub("Bearer " + _REDACTED, text)
