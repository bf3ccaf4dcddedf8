"""
Credential redaction for log output
"""
from collections.abc import Mapping
from typing import Any

SENSITIVE_KEYS = frozenset(
    {
        "secret",
        "token",
        "api_key",
        "apikey",
        "password",
        "signature",
        "authorization",
    }
)

REDACTED = "***REDACTED***"


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace('-', '_')
    return any(sensitive in normalized for sensitive in SENSITIVE_KEYS)


def redact_sensitive(data: Any) -> Any:
    """Copy of ``data`` with secret-looking keys masked, at any depth"""
    if isinstance(data, Mapping):
        return {
            key: REDACTED if _is_sensitive_key(str(key)) else redact_sensitive(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data
