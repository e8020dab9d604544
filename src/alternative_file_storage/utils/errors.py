"""Sanitization utilities to keep credentials out of logs and errors."""

import re
from typing import Any, Mapping

# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"(Signature=)([^&\s]+)",
    r"(AWS [A-Za-z0-9]+:)([A-Za-z0-9/+=]+)",
    r"(secret[_\s]?key[=:\s]+)([^\s,;&\)]+)",
    r"(secret[_\s]?access[_\s]?key[=:\s]+)([^\s,;&\)]+)",
    r"(password[=:\s]+)([^\s,;&\)]+)",
    r"(://[^:/@\s]+:)([^@\s]+)(@)",
]

SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "x-amz-security-token"}

# Fields to redact completely
SENSITIVE_FIELDS = {
    "secret_key",
    "secret_access_key",
    "signing_key",
    "password",
    "signature",
    "authorization",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize a message to remove credentials and signatures.

    Args:
        message: Original message

    Returns:
        Sanitized message with sensitive values redacted
    """
    sanitized = message
    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(1) + "[REDACTED]" + (m.group(3) if m.lastindex and m.lastindex >= 3 else ""),
            sanitized,
            flags=re.IGNORECASE,
        )
    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


def sanitize_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    """Redact authorization style headers."""
    return {
        name: "[REDACTED]" if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers.items()
    }


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        if key.lower() in all_sensitive:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
