"""Structured logging configuration for the storage client."""

import json
import logging
import sys
from typing import Any

from .utils.errors import sanitize_headers


def setup_structured_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def log_request_event(
    logger: logging.Logger,
    operation: str,
    method: str,
    host: str,
    path: str,
    status: int,
    duration_ms: float,
    **kwargs: Any,
) -> None:
    """Log one HTTP exchange as a JSON line at DEBUG level."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    log_data = {
        "operation": operation,
        "method": method,
        "host": host,
        "path": path,
        "status": status,
        "duration_ms": round(duration_ms, 2),
    }
    headers = kwargs.pop("headers", None)
    if headers:
        log_data["headers"] = sanitize_headers(headers)
    log_data.update(kwargs)
    logger.debug(json.dumps(sanitize_secrets(log_data), default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Remove secret fields from log data."""
    secret_fields = {"access_key", "secret_key", "signing_key", "password", "authorization", "signature"}
    sanitized = log_data.copy()
    for field in secret_fields:
        if field in sanitized:
            sanitized[field] = "***REDACTED***"
    return sanitized
