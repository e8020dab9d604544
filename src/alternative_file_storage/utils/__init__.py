"""Utility functions for the storage client."""

from .errors import sanitize_dict, sanitize_error_message, sanitize_exception, sanitize_headers
from .mime import DEFAULT_CONTENT_TYPE, guess_content_type

__all__ = [
    "sanitize_dict",
    "sanitize_error_message",
    "sanitize_exception",
    "sanitize_headers",
    "guess_content_type",
    "DEFAULT_CONTENT_TYPE",
]
