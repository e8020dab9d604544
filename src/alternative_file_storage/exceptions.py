"""Error taxonomy for storage operations."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a failed storage call."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    PARSE = "parse"
    INPUT = "input"
    PRECONDITION = "precondition"


class StorageError(Exception):
    """Base storage exception.

    Attributes:
        kind: Taxonomy entry
        message: Human readable message (provider message when available)
        status: HTTP status, 0 when no response was received
        code: Provider error code, or the numeric status as a string
    """

    kind = ErrorKind.PROTOCOL

    def __init__(self, message: str, status: int = 0, code: str | None = None) -> None:
        self.message = message
        self.status = status
        self.code = code if code is not None else str(status)
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigurationError(StorageError):
    """Credentials or settings are unusable."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str) -> None:
        super().__init__(message, status=0, code="ConfigurationError")


class TransportError(StorageError):
    """Connection, TLS, proxy or DNS failure; no HTTP status was received."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, code: str = "TransportError") -> None:
        super().__init__(message, status=0, code=code)


class ProtocolError(StorageError):
    """Response status outside the operation's accepted set."""

    kind = ErrorKind.PROTOCOL


class PreconditionFailedError(ProtocolError):
    """Stale concurrency token (If-Match rejected)."""

    kind = ErrorKind.PRECONDITION


class ParseError(StorageError):
    """Malformed or unexpected response body."""

    kind = ErrorKind.PARSE


class InputError(StorageError):
    """Caller supplied parameters cannot form a valid request."""

    kind = ErrorKind.INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message, status=0, code="InputError")
