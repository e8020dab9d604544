"""S3-compatible object storage client for the alternative file system."""

from .config import ProxyConfig, StorageConfig, load_signing_key
from .exceptions import (
    ConfigurationError,
    ErrorKind,
    InputError,
    ParseError,
    PreconditionFailedError,
    ProtocolError,
    StorageError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "StorageConfig",
    "ProxyConfig",
    "load_signing_key",
    "ErrorKind",
    "StorageError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "PreconditionFailedError",
    "ParseError",
    "InputError",
]
