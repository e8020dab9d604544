"""Object store interface used by the file-system layer."""

from __future__ import annotations

import threading
from typing import IO, Protocol

from .models import BucketListing, ObjectData, ObjectInfo, Outcome, PutObjectResult


class ObjectStore(Protocol):
    """Protocol defining the file-system facing storage operations."""

    def put_bytes(self, name: str, data: bytes) -> Outcome[PutObjectResult]:
        """Store an in-memory payload under ``name``."""
        ...

    def put_file(self, name: str, path: str, cancel: threading.Event | None = None) -> Outcome[PutObjectResult]:
        """Upload a local file."""
        ...

    def put_stream(
        self,
        name: str,
        stream: IO[bytes],
        size: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[PutObjectResult]:
        """Upload from an open binary stream."""
        ...

    def get_bytes(self, name: str) -> Outcome[ObjectData]:
        """Download into memory."""
        ...

    def get_to_file(self, name: str, path: str, cancel: threading.Event | None = None) -> Outcome[ObjectData]:
        """Download into a local file."""
        ...

    def get_to_stream(
        self,
        name: str,
        stream: IO[bytes],
        cancel: threading.Event | None = None,
    ) -> Outcome[ObjectData]:
        """Download into a writable stream."""
        ...

    def delete(self, name: str) -> Outcome[bool]:
        """Delete an object."""
        ...

    def stat(self, name: str) -> Outcome[ObjectInfo]:
        """Fetch object metadata; not-found is a distinct outcome."""
        ...

    def exists(self, name: str) -> bool:
        """Check if an object exists; a failed check raises StorageError."""
        ...

    def list(self, prefix: str = "") -> Outcome[BucketListing]:
        """List objects under a prefix."""
        ...

    def test_connectivity(self) -> bool:
        """Test connectivity to the backend."""
        ...
