"""Object store bound to one bucket and a path prefix."""

from __future__ import annotations

import logging
import threading
from typing import IO

from ...exceptions import StorageError
from .client import S3Client
from .models import BucketListing, ObjectData, ObjectInfo, ObjectSummary, Outcome, PutObjectResult
from .request import ObjectInput

logger = logging.getLogger(__name__)


class PrefixedObjectStore:
    """ObjectStore implementation over S3Client.

    Object names are relative to ``prefix``; listings strip it again so
    callers only ever see their own names.
    """

    def __init__(self, client: S3Client, bucket: str, prefix: str = "") -> None:
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""

    def key(self, name: str) -> str:
        return self.prefix + name.lstrip("/")

    def put_bytes(self, name: str, data: bytes) -> Outcome[PutObjectResult]:
        return self.client.put_object(self.bucket, self.key(name), ObjectInput.from_bytes(data))

    def put_file(self, name: str, path: str, cancel: threading.Event | None = None) -> Outcome[PutObjectResult]:
        return self.client.put_object_file(self.bucket, self.key(name), path, cancel=cancel)

    def put_stream(
        self,
        name: str,
        stream: IO[bytes],
        size: int | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[PutObjectResult]:
        return self.client.put_object_stream(self.bucket, self.key(name), stream, size, cancel=cancel)

    def get_bytes(self, name: str) -> Outcome[ObjectData]:
        return self.client.get_object(self.bucket, self.key(name))

    def get_to_file(self, name: str, path: str, cancel: threading.Event | None = None) -> Outcome[ObjectData]:
        return self.client.get_object_to_file(self.bucket, self.key(name), path, cancel)

    def get_to_stream(
        self,
        name: str,
        stream: IO[bytes],
        cancel: threading.Event | None = None,
    ) -> Outcome[ObjectData]:
        return self.client.get_object_to_stream(self.bucket, self.key(name), stream, cancel)

    def delete(self, name: str) -> Outcome[bool]:
        return self.client.delete_object(self.bucket, self.key(name))

    def stat(self, name: str) -> Outcome[ObjectInfo]:
        return self.client.get_object_info(self.bucket, self.key(name))

    def exists(self, name: str) -> bool:
        """Check if an object exists.

        Raises:
            StorageError: If the check itself failed; use ``stat`` to get the
                failure as an Outcome instead
        """
        outcome = self.stat(name)
        if outcome.error is not None:
            raise outcome.error
        return outcome.ok

    def list(self, prefix: str = "") -> Outcome[BucketListing]:
        outcome = self.client.get_bucket(self.bucket, prefix=self.key(prefix) or None)
        listing = outcome.value
        if listing is None or not self.prefix:
            return outcome

        relative = BucketListing()
        for key, summary in listing.objects.items():
            name = key[len(self.prefix):]
            relative.objects[name] = ObjectSummary(name, summary.last_modified, summary.size, summary.etag)
        return Outcome.success(relative)

    def test_connectivity(self) -> bool:
        """Test connectivity by listing at most one key."""
        try:
            return self.client.get_bucket(self.bucket, prefix=self.prefix or None, max_keys=1).ok
        except StorageError as e:
            logger.warning(f"Connectivity test failed for bucket {self.bucket}: {e}")
            return False
