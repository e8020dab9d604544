"""Result and record types for object storage operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from ...constants import GRANTEE_CANONICAL_USER, GRANTEE_EMAIL, GRANTEE_GROUP
from ...exceptions import StorageError

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    """Three-way result of an operation."""

    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class Outcome(Generic[T]):
    """Tagged result: a payload, an explicit not-found, or a classified error."""

    status: OutcomeStatus
    value: T | None = None
    error: StorageError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> Outcome[T]:
        return cls(OutcomeStatus.OK, value=value)

    @classmethod
    def not_found(cls) -> Outcome[T]:
        return cls(OutcomeStatus.NOT_FOUND)

    @classmethod
    def failure(cls, error: StorageError) -> Outcome[T]:
        return cls(OutcomeStatus.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def is_not_found(self) -> bool:
        return self.status is OutcomeStatus.NOT_FOUND

    @property
    def is_error(self) -> bool:
        return self.status is OutcomeStatus.ERROR

    def unwrap(self) -> T | None:
        """Return the payload, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass
class Owner:
    """Bucket or object owner."""

    id: str
    display_name: str = ""


@dataclass
class BucketInfo:
    name: str
    created: datetime | None = None


@dataclass
class BucketList:
    """Result of listing all buckets of the account."""

    owner: Owner | None = None
    buckets: list[BucketInfo] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [bucket.name for bucket in self.buckets]


@dataclass
class ObjectSummary:
    """One entry of a bucket listing."""

    key: str
    last_modified: datetime | None
    size: int
    etag: str


@dataclass
class BucketListing:
    """Bucket contents in server order.

    ``objects`` is keyed by object key, so keys are unique; insertion order
    follows the responses page after page. ``next_marker`` is set only when
    the listing stopped on a truncated page (an explicit ``max_keys`` cap).
    """

    objects: dict[str, ObjectSummary] = field(default_factory=dict)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False
    next_marker: str | None = None

    def __len__(self) -> int:
        return len(self.objects)

    @property
    def keys(self) -> list[str]:
        return list(self.objects)


@dataclass
class ObjectInfo:
    """Object metadata taken from response headers."""

    size: int | None = None
    etag: str | None = None
    content_type: str | None = None
    last_modified: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ObjectData:
    """A downloaded object; ``body`` is None when written to a sink."""

    info: ObjectInfo
    body: bytes | None = None


@dataclass
class PutObjectResult:
    size: int
    etag: str | None = None


@dataclass
class CopyResult:
    last_modified: datetime | None
    etag: str


@dataclass
class Grant:
    """One access grant.

    Exactly one identifier applies, chosen by ``grantee_type``: ``id`` for
    CanonicalUser, ``email`` for AmazonCustomerByEmail, ``uri`` for Group.
    """

    grantee_type: str
    permission: str
    id: str | None = None
    display_name: str | None = None
    email: str | None = None
    uri: str | None = None

    @property
    def identifier(self) -> str | None:
        if self.grantee_type == GRANTEE_CANONICAL_USER:
            return self.id
        if self.grantee_type == GRANTEE_EMAIL:
            return self.email
        if self.grantee_type == GRANTEE_GROUP:
            return self.uri
        return None

    @classmethod
    def canonical_user(cls, id: str, permission: str, display_name: str | None = None) -> Grant:
        return cls(GRANTEE_CANONICAL_USER, permission, id=id, display_name=display_name)

    @classmethod
    def by_email(cls, email: str, permission: str) -> Grant:
        return cls(GRANTEE_EMAIL, permission, email=email)

    @classmethod
    def group(cls, uri: str, permission: str) -> Grant:
        return cls(GRANTEE_GROUP, permission, uri=uri)


@dataclass
class AccessControlPolicy:
    owner: Owner
    grants: list[Grant] = field(default_factory=list)

    def has_grant(self, grantee_type: str, identifier: str, permission: str) -> bool:
        return any(
            g.grantee_type == grantee_type and g.identifier == identifier and g.permission == permission
            for g in self.grants
        )


@dataclass
class BucketLoggingStatus:
    target_bucket: str | None = None
    target_prefix: str | None = None

    @property
    def enabled(self) -> bool:
        return self.target_bucket is not None


@dataclass
class Distribution:
    """CloudFront distribution state plus its concurrency token (``etag``)."""

    origin: str
    id: str | None = None
    status: str | None = None
    domain: str | None = None
    last_modified: datetime | None = None
    caller_reference: str | None = None
    enabled: bool = True
    origin_access_identity: str | None = None
    default_root_object: str | None = None
    cnames: list[str] = field(default_factory=list)
    trusted_signers: dict[str, str] = field(default_factory=dict)
    comment: str | None = None
    etag: str | None = None


@dataclass
class OriginAccessIdentity:
    id: str
    s3_canonical_user_id: str


@dataclass
class ValidationReport:
    """Connectivity probe result handed to the admin layer."""

    ok: bool
    message: str
    missing_count: int | None = None
    sending_count: int | None = None
