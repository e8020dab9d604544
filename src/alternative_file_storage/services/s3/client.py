"""S3 REST client implementation."""

from __future__ import annotations

import logging
import threading
import time
from email.utils import parsedate_to_datetime
from typing import IO, Any, Callable, Mapping
from urllib.parse import quote

import requests

from ... import metrics
from ...config import StorageConfig
from ...constants import (
    ACL_PRIVATE,
    AMZ_META_PREFIX,
    GRANTEE_GROUP,
    LOG_DELIVERY_GROUP_URI,
    MISSING_INPUT_MESSAGE,
    PARSE_ERROR_CODE,
    SSE_NONE,
    STORAGE_CLASS_STANDARD,
)
from ...exceptions import InputError, ParseError, StorageError
from . import presign
from .models import (
    AccessControlPolicy,
    BucketList,
    BucketListing,
    BucketLoggingStatus,
    CopyResult,
    Grant,
    ObjectData,
    ObjectInfo,
    Outcome,
    PutObjectResult,
)
from .request import AUTH_ANONYMOUS, ObjectInput, PendingRequest, RequestExecutor, execute_request
from .response import S3Response, require_body
from .xml import (
    build_access_control_policy,
    build_create_bucket_configuration,
    build_logging_status,
    build_website_redirect,
    parse_access_control_policy,
    parse_bucket_list,
    parse_copy_result,
    parse_listing_page,
    parse_location,
    parse_logging_status,
    strip_etag,
)

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "application/xml"


def object_info_from_headers(headers: Mapping[str, str]) -> ObjectInfo:
    """Build ObjectInfo from lower-cased response headers."""
    info = ObjectInfo(headers=dict(headers))
    if "content-length" in headers:
        try:
            info.size = int(headers["content-length"])
        except ValueError:
            info.size = None
    if "etag" in headers:
        info.etag = strip_etag(headers["etag"])
    info.content_type = headers.get("content-type")
    if "last-modified" in headers:
        try:
            info.last_modified = parsedate_to_datetime(headers["last-modified"])
        except (TypeError, ValueError):
            info.last_modified = None
    for name, value in headers.items():
        if name.startswith(AMZ_META_PREFIX):
            info.metadata[name[len(AMZ_META_PREFIX):]] = value
    return info


class ApiClient:
    """Shared execution and failure handling for the REST clients.

    Every operation returns an Outcome. With ``config.raise_errors`` set,
    failures raise the classified StorageError instead.
    """

    def __init__(self, config: StorageConfig, session: requests.Session | None = None) -> None:
        """Initialize the client.

        Args:
            config: Credentials, endpoint and transport settings
            session: Optional pre-built requests session
        """
        self.config = config
        self.executor = RequestExecutor(config, session)

    def _fail(self, operation: str, context: str, error: StorageError) -> Outcome[Any]:
        logger.warning(f"{operation}({context}): {error}")
        metrics.error_total.labels(operation=operation, kind=error.kind.value).inc()
        if self.config.raise_errors:
            raise error
        return Outcome.failure(error)

    def _call(
        self,
        operation: str,
        context: str,
        request: PendingRequest,
        parse: Callable[[S3Response], Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[Any]:
        response = execute_request(self.executor, request, operation, cancel)
        if response.error is not None:
            return self._fail(operation, context, response.error)
        if parse is None:
            return Outcome.success(True)
        try:
            return Outcome.success(parse(response))
        except StorageError as e:
            return self._fail(operation, context, e)


class S3Client(ApiClient):
    """Bucket and object operations against an S3-compatible endpoint."""

    # --- buckets ----------------------------------------------------------

    def list_buckets(self) -> Outcome[BucketList]:
        """List the account's buckets with their owner."""
        request = PendingRequest("GET")
        return self._call(
            "list_buckets", "", request, lambda r: parse_bucket_list(require_body(r, "bucket list"))
        )

    def get_bucket(
        self,
        bucket: str,
        prefix: str | None = None,
        marker: str | None = None,
        max_keys: int | None = None,
        delimiter: str | None = None,
        return_common_prefixes: bool = False,
    ) -> Outcome[BucketListing]:
        """List bucket contents.

        Without ``max_keys`` the listing follows truncated pages until the
        provider reports the end. With ``max_keys`` a single page is fetched
        and ``next_marker`` tells where to continue.

        Args:
            bucket: Bucket name
            prefix: Only keys starting with this prefix
            marker: Start after this key
            max_keys: Cap on returned keys (0 means no cap)
            delimiter: Group keys sharing a prefix up to this delimiter
            return_common_prefixes: Surface the grouped prefixes

        Returns:
            Outcome with a BucketListing
        """
        operation = "get_bucket"
        if not max_keys:
            max_keys = None
        delimiter = delimiter or self.config.default_delimiter
        listing = BucketListing()

        while True:
            request = PendingRequest("GET", bucket)
            if prefix:
                request.set_parameter("prefix", prefix)
            if marker:
                request.set_parameter("marker", marker)
            if max_keys is not None:
                request.set_parameter("max-keys", str(max_keys))
            if delimiter:
                request.set_parameter("delimiter", delimiter)

            response = execute_request(self.executor, request, operation)
            if response.error is not None:
                return self._fail(operation, bucket, response.error)
            try:
                page = parse_listing_page(require_body(response, "listing"))
            except StorageError as e:
                return self._fail(operation, bucket, e)
            metrics.listing_pages_total.inc()

            for summary in page.objects:
                listing.objects[summary.key] = summary
            if return_common_prefixes:
                for common in page.common_prefixes:
                    if common not in listing.common_prefixes:
                        listing.common_prefixes.append(common)

            if not page.is_truncated:
                return Outcome.success(listing)

            next_marker = page.next_marker
            if next_marker is None and page.objects:
                next_marker = page.objects[-1].key
            if next_marker is None and page.common_prefixes:
                next_marker = page.common_prefixes[-1]

            if max_keys is not None:
                listing.is_truncated = True
                listing.next_marker = next_marker
                return Outcome.success(listing)

            if next_marker is None or next_marker == marker:
                error = ParseError("Truncated listing without an advancing marker", code=PARSE_ERROR_CODE)
                return self._fail(operation, bucket, error)
            marker = next_marker

    def put_bucket(self, bucket: str, acl: str = ACL_PRIVATE, location: str | None = None) -> Outcome[bool]:
        """Create a bucket, optionally constrained to a location."""
        request = PendingRequest("PUT", bucket)
        request.set_amz_header("x-amz-acl", acl)
        if location:
            request.body = ObjectInput.from_bytes(build_create_bucket_configuration(location))
            request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call("put_bucket", bucket, request)

    def delete_bucket(self, bucket: str) -> Outcome[bool]:
        request = PendingRequest("DELETE", bucket, expected_status=(204,))
        return self._call("delete_bucket", bucket, request)

    def get_bucket_location(self, bucket: str) -> Outcome[str]:
        """Return the bucket's location constraint ("US" when empty)."""
        request = PendingRequest("GET", bucket)
        request.set_parameter("location")
        return self._call(
            "get_bucket_location", bucket, request, lambda r: parse_location(require_body(r, "location"))
        )

    def set_bucket_redirect(self, bucket: str, host_name: str) -> Outcome[bool]:
        """Redirect every request to the bucket's website endpoint to ``host_name``."""
        if not bucket or not host_name:
            return self._fail("set_bucket_redirect", f"{bucket}, {host_name}", InputError("Empty parameter"))
        request = PendingRequest("PUT", bucket)
        request.set_parameter("website")
        request.body = ObjectInput.from_bytes(build_website_redirect(host_name))
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call("set_bucket_redirect", bucket, request)

    def set_bucket_logging(
        self,
        bucket: str,
        target_bucket: str,
        target_prefix: str | None = None,
    ) -> Outcome[bool]:
        """Enable server access logging of ``bucket`` into ``target_bucket``.

        The LogDelivery group needs WRITE and READ_ACP on the target bucket;
        the target's ACL is only rewritten when one of them is missing.
        """
        operation = "set_bucket_logging"
        context = f"{bucket}, {target_bucket}"

        acp_outcome = self.get_access_control_policy(target_bucket)
        acp = acp_outcome.value
        if acp is None:
            return acp_outcome  # type: ignore[return-value]

        changed = False
        for permission in ("WRITE", "READ_ACP"):
            if not acp.has_grant(GRANTEE_GROUP, LOG_DELIVERY_GROUP_URI, permission):
                acp.grants.append(Grant.group(LOG_DELIVERY_GROUP_URI, permission))
                changed = True
        if changed:
            set_outcome = self.set_access_control_policy(target_bucket, "", acp)
            if not set_outcome.ok:
                return set_outcome

        if target_prefix is None:
            target_prefix = f"{bucket}-"
        request = PendingRequest("PUT", bucket)
        request.set_parameter("logging")
        request.body = ObjectInput.from_bytes(build_logging_status(target_bucket, target_prefix))
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call(operation, context, request)

    def disable_bucket_logging(self, bucket: str) -> Outcome[bool]:
        request = PendingRequest("PUT", bucket)
        request.set_parameter("logging")
        request.body = ObjectInput.from_bytes(build_logging_status(None, None))
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call("disable_bucket_logging", bucket, request)

    def get_bucket_logging(self, bucket: str) -> Outcome[BucketLoggingStatus]:
        request = PendingRequest("GET", bucket)
        request.set_parameter("logging")
        return self._call(
            "get_bucket_logging",
            bucket,
            request,
            lambda r: parse_logging_status(require_body(r, "logging status")),
        )

    # --- access control ---------------------------------------------------

    def get_access_control_policy(self, bucket: str, key: str = "") -> Outcome[AccessControlPolicy]:
        request = PendingRequest("GET", bucket, key)
        request.set_parameter("acl")
        return self._call(
            "get_access_control_policy",
            f"{bucket}, {key}",
            request,
            lambda r: parse_access_control_policy(require_body(r, "access control policy")),
        )

    def set_access_control_policy(self, bucket: str, key: str, acp: AccessControlPolicy) -> Outcome[bool]:
        """Replace the ACL of a bucket (empty ``key``) or an object."""
        operation = "set_access_control_policy"
        context = f"{bucket}, {key}"
        try:
            document = build_access_control_policy(acp)
        except ValueError as e:
            return self._fail(operation, context, InputError(str(e)))
        request = PendingRequest("PUT", bucket, key)
        request.set_parameter("acl")
        request.body = ObjectInput.from_bytes(document)
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call(operation, context, request)

    # --- objects ----------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        source: ObjectInput | None,
        acl: str = ACL_PRIVATE,
        metadata: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        storage_class: str = STORAGE_CLASS_STANDARD,
        server_side_encryption: str = SSE_NONE,
        cancel: threading.Event | None = None,
    ) -> Outcome[PutObjectResult]:
        """Upload an object.

        Args:
            bucket: Bucket name
            key: Object key
            source: Upload source with a known size
            acl: Canned ACL
            metadata: Values sent as ``x-amz-meta-{name}``
            headers: Request headers (Content-Type, Content-Disposition, ``x-amz-*``)
            storage_class: Storage class
            server_side_encryption: SSE algorithm, empty for none
            cancel: Optional event aborting the transfer

        Returns:
            Outcome with the uploaded size and returned ETag
        """
        operation = "put_object"
        context = f"{bucket}, {key}"
        if source is None:
            return self._fail(operation, context, InputError(MISSING_INPUT_MESSAGE))
        try:
            source.validate()
        except InputError as e:
            return self._fail(operation, context, e)

        request = PendingRequest("PUT", bucket, key)
        request.body = source
        for name, value in (headers or {}).items():
            request.add_header(name, value)
        if storage_class != STORAGE_CLASS_STANDARD:
            request.set_amz_header("x-amz-storage-class", storage_class)
        if server_side_encryption != SSE_NONE:
            request.set_amz_header("x-amz-server-side-encryption", server_side_encryption)
        request.set_amz_header("x-amz-acl", acl)
        for name, value in (metadata or {}).items():
            request.set_amz_header(f"{AMZ_META_PREFIX}{name}", value)

        return self._call(
            operation,
            context,
            request,
            lambda r: PutObjectResult(size=source.size, etag=strip_etag(r.headers.get("etag")) or None),
            cancel,
        )

    def put_object_file(
        self,
        bucket: str,
        key: str,
        path: str,
        acl: str = ACL_PRIVATE,
        metadata: Mapping[str, str] | None = None,
        content_type: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[PutObjectResult]:
        try:
            source = ObjectInput.from_file(path)
        except InputError as e:
            return self._fail("put_object", f"{bucket}, {key}", e)
        headers = {"Content-Type": content_type} if content_type else None
        return self.put_object(bucket, key, source, acl, metadata, headers, cancel=cancel)

    def put_object_stream(
        self,
        bucket: str,
        key: str,
        stream: IO[bytes],
        size: int | None = None,
        acl: str = ACL_PRIVATE,
        metadata: Mapping[str, str] | None = None,
        content_type: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Outcome[PutObjectResult]:
        """Upload from an open stream; without ``size`` the stream must be seekable."""
        try:
            source = ObjectInput.from_stream(stream, size)
        except InputError as e:
            return self._fail("put_object", f"{bucket}, {key}", e)
        headers = {"Content-Type": content_type} if content_type else None
        return self.put_object(bucket, key, source, acl, metadata, headers, cancel=cancel)

    def put_object_string(
        self,
        bucket: str,
        key: str,
        data: str | bytes,
        acl: str = ACL_PRIVATE,
        metadata: Mapping[str, str] | None = None,
        content_type: str = "text/plain",
    ) -> Outcome[PutObjectResult]:
        return self.put_object(
            bucket, key, ObjectInput.from_bytes(data), acl, metadata, {"Content-Type": content_type}
        )

    def get_object(self, bucket: str, key: str, cancel: threading.Event | None = None) -> Outcome[ObjectData]:
        """Download an object into memory."""
        request = PendingRequest("GET", bucket, key, expects_xml=False)
        return self._call(
            "get_object",
            f"{bucket}, {key}",
            request,
            lambda r: ObjectData(info=object_info_from_headers(r.headers), body=r.content),
            cancel,
        )

    def get_object_to_file(
        self,
        bucket: str,
        key: str,
        path: str,
        cancel: threading.Event | None = None,
    ) -> Outcome[ObjectData]:
        """Download an object into a new file at ``path``.

        The file is removed again when the download does not complete.
        """
        request = PendingRequest("GET", bucket, key, expects_xml=False)
        request.sink_path = path
        return self._call(
            "get_object",
            f"{bucket}, {key}",
            request,
            lambda r: ObjectData(info=object_info_from_headers(r.headers)),
            cancel,
        )

    def get_object_to_stream(
        self,
        bucket: str,
        key: str,
        stream: IO[bytes],
        cancel: threading.Event | None = None,
    ) -> Outcome[ObjectData]:
        """Download an object into a caller-owned writable stream."""
        request = PendingRequest("GET", bucket, key, expects_xml=False)
        request.sink = stream
        return self._call(
            "get_object",
            f"{bucket}, {key}",
            request,
            lambda r: ObjectData(info=object_info_from_headers(r.headers)),
            cancel,
        )

    def get_object_info(self, bucket: str, key: str) -> Outcome[ObjectInfo]:
        """Fetch object metadata; a 404 is a not-found outcome, not an error."""
        operation = "get_object_info"
        request = PendingRequest("HEAD", bucket, key, expected_status=(200, 404), expects_xml=False)
        response = execute_request(self.executor, request, operation)
        if response.error is not None:
            return self._fail(operation, f"{bucket}, {key}", response.error)
        if response.status == 404:
            return Outcome.not_found()
        return Outcome.success(object_info_from_headers(response.headers))

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        bucket: str,
        key: str,
        acl: str = ACL_PRIVATE,
        metadata: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        storage_class: str = STORAGE_CLASS_STANDARD,
    ) -> Outcome[CopyResult]:
        """Copy an object server-side.

        Supplying ``metadata`` or ``headers`` replaces the source metadata
        instead of copying it.
        """
        request = PendingRequest("PUT", bucket, key)
        for name, value in (headers or {}).items():
            request.add_header(name, value)
        for name, value in (metadata or {}).items():
            request.set_amz_header(f"{AMZ_META_PREFIX}{name}", value)
        if storage_class != STORAGE_CLASS_STANDARD:
            request.set_amz_header("x-amz-storage-class", storage_class)
        request.set_amz_header("x-amz-acl", acl)
        request.set_amz_header("x-amz-copy-source", f"/{src_bucket}/{quote(src_key, safe='')}")
        if headers or metadata:
            request.set_amz_header("x-amz-metadata-directive", "REPLACE")
        return self._call(
            "copy_object",
            f"{src_bucket}, {src_key}, {bucket}, {key}",
            request,
            lambda r: parse_copy_result(require_body(r, "copy result")),
        )

    def delete_object(self, bucket: str, key: str) -> Outcome[bool]:
        request = PendingRequest("DELETE", bucket, key, expected_status=(204,))
        return self._call("delete_object", f"{bucket}, {key}", request)

    # --- clock ------------------------------------------------------------

    def correct_clock_skew(self, offset: int = 0) -> Outcome[int]:
        """Set the signing clock offset.

        With ``offset`` 0 the offset is measured from the ``Date`` header of
        an unauthenticated HEAD request. That header is not authenticated,
        so the measured offset should only be trusted on a trusted network.
        """
        operation = "correct_clock_skew"
        if offset == 0:
            request = PendingRequest("HEAD", auth_mode=AUTH_ANONYMOUS)
            response = execute_request(self.executor, request, operation)
            if response.status == 0 and response.error is not None:
                return self._fail(operation, self.config.endpoint, response.error)
            try:
                server_time = parsedate_to_datetime(response.headers["date"]).timestamp()
            except (KeyError, TypeError, ValueError):
                error = ParseError("Response carries no usable Date header", code=PARSE_ERROR_CODE)
                return self._fail(operation, self.config.endpoint, error)
            offset = int(server_time - time.time())
            logger.warning(
                f"Signing clock offset set to {offset}s from an unauthenticated Date header "
                f"of {self.config.endpoint}"
            )
        self.config.time_offset = offset
        return Outcome.success(offset)

    # --- signed URLs ------------------------------------------------------

    def get_authenticated_url(
        self,
        bucket: str,
        key: str,
        lifetime: int,
        host_bucket: bool = False,
        https: bool = False,
    ) -> str:
        return presign.get_authenticated_url(self.config, bucket, key, lifetime, host_bucket, https)

    def verify_authenticated_url(self, url: str, at: int | None = None) -> bool:
        return self.executor.signer.verify_authenticated_url(url, at)

    def get_signed_policy_url(self, policy: Mapping[str, Any]) -> str:
        return presign.get_signed_policy_url(self.config, policy)

    def get_signed_canned_url(self, url: str, lifetime: int) -> str:
        return presign.get_signed_canned_url(self.config, url, lifetime)

    def get_http_upload_post_params(self, bucket: str, key_prefix: str = "", **kwargs: Any) -> dict[str, str]:
        return presign.get_http_upload_post_params(self.config, bucket, key_prefix, **kwargs)
