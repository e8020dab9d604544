"""CloudFront distribution management client."""

from __future__ import annotations

import time
from typing import Iterable

import requests

from ...config import StorageConfig
from ...constants import CLOUDFRONT_API_VERSION, CLOUDFRONT_ENDPOINT
from ...exceptions import InputError
from ..s3.client import ApiClient
from ..s3.models import Distribution, OriginAccessIdentity, Outcome
from ..s3.request import AUTH_DATE, ObjectInput, PendingRequest
from ..s3.response import S3Response, require_body
from ..s3.xml import strip_etag
from .xml import (
    build_distribution_config,
    build_invalidation_batch,
    parse_distribution,
    parse_distribution_list,
    parse_invalidation_list,
    parse_origin_access_identities,
)

XML_CONTENT_TYPE = "application/xml"


def _with_etag(response: S3Response) -> Distribution:
    dist = parse_distribution(require_body(response, "distribution"))
    dist.etag = strip_etag(response.headers.get("etag")) or None
    return dist


class CloudFrontClient(ApiClient):
    """Distribution, origin access identity and invalidation calls.

    Update and delete submit the distribution's ``etag`` as If-Match; a stale
    token fails with PreconditionFailedError and the caller has to re-fetch.
    """

    def __init__(self, config: StorageConfig, session: requests.Session | None = None) -> None:
        super().__init__(config, session)
        self.endpoint = CLOUDFRONT_ENDPOINT

    def _request(self, verb: str, path: str, expected_status: Iterable[int] = (200,)) -> PendingRequest:
        return PendingRequest(
            verb,
            endpoint=self.endpoint,
            path=f"/{CLOUDFRONT_API_VERSION}/{path}",
            expected_status=tuple(expected_status),
            auth_mode=AUTH_DATE,
            api_type="cloudfront",
        )

    def create_distribution(
        self,
        bucket: str,
        enabled: bool = True,
        cnames: Iterable[str] = (),
        comment: str | None = None,
        default_root_object: str | None = None,
        origin_access_identity: str | None = None,
        trusted_signers: dict[str, str] | None = None,
    ) -> Outcome[Distribution]:
        """Create a distribution in front of ``bucket``.

        Args:
            bucket: Origin bucket name
            enabled: Serve requests once deployed
            cnames: Alternate domain names
            comment: Free text comment
            default_root_object: Object served for the root URL
            origin_access_identity: Identity CloudFront uses to read the bucket
            trusted_signers: Signer identifier to type (``Self``, ``KeyPairId``, ``AwsAccountNumber``)

        Returns:
            Outcome with the created distribution and its ETag
        """
        dist = Distribution(
            origin=f"{bucket}.s3.amazonaws.com",
            enabled=enabled,
            cnames=list(cnames),
            comment=comment,
            default_root_object=default_root_object,
            origin_access_identity=origin_access_identity,
            trusted_signers=dict(trusted_signers or {}),
            caller_reference=str(time.time()),
        )
        request = self._request("POST", "distribution", expected_status=(201,))
        request.body = ObjectInput.from_bytes(build_distribution_config(dist))
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call("create_distribution", bucket, request, _with_etag)

    def get_distribution(self, distribution_id: str) -> Outcome[Distribution]:
        request = self._request("GET", f"distribution/{distribution_id}")
        return self._call("get_distribution", distribution_id, request, _with_etag)

    def update_distribution(self, dist: Distribution) -> Outcome[Distribution]:
        """Replace a distribution's configuration.

        ``dist.etag`` must be the token from the latest get or update.
        """
        operation = "update_distribution"
        if not dist.id or not dist.etag:
            return self._fail(operation, dist.id or "", InputError("Distribution id and etag are required"))
        request = self._request("PUT", f"distribution/{dist.id}/config")
        request.body = ObjectInput.from_bytes(build_distribution_config(dist))
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        request.set_header("If-Match", dist.etag)

        def parse(response: S3Response) -> Distribution:
            updated = _with_etag(response)
            # The config response carries no summary fields
            updated.id = updated.id or dist.id
            updated.status = updated.status or dist.status
            updated.domain = updated.domain or dist.domain
            return updated

        return self._call(operation, dist.id, request, parse)

    def delete_distribution(self, dist: Distribution) -> Outcome[bool]:
        """Delete a disabled distribution, guarded by its ETag."""
        operation = "delete_distribution"
        if not dist.id or not dist.etag:
            return self._fail(operation, dist.id or "", InputError("Distribution id and etag are required"))
        request = self._request("DELETE", f"distribution/{dist.id}", expected_status=(204,))
        request.set_header("If-Match", dist.etag)
        return self._call(operation, dist.id, request)

    def list_distributions(self) -> Outcome[dict[str, Distribution]]:
        request = self._request("GET", "distribution")
        return self._call(
            "list_distributions",
            "",
            request,
            lambda r: parse_distribution_list(require_body(r, "distribution list")),
        )

    def list_origin_access_identities(self) -> Outcome[dict[str, OriginAccessIdentity]]:
        request = self._request("GET", "origin-access-identity/cloudfront")
        return self._call(
            "list_origin_access_identities",
            "",
            request,
            lambda r: parse_origin_access_identities(require_body(r, "origin access identity list")),
        )

    def invalidate_distribution(self, distribution_id: str, paths: Iterable[str]) -> Outcome[bool]:
        """Request invalidation of cached ``paths``."""
        request = self._request("POST", f"distribution/{distribution_id}/invalidation", expected_status=(201,))
        request.body = ObjectInput.from_bytes(build_invalidation_batch(paths, str(time.time())))
        request.set_header("Content-Type", XML_CONTENT_TYPE)
        return self._call("invalidate_distribution", distribution_id, request)

    def get_distribution_invalidation_list(self, distribution_id: str) -> Outcome[dict[str, str]]:
        """Map invalidation ids to their status."""
        request = self._request("GET", f"distribution/{distribution_id}/invalidation")
        return self._call(
            "get_distribution_invalidation_list",
            distribution_id,
            request,
            lambda r: parse_invalidation_list(require_body(r, "invalidation list")),
        )
