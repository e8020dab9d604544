"""AWS Signature Version 2 request signing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Iterable, Mapping
from urllib.parse import parse_qs, urlsplit

from ...config import StorageConfig
from ...constants import SUB_RESOURCES


def canonical_amz_headers(amz_headers: Mapping[str, Iterable[str]]) -> str:
    """Render ``x-amz-*`` headers as sorted ``name:value\\n`` lines.

    Names are lower-cased and repeated values joined by commas.
    """
    merged: dict[str, list[str]] = {}
    for name, values in amz_headers.items():
        merged.setdefault(name.strip().lower(), []).extend(str(v).strip() for v in values)
    return "".join(f"{name}:{','.join(merged[name])}\n" for name in sorted(merged))


def canonical_resource(path: str, params: Mapping[str, str | None] | None = None) -> str:
    """Qualify a request path with the sub-resources that take part in signing.

    Args:
        path: Encoded request path, e.g. ``/bucket/key``
        params: Query parameters of the request

    Returns:
        The path with exactly one leading ``/`` followed by the sorted
        sub-resource parameters, e.g. ``/bucket/key?acl``
    """
    resource = "/" + path.lstrip("/")
    sub = sorted(name for name in (params or {}) if name in SUB_RESOURCES)
    if sub:
        parts = []
        for name in sub:
            value = (params or {})[name]
            parts.append(name if value is None else f"{name}={value}")
        resource += "?" + "&".join(parts)
    return resource


def string_to_sign(
    verb: str,
    content_md5: str,
    content_type: str,
    date_or_expires: str,
    amz_headers: Mapping[str, Iterable[str]],
    resource: str,
) -> str:
    """Build the canonical string for a request."""
    return (
        f"{verb}\n{content_md5}\n{content_type}\n{date_or_expires}\n"
        f"{canonical_amz_headers(amz_headers)}{resource}"
    )


class RequestSigner:
    """HMAC-SHA1 signer bound to a configuration.

    Signing never touches the network; a missing secret key is reported as a
    ConfigurationError before any request is sent.
    """

    def __init__(self, config: StorageConfig) -> None:
        self.config = config

    def now(self) -> int:
        """Current epoch seconds corrected by the configured time offset."""
        return int(time.time()) + self.config.time_offset

    def sign(self, string: str) -> str:
        """Return the base64 HMAC-SHA1 signature of ``string``."""
        self.config.require_auth()
        digest = hmac.new(
            self.config.secret_key.encode("utf-8"),  # type: ignore[union-attr]
            string.encode("utf-8"),
            hashlib.sha1,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def authorization(self, string: str) -> str:
        """Return the ``AWS {accessKey}:{signature}`` header value."""
        return f"AWS {self.config.access_key}:{self.sign(string)}"

    def query_string_signature(self, expires: int, resource: str) -> str:
        """Signature for a pre-signed GET of ``resource`` valid until ``expires``."""
        return self.sign(string_to_sign("GET", "", "", str(expires), {}, resource))

    def verify_authenticated_url(self, url: str, at: int | None = None) -> bool:
        """Check a query-string authenticated URL against the current credentials.

        Args:
            url: URL produced by ``get_authenticated_url``
            at: Epoch seconds to validate at (defaults to the corrected clock)

        Returns:
            True when the signature matches and the URL has not expired
        """
        parts = urlsplit(url)
        query = parse_qs(parts.query)
        try:
            access_key = query["AWSAccessKeyId"][0]
            expires = int(query["Expires"][0])
            signature = query["Signature"][0]
        except (KeyError, IndexError, ValueError):
            return False

        if access_key != self.config.access_key:
            return False
        if (self.now() if at is None else at) > expires:
            return False

        if parts.netloc == self.config.endpoint:
            resource = parts.path
        else:
            # Virtual-host style: the host name is the bucket
            resource = f"/{parts.netloc}{parts.path}"
        expected = self.query_string_signature(expires, resource)
        return hmac.compare_digest(expected, signature)
