"""Pre-signed URLs, CloudFront signed policies and browser upload forms."""

from __future__ import annotations

import base64
import json
import time
from typing import Any, Mapping
from urllib.parse import quote, quote_plus

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from ...config import StorageConfig
from ...constants import ACL_PRIVATE, ACL_PUBLIC_READ, DEFAULT_UPLOAD_LIFETIME, DEFAULT_UPLOAD_MAX_SIZE
from ...exceptions import ConfigurationError, InputError
from .signer import RequestSigner


def get_authenticated_url(
    config: StorageConfig,
    bucket: str,
    key: str,
    lifetime: int,
    host_bucket: bool = False,
    https: bool = False,
) -> str:
    """Build a query-string authenticated GET URL.

    Args:
        config: Credentials and endpoint
        bucket: Bucket name
        key: Object key
        lifetime: Seconds the URL stays valid, from the corrected clock
        host_bucket: Use the bucket name as the host (CNAME-style bucket)
        https: Use https instead of http

    Returns:
        The signed URL

    Raises:
        ConfigurationError: If credentials are missing
    """
    signer = RequestSigner(config)
    expires = signer.now() + lifetime
    encoded_key = quote(key, safe="/+")
    signature = signer.query_string_signature(expires, f"/{bucket}/{encoded_key}")
    host = bucket if host_bucket else f"{config.endpoint}/{bucket}"
    return (
        f"{'https' if https else 'http'}://{host}/{encoded_key}"
        f"?AWSAccessKeyId={config.access_key}&Expires={expires}&Signature={quote_plus(signature)}"
    )


def _cloudfront_base64(data: bytes) -> str:
    # CloudFront substitution: "+" -> "-", "=" -> "_" ("/" -> "~" is not applied)
    return base64.b64encode(data).decode("ascii").replace("+", "-").replace("=", "_")


def get_signed_policy_url(config: StorageConfig, policy: Mapping[str, Any]) -> str:
    """Sign a CloudFront custom policy with the configured RSA key.

    The URL is taken from ``policy["Statement"][0]["Resource"]``.

    Raises:
        ConfigurationError: If no signing key is loaded
        InputError: If the policy carries no resource URL
    """
    if config.signing_key is None or not config.signing_key_pair_id:
        raise ConfigurationError("A CloudFront signing key must be loaded to sign policies")
    try:
        resource = policy["Statement"][0]["Resource"]
    except (KeyError, IndexError, TypeError) as e:
        raise InputError("Policy has no Statement resource") from e

    data = json.dumps(policy, separators=(",", ":")).encode("utf-8")
    signature = config.signing_key.sign(data, padding.PKCS1v15(), hashes.SHA1())

    params = {
        "Policy": _cloudfront_base64(data),
        "Signature": _cloudfront_base64(signature),
        "Key-Pair-Id": config.signing_key_pair_id,
    }
    return f"{resource}?" + "&".join(f"{k}={quote(v, safe='/')}" for k, v in params.items())


def get_signed_canned_url(config: StorageConfig, url: str, lifetime: int) -> str:
    """Sign a canned policy granting access to ``url`` for ``lifetime`` seconds."""
    expires = RequestSigner(config).now() + lifetime
    policy = {
        "Statement": [
            {"Resource": url, "Condition": {"DateLessThan": {"AWS:EpochTime": expires}}},
        ]
    }
    return get_signed_policy_url(config, policy)


def get_http_upload_post_params(
    config: StorageConfig,
    bucket: str,
    key_prefix: str = "",
    acl: str = ACL_PRIVATE,
    lifetime: int = DEFAULT_UPLOAD_LIFETIME,
    max_file_size: int = DEFAULT_UPLOAD_MAX_SIZE,
    success_redirect: str | int = "201",
    amz_headers: Mapping[str, str] | None = None,
    headers: Mapping[str, str] | None = None,
    flash_vars: bool = False,
) -> dict[str, str]:
    """Build the form fields for a browser POST upload.

    Args:
        config: Credentials
        bucket: Target bucket
        key_prefix: Prefix every uploaded key must start with
        acl: Canned ACL applied to uploads
        lifetime: Policy lifetime in seconds
        max_file_size: Upper bound of the content-length-range condition
        success_redirect: 200 or 201 for a status response, otherwise a redirect URL
        amz_headers: ``x-amz-meta-*`` fields, fixed in the policy
        headers: Request header fields, any value allowed
        flash_vars: Allow the extra ``Filename`` field posted by Flash uploaders

    Returns:
        Form fields, including ``policy`` and ``signature``
    """
    signer = RequestSigner(config)
    config.require_auth()
    amz_headers = amz_headers or {}
    headers = headers or {}

    redirect = str(success_redirect)
    if redirect in ("200", "201"):
        success = {"success_action_status": redirect}
    else:
        success = {"success_action_redirect": redirect}

    expiration = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(signer.now() + lifetime))
    conditions: list[Any] = [{"bucket": bucket}, {"acl": acl}, success]
    if acl != ACL_PUBLIC_READ:
        conditions.append(["eq", "$acl", acl])
    conditions.append(["starts-with", "$key", key_prefix])
    if flash_vars:
        conditions.append(["starts-with", "$Filename", ""])
    for name in headers:
        conditions.append(["starts-with", f"${name}", ""])
    for name, value in amz_headers.items():
        conditions.append({name: str(value)})
    conditions.append(["content-length-range", 0, max_file_size])

    policy_json = json.dumps({"expiration": expiration, "conditions": conditions}, separators=(",", ":"))
    policy = base64.b64encode(policy_json.encode("utf-8")).decode("ascii")

    params = {
        "AWSAccessKeyId": config.access_key or "",
        "key": f"{key_prefix}${{filename}}",
        "acl": acl,
        "policy": policy,
        "signature": signer.sign(policy),
    }
    params.update(success)
    params.update({name: str(value) for name, value in headers.items()})
    params.update({name: str(value) for name, value in amz_headers.items()})
    return params
