"""CloudFront distribution documents.

The DistributionConfig schema is ordered: S3Origin, DefaultRootObject,
CallerReference, CNAME*, Comment, Enabled, TrustedSigners.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterable

from ...constants import CLOUDFRONT_XMLNS, PARSE_ERROR_CODE
from ...exceptions import ParseError
from ..s3.models import Distribution, OriginAccessIdentity
from ..s3.xml import parse_timestamp, sub_element, to_bytes

SIGNER_SELF = "Self"
SIGNER_KEY_PAIR = "KeyPairId"
SIGNER_ACCOUNT = "AwsAccountNumber"


def build_distribution_config(dist: Distribution) -> bytes:
    root = ET.Element("DistributionConfig", {"xmlns": CLOUDFRONT_XMLNS})

    origin = sub_element(root, "S3Origin")
    sub_element(origin, "DNSName", dist.origin)
    if dist.origin_access_identity is not None:
        sub_element(origin, "OriginAccessIdentity", dist.origin_access_identity)

    if dist.default_root_object is not None:
        sub_element(root, "DefaultRootObject", dist.default_root_object)
    sub_element(root, "CallerReference", dist.caller_reference or "0")
    for cname in dist.cnames:
        sub_element(root, "CNAME", cname)
    if dist.comment:
        sub_element(root, "Comment", dist.comment)
    sub_element(root, "Enabled", "true" if dist.enabled else "false")

    trusted = sub_element(root, "TrustedSigners")
    for identifier, signer_type in dist.trusted_signers.items():
        sub_element(trusted, signer_type, identifier or None)
    return to_bytes(root)


def build_invalidation_batch(paths: Iterable[str], caller_reference: str) -> bytes:
    root = ET.Element("InvalidationBatch")
    for path in paths:
        sub_element(root, "Path", path)
    sub_element(root, "CallerReference", caller_reference)
    return to_bytes(root)


def parse_distribution(node: ET.Element) -> Distribution:
    """Read a Distribution, DistributionSummary or DistributionConfig node."""
    config = node.find("DistributionConfig")
    if config is None:
        config = node

    origin_node = config.find("S3Origin")
    if origin_node is None or origin_node.findtext("DNSName") is None:
        raise ParseError(f"<{node.tag}> has no S3Origin", code=PARSE_ERROR_CODE)

    dist = Distribution(origin=origin_node.findtext("DNSName", ""))
    dist.origin_access_identity = origin_node.findtext("OriginAccessIdentity")
    dist.id = node.findtext("Id")
    dist.status = node.findtext("Status")
    dist.domain = node.findtext("DomainName")
    dist.last_modified = parse_timestamp(node.findtext("LastModifiedTime"))
    dist.caller_reference = config.findtext("CallerReference")
    dist.enabled = (config.findtext("Enabled") or "").strip() == "true"
    dist.default_root_object = config.findtext("DefaultRootObject")
    dist.cnames = [c.text for c in config.iterfind("CNAME") if c.text]
    dist.comment = config.findtext("Comment")

    trusted = config.find("TrustedSigners")
    if trusted is not None:
        for signer in trusted:
            if signer.tag == SIGNER_SELF:
                dist.trusted_signers[""] = SIGNER_SELF
            elif signer.tag in (SIGNER_KEY_PAIR, SIGNER_ACCOUNT) and signer.text:
                dist.trusted_signers[signer.text] = signer.tag
    return dist


def parse_distribution_list(root: ET.Element) -> dict[str, Distribution]:
    distributions = {}
    for summary in root.iterfind("DistributionSummary"):
        dist = parse_distribution(summary)
        distributions[dist.id or dist.origin] = dist
    return distributions


def parse_origin_access_identities(root: ET.Element) -> dict[str, OriginAccessIdentity]:
    identities = {}
    for summary in root.iterfind("CloudFrontOriginAccessIdentitySummary"):
        identity_id = summary.findtext("Id")
        canonical = summary.findtext("S3CanonicalUserId")
        if identity_id and canonical:
            identities[identity_id] = OriginAccessIdentity(id=identity_id, s3_canonical_user_id=canonical)
    return identities


def parse_invalidation_list(root: ET.Element) -> dict[str, str]:
    return {
        summary.findtext("Id", ""): summary.findtext("Status", "")
        for summary in root.iterfind("InvalidationSummary")
    }
