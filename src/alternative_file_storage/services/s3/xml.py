"""XML documents exchanged with the S3 API.

Request bodies are built from typed records; responses are read back into
the same records. Element order follows the provider schema.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime

from ...constants import (
    GRANTEE_CANONICAL_USER,
    GRANTEE_EMAIL,
    GRANTEE_GROUP,
    PARSE_ERROR_CODE,
    S3_XMLNS,
    XSI_XMLNS,
)
from ...exceptions import ParseError
from .models import (
    AccessControlPolicy,
    BucketInfo,
    BucketList,
    BucketLoggingStatus,
    CopyResult,
    Grant,
    ObjectSummary,
    Owner,
)


def sub_element(parent: ET.Element, tag: str, text: str | None = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = text
    return element


def to_bytes(root: ET.Element) -> bytes:
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def text(node: ET.Element | None, path: str, default: str | None = None) -> str | None:
    if node is None:
        return default
    value = node.findtext(path)
    return default if value is None else value


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp such as ``2009-10-12T17:50:30.000Z``."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def strip_etag(value: str | None) -> str:
    return (value or "").strip().strip('"')


# --- request bodies -------------------------------------------------------


def build_create_bucket_configuration(location: str) -> bytes:
    root = ET.Element("CreateBucketConfiguration")
    sub_element(root, "LocationConstraint", location)
    return to_bytes(root)


def build_website_redirect(host_name: str) -> bytes:
    root = ET.Element("WebsiteConfiguration")
    redirect = sub_element(root, "RedirectAllRequestsTo")
    sub_element(redirect, "HostName", host_name)
    return to_bytes(root)


def build_logging_status(target_bucket: str | None, target_prefix: str | None) -> bytes:
    """BucketLoggingStatus; an empty document disables logging."""
    root = ET.Element("BucketLoggingStatus", {"xmlns": S3_XMLNS})
    if target_bucket is not None:
        enabled = sub_element(root, "LoggingEnabled")
        sub_element(enabled, "TargetBucket", target_bucket)
        sub_element(enabled, "TargetPrefix", target_prefix or "")
    return to_bytes(root)


def build_access_control_policy(acp: AccessControlPolicy) -> bytes:
    """AccessControlPolicy with the owner and one Grant per entry.

    Canonical users are sent without DisplayName.
    """
    root = ET.Element("AccessControlPolicy")
    owner = sub_element(root, "Owner")
    sub_element(owner, "ID", acp.owner.id)
    sub_element(owner, "DisplayName", acp.owner.display_name)

    acl = sub_element(root, "AccessControlList")
    for grant in acp.grants:
        grant_node = sub_element(acl, "Grant")
        grantee = sub_element(grant_node, "Grantee")
        grantee.set(f"{{{XSI_XMLNS}}}type", grant.grantee_type)
        if grant.grantee_type == GRANTEE_CANONICAL_USER:
            sub_element(grantee, "ID", grant.id)
        elif grant.grantee_type == GRANTEE_EMAIL:
            sub_element(grantee, "EmailAddress", grant.email)
        elif grant.grantee_type == GRANTEE_GROUP:
            sub_element(grantee, "URI", grant.uri)
        else:
            raise ValueError(f"Unknown grantee type: {grant.grantee_type}")
        sub_element(grant_node, "Permission", grant.permission)
    return to_bytes(root)


# --- response documents ---------------------------------------------------


def parse_owner(node: ET.Element | None) -> Owner | None:
    if node is None or node.find("ID") is None:
        return None
    return Owner(id=text(node, "ID", ""), display_name=text(node, "DisplayName", ""))  # type: ignore[arg-type]


def parse_bucket_list(root: ET.Element) -> BucketList:
    result = BucketList(owner=parse_owner(root.find("Owner")))
    for bucket in root.iterfind("Buckets/Bucket"):
        result.buckets.append(
            BucketInfo(name=text(bucket, "Name", ""), created=parse_timestamp(text(bucket, "CreationDate")))  # type: ignore[arg-type]
        )
    return result


@dataclass
class ListingPage:
    """One ListBucketResult page."""

    objects: list[ObjectSummary] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    is_truncated: bool = False
    next_marker: str | None = None


def parse_listing_page(root: ET.Element) -> ListingPage:
    if root.tag != "ListBucketResult":
        raise ParseError(f"Unexpected listing document <{root.tag}>", code=PARSE_ERROR_CODE)

    page = ListingPage()
    for contents in root.iterfind("Contents"):
        key = contents.findtext("Key")
        if key is None:
            raise ParseError("Listing entry without a Key", code=PARSE_ERROR_CODE)
        try:
            size = int(contents.findtext("Size") or 0)
        except ValueError as e:
            raise ParseError(f"Invalid Size for {key}", code=PARSE_ERROR_CODE) from e
        page.objects.append(
            ObjectSummary(
                key=key,
                last_modified=parse_timestamp(contents.findtext("LastModified")),
                size=size,
                etag=strip_etag(contents.findtext("ETag")),
            )
        )
    for prefix in root.iterfind("CommonPrefixes/Prefix"):
        if prefix.text is not None:
            page.common_prefixes.append(prefix.text)

    page.is_truncated = (root.findtext("IsTruncated") or "false").strip().lower() == "true"
    page.next_marker = root.findtext("NextMarker") or None
    return page


def parse_access_control_policy(root: ET.Element) -> AccessControlPolicy:
    owner = parse_owner(root.find("Owner")) or Owner(id="")
    acp = AccessControlPolicy(owner=owner)
    for grant in root.iterfind("AccessControlList/Grant"):
        permission = text(grant, "Permission", "")
        for grantee in grant.iterfind("Grantee"):
            if grantee.find("ID") is not None:
                acp.grants.append(
                    Grant.canonical_user(
                        text(grantee, "ID", ""),  # type: ignore[arg-type]
                        permission,  # type: ignore[arg-type]
                        display_name=text(grantee, "DisplayName"),
                    )
                )
            elif grantee.find("EmailAddress") is not None:
                acp.grants.append(Grant.by_email(text(grantee, "EmailAddress", ""), permission))  # type: ignore[arg-type]
            elif grantee.find("URI") is not None:
                acp.grants.append(Grant.group(text(grantee, "URI", ""), permission))  # type: ignore[arg-type]
    return acp


def parse_logging_status(root: ET.Element) -> BucketLoggingStatus:
    enabled = root.find("LoggingEnabled")
    if enabled is None:
        return BucketLoggingStatus()
    return BucketLoggingStatus(
        target_bucket=text(enabled, "TargetBucket", ""),
        target_prefix=text(enabled, "TargetPrefix", ""),
    )


def parse_location(root: ET.Element) -> str:
    return (root.text or "").strip() or "US"


def parse_copy_result(root: ET.Element) -> CopyResult:
    etag = root.findtext("ETag")
    if etag is None:
        raise ParseError("Copy response without an ETag", code=PARSE_ERROR_CODE)
    return CopyResult(last_modified=parse_timestamp(root.findtext("LastModified")), etag=strip_etag(etag))
