"""Classification of completed HTTP exchanges."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Collection

from ...constants import PARSE_ERROR_CODE, UNEXPECTED_STATUS_MESSAGE
from ...exceptions import ParseError, PreconditionFailedError, ProtocolError, StorageError


@dataclass
class RawResponse:
    """What came back from the transport, before classification."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    transport_error: StorageError | None = None


@dataclass
class S3Response:
    """A classified response.

    ``error`` is set whenever the status is outside the accepted set, the
    provider returned an error document, or no response was received.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: ET.Element | None = None
    content: bytes = b""
    error: StorageError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_xml(content: bytes) -> ET.Element:
    """Parse an XML document and strip namespaces from element tags.

    Raises:
        ParseError: If the document is malformed
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"Malformed XML response: {e}", code=PARSE_ERROR_CODE) from e

    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith("{"):
            element.tag = element.tag.split("}", 1)[1]
    return root


def is_xml(headers: dict[str, str], content: bytes) -> bool:
    content_type = headers.get("content-type", "")
    if "xml" in content_type:
        return True
    return content.lstrip().startswith(b"<?xml")


def _find_error(root: ET.Element) -> ET.Element | None:
    if root.tag == "Error":
        return root
    if root.tag == "ErrorResponse":
        return root.find("Error")
    return None


def protocol_error(status: int, code: str, message: str) -> ProtocolError:
    if status == 412:
        return PreconditionFailedError(message, status=status, code=code)
    return ProtocolError(message, status=status, code=code)


def parse_response(raw: RawResponse, expected: Collection[int], expects_xml: bool = True) -> S3Response:
    """Classify a raw response against the operation's accepted statuses.

    Args:
        raw: Transport result
        expected: Status codes the operation accepts
        expects_xml: Parse an accepted body as XML; when False only error
            bodies (unaccepted statuses) are parsed and object data is kept
            as raw content

    Returns:
        S3Response with a parsed body on success, or an error
    """
    if raw.transport_error is not None:
        return S3Response(status=0, error=raw.transport_error)

    status = raw.status
    body = None
    wants_body = expects_xml or status not in expected
    if wants_body and raw.content and is_xml(raw.headers, raw.content):
        try:
            body = parse_xml(raw.content)
        except ParseError as e:
            if status in expected:
                return S3Response(status, raw.headers, content=raw.content, error=e)

    if body is not None:
        error_node = _find_error(body)
        # A 2xx carrying an error document is still a failure (e.g. copy)
        if error_node is not None and (status not in expected or 200 <= status < 300):
            code = (error_node.findtext("Code") or "").strip() or str(status)
            message = (error_node.findtext("Message") or "").strip() or UNEXPECTED_STATUS_MESSAGE
            return S3Response(status, raw.headers, content=raw.content, error=protocol_error(status, code, message))

    if status not in expected:
        return S3Response(
            status,
            raw.headers,
            content=raw.content,
            error=protocol_error(status, str(status), UNEXPECTED_STATUS_MESSAGE),
        )

    return S3Response(status, raw.headers, body=body, content=raw.content)


def require_body(response: S3Response, what: str) -> ET.Element:
    """Return the parsed body, or raise when XML was expected but missing."""
    if response.body is None:
        raise ParseError(f"Expected an XML {what} document", status=response.status, code=PARSE_ERROR_CODE)
    return response.body
