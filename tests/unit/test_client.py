"""Tests for S3Client operations against a mocked HTTP session."""

from __future__ import annotations

import base64
import hashlib
import io
import threading
import xml.etree.ElementTree as ET
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from alternative_file_storage.config import StorageConfig
from alternative_file_storage.constants import LOG_DELIVERY_GROUP_URI
from alternative_file_storage.exceptions import (
    ConfigurationError,
    ErrorKind,
    InputError,
    ParseError,
    ProtocolError,
    TransportError,
)
from alternative_file_storage.services.s3.client import S3Client
from alternative_file_storage.services.s3.models import AccessControlPolicy, Grant, Owner
from alternative_file_storage.services.s3.request import ObjectInput
from alternative_file_storage.services.s3.signer import RequestSigner, string_to_sign
from alternative_file_storage.services.s3.xml import build_access_control_policy

from conftest import ACCESS_KEY, make_response, request_call


def listing_page(keys: list[str], truncated: bool, next_marker: str | None = None) -> bytes:
    contents = "".join(
        f"<Contents><Key>{k}</Key><LastModified>2024-01-01T00:00:00.000Z</LastModified>"
        f'<ETag>"{hashlib.md5(k.encode()).hexdigest()}"</ETag><Size>{len(k)}</Size></Contents>'
        for k in keys
    )
    marker = f"<NextMarker>{next_marker}</NextMarker>" if next_marker else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f"<ListBucketResult><Name>bucket</Name><IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
        f"{contents}{marker}</ListBucketResult>"
    ).encode()


class FakeBucket:
    """In-memory S3 backend serving ListObjects pages of ``page_size`` keys."""

    def __init__(self, keys: list[str] | None = None, page_size: int = 1000) -> None:
        self.objects: dict[str, bytes] = {k: k.encode() for k in (keys or [])}
        self.page_size = page_size

    def __call__(self, method: str, url: str, headers=None, data=None, **kwargs) -> MagicMock:
        parts = urlsplit(url)
        query = parse_qs(parts.query)
        key = parts.path.split("/", 2)[2] if parts.path.count("/") >= 2 else ""

        if method == "GET" and not key:
            ordered = sorted(self.objects)
            marker = query.get("marker", [""])[0]
            remaining = [k for k in ordered if k > marker]
            limit = min(self.page_size, int(query.get("max-keys", [self.page_size])[0]))
            page = remaining[:limit]
            return make_response(200, listing_page(page, truncated=len(remaining) > limit))
        if method == "PUT":
            body = data if isinstance(data, bytes) else data.read(len(data)) if data is not None else b""
            self.objects[key] = body
            return make_response(200, headers={"ETag": f'"{hashlib.md5(body).hexdigest()}"'})
        if method in ("GET", "HEAD"):
            if key not in self.objects:
                if method == "HEAD":
                    return make_response(404)
                return make_response(404, b"<Error><Code>NoSuchKey</Code><Message>missing</Message></Error>")
            body = self.objects[key]
            headers = {
                "Content-Length": str(len(body)),
                "ETag": f'"{hashlib.md5(body).hexdigest()}"',
                "Content-Type": "application/octet-stream",
                "Last-Modified": "Wed, 01 Mar 2006 12:00:00 GMT",
                "x-amz-meta-origin": "test",
            }
            return make_response(200, b"" if method == "HEAD" else body, headers)
        if method == "DELETE":
            self.objects.pop(key, None)
            return make_response(204)
        return make_response(400)


class TestListing:
    """Test bucket listing and pagination."""

    def test_auto_pagination_returns_every_key_in_order(self, config, session) -> None:
        keys = [f"file-{i:05d}" for i in range(1500)]
        session.request.side_effect = FakeBucket(keys)

        outcome = S3Client(config, session).get_bucket("bucket")

        assert outcome.ok
        listing = outcome.value
        assert listing.keys == keys
        assert len(listing) == 1500
        assert listing.is_truncated is False
        assert session.request.call_count == 2
        second = parse_qs(urlsplit(request_call(session)["url"]).query)
        assert second["marker"] == ["file-00999"]

    def test_sizes_and_hashes_match_single_page(self, config, session) -> None:
        keys = [f"k{i}" for i in range(25)]
        session.request.side_effect = FakeBucket(keys, page_size=7)
        paged = S3Client(config, session).get_bucket("bucket").value

        session.request.side_effect = FakeBucket(keys, page_size=100)
        single = S3Client(config, session).get_bucket("bucket").value

        assert paged.objects == single.objects

    def test_max_keys_fetches_one_page(self, config, session) -> None:
        session.request.side_effect = FakeBucket([f"k{i:02d}" for i in range(10)])

        listing = S3Client(config, session).get_bucket("bucket", max_keys=3).value

        assert listing.keys == ["k00", "k01", "k02"]
        assert listing.is_truncated is True
        assert listing.next_marker == "k02"
        assert session.request.call_count == 1

    def test_next_marker_preferred(self, config, session) -> None:
        session.request.side_effect = [
            make_response(200, listing_page(["a", "b"], truncated=True, next_marker="photos/")),
            make_response(200, listing_page(["z"], truncated=False)),
        ]
        listing = S3Client(config, session).get_bucket("bucket", delimiter="/").value

        assert listing.keys == ["a", "b", "z"]
        query = parse_qs(urlsplit(request_call(session)["url"]).query)
        assert query["marker"] == ["photos/"]
        assert query["delimiter"] == ["/"]

    def test_error_on_later_page_is_reported(self, config, session) -> None:
        session.request.side_effect = [
            make_response(200, listing_page(["a"], truncated=True)),
            make_response(500, b"<Error><Code>InternalError</Code><Message>oops</Message></Error>"),
        ]
        outcome = S3Client(config, session).get_bucket("bucket")

        assert outcome.is_error
        assert outcome.error.code == "InternalError"

    def test_truncated_page_without_marker(self, config, session) -> None:
        session.request.return_value = make_response(200, listing_page([], truncated=True))
        outcome = S3Client(config, session).get_bucket("bucket")
        assert isinstance(outcome.error, ParseError)

    def test_common_prefixes_opt_in(self, config, session) -> None:
        body = (
            b"<ListBucketResult><IsTruncated>false</IsTruncated>"
            b"<CommonPrefixes><Prefix>a/</Prefix></CommonPrefixes></ListBucketResult>"
        )
        session.request.return_value = make_response(200, body)
        client = S3Client(config, session)

        assert client.get_bucket("bucket", delimiter="/").value.common_prefixes == []
        assert client.get_bucket("bucket", delimiter="/", return_common_prefixes=True).value.common_prefixes == [
            "a/"
        ]


class TestObjects:
    """Test object upload, download and metadata."""

    def test_put_then_get_round_trip(self, config, session) -> None:
        session.request.side_effect = FakeBucket()
        client = S3Client(config, session)
        payload = b"hello object storage"

        put = client.put_object("bucket", "dir/file.txt", ObjectInput.from_bytes(payload))
        got = client.get_object("bucket", "dir/file.txt")

        assert put.ok
        assert got.value.body == payload
        assert got.value.info.size == len(payload)
        assert got.value.info.etag == hashlib.md5(payload).hexdigest()
        assert put.value.etag == got.value.info.etag
        assert got.value.info.metadata == {"origin": "test"}

    def test_put_request_is_signed(self, config, session) -> None:
        session.request.return_value = make_response(200)
        S3Client(config, session).put_object(
            "bucket", "a b.txt", ObjectInput.from_bytes(b"data"), metadata={"author": "me"}
        )

        call = request_call(session)
        headers = call["headers"]
        assert call["method"] == "PUT"
        assert call["url"] == "https://s3.example.com/bucket/a%20b.txt"
        assert headers["Content-Length"] == "4"
        assert headers["Content-Type"] == "text/plain"
        assert headers["Content-MD5"] == base64.b64encode(hashlib.md5(b"data").digest()).decode()
        assert headers["x-amz-meta-author"] == "me"
        assert call["allow_redirects"] is False

        expected = string_to_sign(
            "PUT",
            headers["Content-MD5"],
            "text/plain",
            headers["Date"],
            {"x-amz-acl": ["private"], "x-amz-meta-author": ["me"]},
            "/bucket/a%20b.txt",
        )
        assert headers["Authorization"] == RequestSigner(config).authorization(expected)

    def test_put_missing_input(self, config, session) -> None:
        outcome = S3Client(config, session).put_object("bucket", "key", None)
        assert outcome.is_error
        assert outcome.error.kind is ErrorKind.INPUT
        assert outcome.error.message == "Missing input parameters"
        session.request.assert_not_called()

    def test_put_unreadable_file(self, config, session, tmp_path) -> None:
        outcome = S3Client(config, session).put_object_file("bucket", "key", str(tmp_path / "missing.bin"))
        assert isinstance(outcome.error, InputError)
        session.request.assert_not_called()

    def test_put_file_streams_with_fixed_length(self, config, session, tmp_path) -> None:
        source = tmp_path / "photo.png"
        source.write_bytes(b"\x89PNG" * 100)
        session.request.return_value = make_response(200)

        assert S3Client(config, session).put_object_file("bucket", "photo.png", str(source)).ok

        call = request_call(session)
        assert call["headers"]["Content-Type"] == "image/png"
        assert call["headers"]["Content-Length"] == "400"
        assert not isinstance(call["data"], bytes)
        assert len(call["data"]) == 400

    def test_put_stream_measures_size(self, config, session) -> None:
        stream = io.BytesIO(b"0123456789")
        stream.seek(4)
        session.request.return_value = make_response(200)

        outcome = S3Client(config, session).put_object_stream("bucket", "key", stream)

        assert outcome.value.size == 6
        assert request_call(session)["headers"]["Content-Length"] == "6"

    def test_storage_class_and_encryption_headers(self, config, session) -> None:
        session.request.return_value = make_response(200)
        S3Client(config, session).put_object(
            "bucket",
            "key",
            ObjectInput.from_bytes(b"x"),
            storage_class="REDUCED_REDUNDANCY",
            server_side_encryption="AES256",
        )
        headers = request_call(session)["headers"]
        assert headers["x-amz-storage-class"] == "REDUCED_REDUNDANCY"
        assert headers["x-amz-server-side-encryption"] == "AES256"

    def test_object_info_not_found(self, config, session) -> None:
        session.request.return_value = make_response(404)
        outcome = S3Client(config, session).get_object_info("bucket", "missing")

        assert outcome.is_not_found
        assert outcome.error is None

    def test_object_info_forbidden_is_error(self, config, session) -> None:
        session.request.return_value = make_response(403)
        outcome = S3Client(config, session).get_object_info("bucket", "secret")

        assert outcome.is_error
        assert outcome.error.status == 403

    @pytest.mark.parametrize(
        "content_type,body",
        [
            ("text/xml", b"<note>unterminated"),
            ("application/octet-stream", b"<?xml \x00\xff binary"),
            ("application/xml", b"<Error><Code>Stored</Code><Message>document</Message></Error>"),
        ],
    )
    def test_get_object_returns_xml_like_payload_verbatim(self, config, session, content_type, body) -> None:
        session.request.return_value = make_response(200, body, {"Content-Type": content_type})

        outcome = S3Client(config, session).get_object("bucket", "data.xml")

        assert outcome.ok
        assert outcome.value.body == body
        assert outcome.value.info.content_type == content_type

    def test_get_object_error_body_still_parsed(self, config, session) -> None:
        session.request.return_value = make_response(
            403, b"<Error><Code>AccessDenied</Code><Message>Access Denied</Message></Error>"
        )

        outcome = S3Client(config, session).get_object("bucket", "data.xml")

        assert outcome.error.code == "AccessDenied"
        assert outcome.error.message == "Access Denied"

    def test_get_object_to_stream(self, config, session) -> None:
        session.request.side_effect = FakeBucket(["doc.txt"])
        sink = io.BytesIO()

        outcome = S3Client(config, session).get_object_to_stream("bucket", "doc.txt", sink)

        assert outcome.ok
        assert outcome.value.body is None
        assert sink.getvalue() == b"doc.txt"

    def test_get_object_to_file(self, config, session, tmp_path) -> None:
        session.request.side_effect = FakeBucket(["doc.txt"])
        target = tmp_path / "out.txt"

        assert S3Client(config, session).get_object_to_file("bucket", "doc.txt", str(target)).ok
        assert target.read_bytes() == b"doc.txt"

    def test_failed_download_removes_file(self, config, session, tmp_path) -> None:
        session.request.side_effect = FakeBucket()
        target = tmp_path / "out.txt"

        outcome = S3Client(config, session).get_object_to_file("bucket", "missing", str(target))

        assert outcome.error.code == "NoSuchKey"
        assert not target.exists()

    def test_cancelled_download_removes_file(self, config, session, tmp_path) -> None:
        session.request.side_effect = FakeBucket(["a-long-object-name"])
        target = tmp_path / "out.txt"
        cancel = threading.Event()
        cancel.set()

        outcome = S3Client(config, session).get_object_to_file("bucket", "a-long-object-name", str(target), cancel)

        assert isinstance(outcome.error, TransportError)
        assert outcome.error.code == "RequestCancelled"
        assert not target.exists()

    def test_failed_download_keeps_existing_file(self, config, session, tmp_path) -> None:
        session.request.side_effect = FakeBucket()
        target = tmp_path / "out.txt"
        target.write_bytes(b"previous contents")

        outcome = S3Client(config, session).get_object_to_file("bucket", "missing", str(target))

        assert outcome.error.code == "NoSuchKey"
        assert target.read_bytes() == b"previous contents"
        assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]

    def test_download_replaces_existing_file(self, config, session, tmp_path) -> None:
        session.request.side_effect = FakeBucket(["doc.txt"])
        target = tmp_path / "out.txt"
        target.write_bytes(b"previous contents")

        assert S3Client(config, session).get_object_to_file("bucket", "doc.txt", str(target)).ok
        assert target.read_bytes() == b"doc.txt"
        assert [p.name for p in tmp_path.iterdir()] == ["out.txt"]

    def test_delete_object(self, config, session) -> None:
        session.request.return_value = make_response(204)
        assert S3Client(config, session).delete_object("bucket", "key").ok
        assert request_call(session)["method"] == "DELETE"

    def test_delete_expects_no_content(self, config, session) -> None:
        session.request.return_value = make_response(200)
        assert S3Client(config, session).delete_object("bucket", "key").is_error


class TestCopyObject:
    """Test server-side copy."""

    RESULT = b"<CopyObjectResult><LastModified>2009-10-28T22:32:00Z</LastModified><ETag>\"abc\"</ETag></CopyObjectResult>"

    def test_copy_keeps_metadata_by_default(self, config, session) -> None:
        session.request.return_value = make_response(200, self.RESULT)
        outcome = S3Client(config, session).copy_object("src", "a/b c.txt", "dst", "copy.txt")

        headers = request_call(session)["headers"]
        assert outcome.value.etag == "abc"
        assert headers["x-amz-copy-source"] == "/src/a%2Fb%20c.txt"
        assert "x-amz-metadata-directive" not in headers

    def test_copy_with_metadata_replaces(self, config, session) -> None:
        session.request.return_value = make_response(200, self.RESULT)
        S3Client(config, session).copy_object("src", "a", "dst", "b", metadata={"k": "v"})
        assert request_call(session)["headers"]["x-amz-metadata-directive"] == "REPLACE"

    def test_copy_with_headers_replaces(self, config, session) -> None:
        session.request.return_value = make_response(200, self.RESULT)
        S3Client(config, session).copy_object("src", "a", "dst", "b", headers={"Content-Type": "text/html"})
        assert request_call(session)["headers"]["x-amz-metadata-directive"] == "REPLACE"


class TestBucketLogging:
    """Test logging enablement and the LogDelivery grants."""

    def _acl(self, *grants: Grant) -> bytes:
        return build_access_control_policy(AccessControlPolicy(owner=Owner(id="o", display_name="n"), grants=list(grants)))

    def test_adds_missing_grants_once(self, config, session) -> None:
        session.request.side_effect = [
            make_response(200, self._acl(Grant.canonical_user("o", "FULL_CONTROL"))),
            make_response(200),
            make_response(200),
        ]
        assert S3Client(config, session).set_bucket_logging("site", "logs").ok

        acl_put = request_call(session, 1)
        assert acl_put["url"].endswith("/logs/?acl")
        body = acl_put["data"]
        assert body.count(LOG_DELIVERY_GROUP_URI.encode()) == 2

        logging_put = request_call(session, 2)
        assert logging_put["url"].endswith("/site/?logging")
        assert b"<TargetPrefix>site-</TargetPrefix>" in logging_put["data"]

    def test_existing_grants_not_duplicated(self, config, session) -> None:
        session.request.side_effect = [
            make_response(
                200,
                self._acl(Grant.group(LOG_DELIVERY_GROUP_URI, "WRITE"), Grant.group(LOG_DELIVERY_GROUP_URI, "READ_ACP")),
            ),
            make_response(200),
        ]
        assert S3Client(config, session).set_bucket_logging("site", "logs", "custom/").ok

        assert session.request.call_count == 2
        assert request_call(session)["url"].endswith("/site/?logging")

    def test_get_bucket_logging(self, config, session) -> None:
        body = b"""<BucketLoggingStatus xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
            <LoggingEnabled><TargetBucket>logs</TargetBucket><TargetPrefix>site-</TargetPrefix></LoggingEnabled>
            </BucketLoggingStatus>"""
        session.request.return_value = make_response(200, body)

        status = S3Client(config, session).get_bucket_logging("site").value

        assert status.enabled
        assert status.target_bucket == "logs"
        assert status.target_prefix == "site-"
        assert request_call(session)["url"].endswith("/site/?logging")

    def test_get_bucket_logging_disabled(self, config, session) -> None:
        session.request.return_value = make_response(200, b"<BucketLoggingStatus/>")
        assert S3Client(config, session).get_bucket_logging("site").value.enabled is False

    def test_disable_bucket_logging_sends_empty_status(self, config, session) -> None:
        session.request.return_value = make_response(200)

        assert S3Client(config, session).disable_bucket_logging("site").ok

        call = request_call(session)
        assert call["method"] == "PUT"
        assert call["url"].endswith("/site/?logging")
        sent = ET.fromstring(call["data"])
        assert sent.tag == "{http://s3.amazonaws.com/doc/2006-03-01/}BucketLoggingStatus"
        assert len(sent) == 0

    def test_acl_failure_propagates(self, config, session) -> None:
        session.request.return_value = make_response(403, b"<Error><Code>AccessDenied</Code><Message>no</Message></Error>")
        outcome = S3Client(config, session).set_bucket_logging("site", "logs")

        assert outcome.error.code == "AccessDenied"
        assert session.request.call_count == 1


class TestBuckets:
    """Test bucket level calls."""

    def test_put_bucket_with_location(self, config, session) -> None:
        session.request.return_value = make_response(200)
        assert S3Client(config, session).put_bucket("bucket", location="EU").ok

        call = request_call(session)
        assert call["headers"]["x-amz-acl"] == "private"
        assert b"<LocationConstraint>EU</LocationConstraint>" in call["data"]

    def test_delete_bucket(self, config, session) -> None:
        session.request.return_value = make_response(204)
        assert S3Client(config, session).delete_bucket("bucket").ok

    def test_bucket_location_default(self, config, session) -> None:
        session.request.return_value = make_response(200, b"<LocationConstraint/>")
        assert S3Client(config, session).get_bucket_location("bucket").value == "US"

    def test_redirect_requires_arguments(self, config, session) -> None:
        outcome = S3Client(config, session).set_bucket_redirect("bucket", "")
        assert outcome.error.kind is ErrorKind.INPUT
        session.request.assert_not_called()

    def test_set_bucket_redirect(self, config, session) -> None:
        session.request.return_value = make_response(200)

        assert S3Client(config, session).set_bucket_redirect("bucket", "www.example.com").ok

        call = request_call(session)
        assert call["method"] == "PUT"
        assert call["url"].endswith("/bucket/?website")
        sent = ET.fromstring(call["data"])
        assert sent.tag == "WebsiteConfiguration"
        assert sent.findtext("RedirectAllRequestsTo/HostName") == "www.example.com"
        signed = string_to_sign(
            "PUT",
            call["headers"]["Content-MD5"],
            "application/xml",
            call["headers"]["Date"],
            {},
            "/bucket/?website",
        )
        assert call["headers"]["Authorization"] == RequestSigner(config).authorization(signed)

    def test_list_buckets(self, config, session) -> None:
        body = b"""<ListAllMyBucketsResult><Owner><ID>id</ID><DisplayName>me</DisplayName></Owner>
            <Buckets><Bucket><Name>one</Name><CreationDate>2006-02-03T16:45:09.000Z</CreationDate></Bucket></Buckets>
            </ListAllMyBucketsResult>"""
        session.request.return_value = make_response(200, body)
        assert S3Client(config, session).list_buckets().value.names == ["one"]


class TestErrorHandling:
    """Test error classification and raise mode."""

    def test_transport_error_has_status_zero(self, config, session) -> None:
        session.request.side_effect = requests.exceptions.ConnectionError("connection refused")
        outcome = S3Client(config, session).delete_object("bucket", "key")

        assert isinstance(outcome.error, TransportError)
        assert outcome.error.status == 0

    def test_missing_credentials(self, session) -> None:
        outcome = S3Client(StorageConfig(access_key=ACCESS_KEY), session).delete_object("bucket", "key")

        assert isinstance(outcome.error, ConfigurationError)
        session.request.assert_not_called()

    def test_raise_errors_mode(self, config, session) -> None:
        config.raise_errors = True
        session.request.return_value = make_response(500)

        with pytest.raises(ProtocolError) as exc_info:
            S3Client(config, session).delete_object("bucket", "key")
        assert exc_info.value.status == 500

    def test_secret_not_in_error(self, config, session) -> None:
        session.request.side_effect = requests.exceptions.ConnectionError(
            f"failed with secret_key={config.secret_key}"
        )
        outcome = S3Client(config, session).delete_object("bucket", "key")
        assert config.secret_key not in str(outcome.error)


class TestClockSkew:
    """Test opt-in time correction."""

    def test_explicit_offset(self, config, session) -> None:
        assert S3Client(config, session).correct_clock_skew(120).value == 120
        assert config.time_offset == 120
        session.request.assert_not_called()

    def test_measured_offset_uses_unauthenticated_request(self, config, session, monkeypatch) -> None:
        monkeypatch.setattr("alternative_file_storage.services.s3.client.time.time", lambda: 1_000_000_000.0)
        session.request.return_value = make_response(403, headers={"Date": "Sun, 09 Sep 2001 01:48:20 GMT"})

        outcome = S3Client(config, session).correct_clock_skew()

        assert outcome.value == 1_000_000_100 - 1_000_000_000
        assert "Authorization" not in request_call(session)["headers"]
