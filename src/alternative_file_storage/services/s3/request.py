"""Request description and HTTP execution for the S3 and CloudFront APIs."""

from __future__ import annotations

import base64
import hashlib
import io
import logging
import os
import ssl
import tempfile
import threading
import time
from contextlib import ExitStack
from dataclasses import dataclass
from email.utils import formatdate
from typing import IO, Any, Collection
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from urllib3.util.ssl_ import create_urllib3_context

from ... import metrics
from ...config import StorageConfig
from ...constants import AMZ_HEADER_PREFIX, CHUNK_SIZE, MISSING_INPUT_MESSAGE
from ...exceptions import InputError, StorageError, TransportError
from ...logging import log_request_event
from ...tracing import set_span_status, trace_span
from ...utils.errors import sanitize_exception
from ...utils.mime import guess_content_type
from .response import RawResponse, S3Response, parse_response
from .signer import RequestSigner, canonical_resource, string_to_sign

logger = logging.getLogger(__name__)

AUTH_HEADER = "header"
AUTH_DATE = "date"
AUTH_ANONYMOUS = "anonymous"


def _md5_base64(chunks: Any) -> str:
    digest = hashlib.md5()
    for chunk in chunks:
        digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")


def _read_chunks(stream: IO[bytes]) -> Any:
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


@dataclass
class ObjectInput:
    """Upload source: exactly one of ``data``, ``path`` or ``stream``.

    ``size`` must be known before the request starts. ``md5`` is the
    base64 Content-MD5 value, or None to send no integrity header.
    """

    size: int
    data: bytes | None = None
    path: str | None = None
    stream: IO[bytes] | None = None
    md5: str | None = None
    content_type: str | None = None

    @classmethod
    def from_bytes(cls, data: bytes | str, md5: bool = True) -> ObjectInput:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls(size=len(data), data=data, md5=_md5_base64([data]) if md5 else None)

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], md5: bool | str = True) -> ObjectInput:
        """Describe a local file as upload source.

        Args:
            path: File to upload
            md5: True to compute Content-MD5, a precomputed base64 value, or False

        Raises:
            InputError: If the file is missing or unreadable
        """
        path = os.fspath(path)
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise InputError(f"Unable to open input file: {path}")

        checksum: str | None = None
        try:
            size = os.path.getsize(path)
            if md5 is True:
                with open(path, "rb") as fh:
                    checksum = _md5_base64(_read_chunks(fh))
            elif md5:
                checksum = md5
        except OSError as e:
            raise InputError(f"Unable to open input file: {path}") from e

        return cls(size=size, path=path, md5=checksum, content_type=guess_content_type(path))

    @classmethod
    def from_stream(
        cls,
        stream: IO[bytes],
        size: int | None = None,
        md5: str | None = None,
    ) -> ObjectInput:
        """Describe an open binary stream as upload source.

        When ``size`` is omitted the stream is sought to its end to measure
        the remaining bytes and then rewound to its current position.

        Raises:
            InputError: If the size cannot be determined
        """
        if size is None:
            try:
                position = stream.tell()
                size = stream.seek(0, io.SEEK_END) - position
                stream.seek(position)
            except (AttributeError, OSError, ValueError) as e:
                raise InputError(MISSING_INPUT_MESSAGE) from e
        return cls(size=size, stream=stream, md5=md5)

    def validate(self) -> None:
        sources = [s for s in (self.data, self.path, self.stream) if s is not None]
        if len(sources) != 1:
            raise InputError("Exactly one input source is required")
        if self.size is None or self.size < 0:
            raise InputError(MISSING_INPUT_MESSAGE)


class PendingRequest:
    """One API call before it is signed and sent.

    ``path`` is path-style: the bucket is the first segment and the object
    key is percent-encoded with ``/`` kept as separator. CloudFront calls
    pass an explicit ``path`` instead of a bucket and key. ``expects_xml``
    is False for calls whose success body is object data.
    """

    def __init__(
        self,
        verb: str,
        bucket: str = "",
        key: str = "",
        endpoint: str | None = None,
        path: str | None = None,
        expected_status: Collection[int] = (200,),
        auth_mode: str = AUTH_HEADER,
        api_type: str = "s3",
        expects_xml: bool = True,
    ) -> None:
        self.verb = verb.upper()
        self.bucket = bucket
        self.key = key
        self.endpoint = endpoint
        self.expected_status = frozenset(expected_status)
        self.auth_mode = auth_mode
        self.api_type = api_type
        self.expects_xml = expects_xml
        self.headers: CaseInsensitiveDict[str] = CaseInsensitiveDict()
        self.amz_headers: dict[str, list[str]] = {}
        self.params: dict[str, str | None] = {}
        self.body: ObjectInput | None = None
        self.sink: IO[bytes] | None = None
        self.sink_path: str | None = None
        self._path = path

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def set_amz_header(self, name: str, value: str) -> None:
        """Set an ``x-amz-*`` header, replacing earlier values."""
        self.amz_headers[name.lower()] = [value]

    def add_amz_header(self, name: str, value: str) -> None:
        self.amz_headers.setdefault(name.lower(), []).append(value)

    def add_header(self, name: str, value: str) -> None:
        """Route a caller-supplied header to the plain or ``x-amz-*`` set."""
        if name.lower().startswith(AMZ_HEADER_PREFIX):
            self.set_amz_header(name, value)
        else:
            self.set_header(name, value)

    def set_parameter(self, name: str, value: str | None = None) -> None:
        self.params[name] = value

    @property
    def path(self) -> str:
        if self._path is not None:
            return self._path
        if not self.bucket:
            return "/"
        return f"/{self.bucket}/{quote(self.key, safe='/~')}"

    @property
    def resource(self) -> str:
        return canonical_resource(self.path, self.params)

    @property
    def query(self) -> str:
        parts = []
        for name, value in self.params.items():
            parts.append(name if value is None else f"{name}={quote(str(value), safe='')}")
        return "&".join(parts)

    def url(self, config: StorageConfig) -> str:
        scheme = "https" if self.api_type == "cloudfront" else config.scheme
        url = f"{scheme}://{self.endpoint or config.endpoint}{self.path}"
        if self.params:
            url += "?" + self.query
        return url


class RequestCancelled(Exception):
    """Raised from inside the transfer when the cancel event is set."""


class _UploadBody:
    """File-like wrapper that exposes a fixed length.

    requests derives Content-Length from ``__len__``; having no
    ``__iter__`` keeps it from switching to chunked transfer encoding.
    """

    def __init__(self, stream: IO[bytes], size: int, cancel: threading.Event | None = None) -> None:
        self.stream = stream
        self.size = size
        self.cancel = cancel
        self.sent = 0

    def __len__(self) -> int:
        return self.size

    def read(self, amt: int | None = -1) -> bytes:
        if self.cancel is not None and self.cancel.is_set():
            raise RequestCancelled()
        remaining = self.size - self.sent
        if remaining <= 0:
            return b""
        wanted = CHUNK_SIZE if amt is None or amt < 0 else amt
        chunk = self.stream.read(min(wanted, remaining))
        self.sent += len(chunk)
        return chunk


class _DownloadTarget:
    """Temporary file beside ``path`` that replaces it only on commit.

    An existing file at ``path`` is left untouched by failed downloads.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        directory = os.path.dirname(os.path.abspath(path))
        try:
            fd, self.partial = tempfile.mkstemp(
                dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".part"
            )
        except OSError as e:
            raise InputError(f"Unable to open save file for writing: {path}") from e
        self.file = os.fdopen(fd, "wb")

    def commit(self) -> None:
        self.file.close()
        try:
            os.replace(self.partial, self.path)
        except OSError as e:
            self.discard()
            raise InputError(f"Unable to open save file for writing: {self.path}") from e

    def discard(self) -> None:
        self.file.close()
        try:
            os.remove(self.partial)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove partial download {self.partial}: {e}")


class TLSAdapter(HTTPAdapter):
    """HTTPAdapter that pins a minimum TLS protocol version."""

    def __init__(self, minimum_version: Any = None, verify: bool = True, **kwargs: Any) -> None:
        self.minimum_version = minimum_version
        self.verify_certificates = verify
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        if self.minimum_version is not None:
            kwargs["ssl_context"] = create_urllib3_context(
                ssl_minimum_version=self.minimum_version,
                cert_reqs=ssl.CERT_REQUIRED if self.verify_certificates else ssl.CERT_NONE,
            )
        super().init_poolmanager(*args, **kwargs)


def build_session(config: StorageConfig) -> requests.Session:
    """Create a session honoring the TLS pin and proxy settings."""
    session = requests.Session()
    session.mount(
        "https://",
        TLSAdapter(minimum_version=config.minimum_tls_version(), verify=config.ssl_validation),
    )
    if config.proxy is not None:
        proxy_url = config.proxy.url()
        session.proxies = {"http": proxy_url, "https": proxy_url}
    return session


class RequestExecutor:
    """Signs and performs PendingRequests; no retries happen here."""

    def __init__(self, config: StorageConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.signer = RequestSigner(config)
        self.session = session or build_session(config)

    def prepare_headers(self, request: PendingRequest) -> dict[str, str]:
        """Compute the final header set, including Date and Authorization."""
        headers: dict[str, str] = {}
        date = formatdate(self.signer.now(), usegmt=True)

        if request.body is not None:
            request.body.validate()
            if "Content-Type" not in request.headers:
                request.headers["Content-Type"] = request.body.content_type or guess_content_type(
                    request.key
                )
            if request.body.md5 and "Content-MD5" not in request.headers:
                request.headers["Content-MD5"] = request.body.md5
            headers["Content-Length"] = str(request.body.size)

        headers.update(request.headers)
        headers["Date"] = date
        headers["Accept-Encoding"] = "identity"
        for name, values in request.amz_headers.items():
            headers[name] = ",".join(values)

        if request.auth_mode == AUTH_HEADER:
            string = string_to_sign(
                request.verb,
                request.headers.get("Content-MD5", ""),
                request.headers.get("Content-Type", ""),
                date,
                request.amz_headers,
                request.resource,
            )
            headers["Authorization"] = self.signer.authorization(string)
        elif request.auth_mode == AUTH_DATE:
            headers["Authorization"] = self.signer.authorization(date)
        return headers

    def execute(
        self,
        request: PendingRequest,
        operation: str,
        cancel: threading.Event | None = None,
    ) -> S3Response:
        """Perform one HTTP exchange and classify the result.

        Args:
            request: Request description
            operation: Operation name used for logging and metrics
            cancel: Optional event; once set the exchange is aborted

        Returns:
            Classified response; transport failures carry status 0

        Raises:
            ConfigurationError: If credentials are missing
            InputError: If the upload source or download target is unusable
        """
        headers = self.prepare_headers(request)
        url = request.url(self.config)
        host = request.endpoint or self.config.endpoint
        start = time.monotonic()

        with trace_span(
            f"{request.api_type}.{operation}",
            attributes={"http.method": request.verb, "http.host": host, "storage.bucket": request.bucket},
        ):
            raw = self._send(request, headers, url, cancel)
            duration = time.monotonic() - start
            response = parse_response(raw, request.expected_status, request.expects_xml)
            set_span_status(response.ok, str(response.error) if response.error else None)

        metrics.request_total.labels(
            api_type=request.api_type,
            operation=operation,
            result="success" if response.ok else "failure",
        ).inc()
        metrics.request_duration_seconds.labels(api_type=request.api_type, operation=operation).observe(duration)
        log_request_event(
            logger,
            operation,
            request.verb,
            host,
            request.path,
            raw.status,
            duration * 1000,
            headers=headers,
            bytes_sent=request.body.size if request.body is not None else 0,
        )
        return response

    def _send(
        self,
        request: PendingRequest,
        headers: dict[str, str],
        url: str,
        cancel: threading.Event | None,
    ) -> RawResponse:
        with ExitStack() as stack:
            data: Any = None
            body = request.body
            if body is not None:
                if body.data is not None:
                    data = body.data
                elif body.path is not None:
                    try:
                        fh = stack.enter_context(open(body.path, "rb"))
                    except OSError as e:
                        raise InputError(f"Unable to open input file: {body.path}") from e
                    data = _UploadBody(fh, body.size, cancel)
                else:
                    data = _UploadBody(body.stream, body.size, cancel)  # type: ignore[arg-type]

            sink = request.sink
            target: _DownloadTarget | None = None
            if request.sink_path is not None:
                target = _DownloadTarget(request.sink_path)
                stack.callback(target.discard)
                sink = target.file

            try:
                if cancel is not None and cancel.is_set():
                    raise RequestCancelled()
                http_response = self.session.request(
                    request.verb,
                    url,
                    headers=headers,
                    data=data,
                    stream=True,
                    allow_redirects=False,
                    timeout=self.config.timeout,
                    verify=self.config.verify(),
                    cert=self.config.client_cert(),
                )
            except RequestCancelled:
                return RawResponse(0, transport_error=TransportError("Request cancelled", code="RequestCancelled"))
            except requests.exceptions.RequestException as e:
                return RawResponse(0, transport_error=TransportError(sanitize_exception(e)))

            if body is not None:
                metrics.bytes_transferred_total.labels(direction="upload").inc(body.size)

            try:
                response_headers = {k.lower(): v for k, v in http_response.headers.items()}
                status = http_response.status_code
                if sink is not None and status in request.expected_status and 200 <= status < 300:
                    received = 0
                    for chunk in http_response.raw.stream(CHUNK_SIZE, decode_content=False):
                        if cancel is not None and cancel.is_set():
                            raise RequestCancelled()
                        sink.write(chunk)
                        received += len(chunk)
                    metrics.bytes_transferred_total.labels(direction="download").inc(received)
                    content = b""
                else:
                    content = http_response.content
                    metrics.bytes_transferred_total.labels(direction="download").inc(len(content))
            except RequestCancelled:
                return RawResponse(0, transport_error=TransportError("Request cancelled", code="RequestCancelled"))
            except (requests.exceptions.RequestException, OSError) as e:
                return RawResponse(0, transport_error=TransportError(sanitize_exception(e)))
            finally:
                http_response.close()

            if target is not None and status in request.expected_status and 200 <= status < 300:
                target.commit()
            return RawResponse(status, response_headers, content)


def execute_request(
    executor: RequestExecutor,
    request: PendingRequest,
    operation: str,
    cancel: threading.Event | None = None,
) -> S3Response:
    """Run a request, folding local failures into the response error."""
    try:
        return executor.execute(request, operation, cancel)
    except StorageError as e:
        return S3Response(status=0, error=e)
