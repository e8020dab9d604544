"""Content type lookup for uploads."""

from __future__ import annotations

import mimetypes
from pathlib import PurePath

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_EXTENSIONS = {
    "jpg": "image/jpeg", "jpeg": "image/jpeg", "gif": "image/gif",
    "png": "image/png", "ico": "image/x-icon", "pdf": "application/pdf",
    "tif": "image/tiff", "tiff": "image/tiff", "svg": "image/svg+xml",
    "svgz": "image/svg+xml", "swf": "application/x-shockwave-flash",
    "zip": "application/zip", "gz": "application/x-gzip",
    "tar": "application/x-tar", "bz": "application/x-bzip",
    "bz2": "application/x-bzip2", "rar": "application/x-rar-compressed",
    "exe": "application/x-msdownload", "msi": "application/x-msdownload",
    "cab": "application/vnd.ms-cab-compressed", "txt": "text/plain",
    "asc": "text/plain", "htm": "text/html", "html": "text/html",
    "css": "text/css", "js": "text/javascript",
    "xml": "text/xml", "xsl": "application/xsl+xml",
    "ogg": "application/ogg", "mp3": "audio/mpeg", "wav": "audio/x-wav",
    "avi": "video/x-msvideo", "mpg": "video/mpeg", "mpeg": "video/mpeg",
    "mov": "video/quicktime", "flv": "video/x-flv", "php": "text/x-php",
}


def guess_content_type(filename: str) -> str:
    """Guess a MIME type from a file name's extension."""
    ext = PurePath(filename).suffix.lower().lstrip(".")
    if ext in _EXTENSIONS:
        return _EXTENSIONS[ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_CONTENT_TYPE
