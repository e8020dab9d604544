"""Entry point: validate the configured storage and serve health endpoints."""

from __future__ import annotations

import logging
import os
import signal
import threading

from . import health
from . import logging as structured_logging
from .config import StorageConfig
from .exceptions import ConfigurationError, StorageError
from .services.s3.client import S3Client
from .services.s3.storage import PrefixedObjectStore
from .tracing import initialize_tracing
from .utils.errors import sanitize_exception
from .validation import validate_storage

logger = logging.getLogger(__name__)


def build_store_from_env() -> PrefixedObjectStore:
    """Create the object store described by ``S3_*`` environment variables.

    Raises:
        StorageError: If the bucket or credentials are missing
    """
    config = StorageConfig.from_env()
    config.require_auth()
    bucket = os.getenv("S3_BUCKET")
    if not bucket:
        raise ConfigurationError("S3_BUCKET is required")
    return PrefixedObjectStore(S3Client(config), bucket, os.getenv("S3_PATH", ""))


def main() -> int:
    """Run the storage health service until SIGTERM or SIGINT."""
    level = logging.DEBUG if os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG" else logging.INFO
    structured_logging.setup_structured_logging(level)
    initialize_tracing()

    try:
        store = build_store_from_env()
    except StorageError as e:
        logger.error(f"Invalid storage configuration: {sanitize_exception(e)}")
        return 1

    report = validate_storage(store)
    if report.ok:
        logger.info(report.message)
    else:
        logger.error(f"Storage validation failed: {report.message}")

    port = int(os.getenv("HEALTH_PORT", "8080"))
    server = health.start_health_server(port, readiness_check=store.test_connectivity)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    stop.wait()
    server.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
