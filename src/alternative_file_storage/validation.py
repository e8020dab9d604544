"""Connectivity and credential probe for the admin settings screen."""

from __future__ import annotations

import logging
from typing import Callable

from . import metrics
from .constants import PROBE_OBJECT_NAME
from .exceptions import StorageError
from .services.s3.base import ObjectStore
from .services.s3.models import Outcome, ValidationReport

logger = logging.getLogger(__name__)

PendingCounter = Callable[[], tuple[int, int]]


def _check(step: str, outcome: Outcome) -> None:
    if outcome.error is not None:
        raise outcome.error
    if outcome.is_not_found:
        raise StorageError(f"Probe object vanished during {step}", status=404, code="NoSuchKey")


def validate_storage(store: ObjectStore, pending_counter: PendingCounter | None = None) -> ValidationReport:
    """Write, stat and delete a probe object.

    Args:
        store: Object store to validate
        pending_counter: Optional callable returning (missing, sending) file counts

    Returns:
        ValidationReport describing the result
    """
    payload = b"alternative-file-storage probe"
    try:
        _check("upload", store.put_bytes(PROBE_OBJECT_NAME, payload))
        stat = store.stat(PROBE_OBJECT_NAME)
        _check("stat", stat)
        if stat.value is not None and stat.value.size not in (None, len(payload)):
            raise StorageError("Probe object size mismatch", code="ProbeMismatch")
        _check("delete", store.delete(PROBE_OBJECT_NAME))
    except StorageError as e:
        logger.warning(f"Storage validation failed: {e}")
        metrics.probe_total.labels(result="failure").inc()
        return ValidationReport(ok=False, message=str(e))

    metrics.probe_total.labels(result="success").inc()
    report = ValidationReport(ok=True, message="Storage configuration is valid")
    if pending_counter is not None:
        report.missing_count, report.sending_count = pending_counter()
    return report
