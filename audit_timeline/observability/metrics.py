"""Prometheus metrics for the audit write path and timeline reads.

Metrics register on the default prometheus_client registry at import time.
The HTTP exporter is never started implicitly; host services call
``ensure_metrics_exporter`` when they want one.
"""

from __future__ import annotations

import os
import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from audit_timeline.config.logging_config import get_logger

logger = get_logger(__name__)

AUDIT_WRITES_TOTAL: Final[Counter] = Counter(
    "audit_timeline_writes_total",
    "Audit write attempts by outcome",
    labelnames=("outcome",),
)

TIMELINE_RECORDS_SKIPPED_TOTAL: Final[Counter] = Counter(
    "audit_timeline_records_skipped_total",
    "Malformed event-like records skipped during timeline deduplication",
)

TIMELINE_RECORDS_COLLAPSED_TOTAL: Final[Counter] = Counter(
    "audit_timeline_records_collapsed_total",
    "Records merged into another record during timeline deduplication",
)

STAGE_DURATION_SECONDS: Final[Histogram] = Histogram(
    "audit_timeline_stage_duration_seconds",
    "Duration of audit timeline stages in seconds",
    labelnames=("stage",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False
_DEFAULT_METRICS_PORT: Final[int] = 9000
_METRICS_PORT_ENV: Final[str] = "METRICS_PORT"


def _resolve_metrics_port() -> int:
    port_raw = os.getenv(_METRICS_PORT_ENV)
    try:
        return int(port_raw) if port_raw else _DEFAULT_METRICS_PORT
    except ValueError:
        logger.warning("invalid_metrics_port", port=port_raw)
        return _DEFAULT_METRICS_PORT


def ensure_metrics_exporter() -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        port = _resolve_metrics_port()

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error(
                "metrics_exporter_start_failed",
                port=port,
                error=str(exc),
            )
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "AUDIT_WRITES_TOTAL",
    "STAGE_DURATION_SECONDS",
    "TIMELINE_RECORDS_COLLAPSED_TOTAL",
    "TIMELINE_RECORDS_SKIPPED_TOTAL",
    "ensure_metrics_exporter",
]
