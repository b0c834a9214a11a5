"""Factories wiring settings to repository and audit logger instances."""

from typing import cast

from audit_timeline.adapters.sqlite_repository import SQLiteAuditEventRepository
from audit_timeline.config.logging_config import get_logger, setup_logging
from audit_timeline.config.settings import Settings, get_settings
from audit_timeline.domain.protocols import AuditEventRepositoryProtocol, RepositoryProtocol
from audit_timeline.observability.metrics import ensure_metrics_exporter
from audit_timeline.services.audit_logger import AuditLogger

logger = get_logger(__name__)


def configure_runtime(
    settings: Settings | None = None, *, start_metrics_exporter: bool = False
) -> Settings:
    """Configure logging (and optionally the metrics exporter) for a host process.

    Args:
        settings: Settings to apply (defaults to the global instance)
        start_metrics_exporter: Start the Prometheus HTTP exporter

    Returns:
        The applied settings
    """
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_logs=settings.log_json)
    if start_metrics_exporter:
        ensure_metrics_exporter()
    logger.info(
        "runtime_configured",
        log_level=settings.log_level,
        json_logs=settings.log_json,
        metrics_exporter=start_metrics_exporter,
    )
    return settings


def create_repository(settings: Settings) -> RepositoryProtocol:
    """Create the SQLite repository configured by settings.

    Raises:
        RepositoryError: On schema creation errors
    """
    logger.info("repository_sqlite_selected", path=settings.db_path)
    return cast(RepositoryProtocol, SQLiteAuditEventRepository(db_path=settings.db_path))


def create_audit_logger(
    settings: Settings | None = None,
    repository: AuditEventRepositoryProtocol | None = None,
) -> AuditLogger:
    """Create an AuditLogger using the configured window and lock policy."""
    settings = settings or get_settings()
    return AuditLogger(
        repository or create_repository(settings),
        window_seconds=settings.write_window_seconds,
        provenance_marker=settings.provenance_marker,
        advisory_lock=settings.advisory_lock_enabled,
    )
