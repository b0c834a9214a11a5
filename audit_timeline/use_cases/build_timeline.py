"""Build timeline use case.

Gathers every event-like record about a subject, makes sure the timeline
starts with a creation event and collapses duplicates into one entry per
logical action.
"""

from collections.abc import Mapping
from datetime import datetime
from time import perf_counter
from typing import Any

from audit_timeline.config.logging_config import get_logger
from audit_timeline.config.settings import Settings
from audit_timeline.domain.deduplication_constants import APPLICATION_CREATED_ACTION
from audit_timeline.domain.exceptions import RepositoryError
from audit_timeline.domain.models import (
    EntityRef,
    EventKind,
    RawEvent,
    TimelineResult,
)
from audit_timeline.domain.protocols import TimelineSourceProtocol
from audit_timeline.observability.metrics import STAGE_DURATION_SECONDS
from audit_timeline.observability.tracing import correlation_scope
from audit_timeline.services import deduplicator
from audit_timeline.services.fingerprint import is_creation_action

logger = get_logger(__name__)


def _record_action(record: Any) -> str | None:
    """Action of a RawEvent, mapping or attribute row; None when absent."""
    if isinstance(record, Mapping):
        action = record.get("action")
    else:
        action = getattr(record, "action", None)
    return action if isinstance(action, str) else None


def synthesize_creation_event(
    subject: EntityRef,
    created_at: datetime,
    owner: EntityRef | None = None,
) -> RawEvent:
    """Creation event for legacy subjects that never logged one."""
    return RawEvent(
        event_id=f"synthesized-{subject.key}",
        kind=EventKind.AUDIT_EVENT,
        action=APPLICATION_CREATED_ACTION,
        subject=subject,
        actor=owner,
        created_at=created_at,
        metadata={"synthesized": True},
    )


def build_timeline_use_case(
    source: TimelineSourceProtocol,
    subject: EntityRef,
    settings: Settings,
    *,
    subject_created_at: datetime | None = None,
    subject_owner: EntityRef | None = None,
    correlation_id: str | None = None,
) -> TimelineResult:
    """Assemble the deduplicated timeline for a subject.

    1. Fetch every record about the subject from the source
    2. Prefer a persisted creation event; otherwise synthesize one from
       subject_created_at (when given)
    3. Deduplicate with the configured read window
    4. Return events newest first with counts

    Storage failures degrade to an empty timeline with the error recorded;
    a timeline is best-effort and must not break the page showing it.

    Args:
        source: Timeline source implementation
        subject: Entity whose history is requested
        settings: Application settings
        subject_created_at: Subject creation time for the fallback creation event
        subject_owner: Actor attributed to a synthesized creation event

    Returns:
        TimelineResult

    Example:
        >>> result = build_timeline_use_case(repo, EntityRef(type="Application", id="42"), settings)
        >>> [event.action for event in result.events]
        ['proof_reviewed', 'application_status_changed', 'application_created']
    """
    with correlation_scope(correlation_id) as bound_correlation_id:
        stage_start = perf_counter()
        try:
            try:
                records = source.fetch_subject_events(subject)
            except RepositoryError as e:
                logger.error(
                    "timeline_source_failed",
                    correlation_id=bound_correlation_id,
                    subject=subject.key,
                    error=str(e),
                )
                return TimelineResult(errors=[f"Failed to load audit records: {e}"])

            raw_count = len(records)
            has_creation = any(
                is_creation_action(action)
                for action in map(_record_action, records)
                if action is not None
            )
            if not has_creation and subject_created_at is not None:
                records = [
                    *records,
                    synthesize_creation_event(subject, subject_created_at, subject_owner),
                ]
                logger.info(
                    "timeline_creation_event_synthesized",
                    correlation_id=bound_correlation_id,
                    subject=subject.key,
                )

            report = deduplicator.deduplicate_events(
                records, window_seconds=settings.read_window_seconds
            )
            result = TimelineResult(
                events=report.events,
                raw_count=raw_count,
                skipped_count=report.skipped_count,
                collapsed_count=report.collapsed_count,
            )

            logger.info(
                "timeline_built",
                correlation_id=bound_correlation_id,
                subject=subject.key,
                raw_count=raw_count,
                event_count=len(result.events),
                collapsed_count=result.collapsed_count,
                skipped_count=result.skipped_count,
            )
            return result
        finally:
            STAGE_DURATION_SECONDS.labels(stage="timeline").observe(
                perf_counter() - stage_start
            )
