"""Event deduplication service (read path).

Rules:
1. Records are grouped by (fingerprint, 60s bucket)
2. Creation records NEVER merge
3. One representative per group: priority, then latest created_at,
   then lowest event_id, then input position
4. Output is newest first

Running the service on its own output returns the same list: after one
pass no two non-creation records share a (fingerprint, bucket) key.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from audit_timeline.config.logging_config import get_logger
from audit_timeline.domain.deduplication_constants import DEFAULT_READ_WINDOW_SECONDS
from audit_timeline.domain.exceptions import MalformedEventError
from audit_timeline.domain.models import RawEvent
from audit_timeline.observability.metrics import (
    TIMELINE_RECORDS_COLLAPSED_TOTAL,
    TIMELINE_RECORDS_SKIPPED_TOTAL,
)
from audit_timeline.services.priority_ranker import priority
from audit_timeline.services.time_bucketer import group_events, select_representative

logger = get_logger(__name__)


@dataclass
class DeduplicationReport:
    """Outcome of one read-time deduplication pass."""

    events: list[RawEvent] = field(default_factory=list)
    input_count: int = 0
    skipped_count: int = 0
    group_count: int = 0

    @property
    def collapsed_count(self) -> int:
        """Valid records that were merged into another record."""
        return self.input_count - self.skipped_count - len(self.events)


def coerce_event(record: Any, position: int | None = None) -> RawEvent:
    """Turn an event-like record into a RawEvent.

    Accepts RawEvent instances, mappings and attribute-bearing objects
    (ORM rows, dataclasses).

    Raises:
        MalformedEventError: If required fields are missing or invalid
    """
    if isinstance(record, RawEvent):
        return record

    try:
        return RawEvent.model_validate(record, from_attributes=True)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        raise MalformedEventError(
            f"Malformed event record (invalid fields: {', '.join(fields) or 'record'})",
            position=position,
        ) from e


def _coerce_all(records: Iterable[Any]) -> tuple[list[RawEvent], int, int]:
    events: list[RawEvent] = []
    skipped = 0
    total = 0
    for position, record in enumerate(records):
        total += 1
        try:
            events.append(coerce_event(record, position))
        except MalformedEventError as e:
            skipped += 1
            logger.warning(
                "timeline_event_skipped",
                position=e.position,
                record_type=type(record).__name__,
                error=str(e),
            )
    return events, skipped, total


def deduplicate_events(
    records: Iterable[Any],
    window_seconds: int = DEFAULT_READ_WINDOW_SECONDS,
) -> DeduplicationReport:
    """Deduplicate event-like records and report what happened.

    Args:
        records: RawEvents, mappings or attribute objects in any order
        window_seconds: Bucket width (default: 60)

    Returns:
        DeduplicationReport with the newest-first events
    """
    events, skipped, total = _coerce_all(records)
    if not events:
        if skipped:
            TIMELINE_RECORDS_SKIPPED_TOTAL.inc(skipped)
        return DeduplicationReport(input_count=total, skipped_count=skipped)

    groups = group_events(events, window_seconds)
    winners = [select_representative(group) for group in groups]
    # Stable sort: full ties keep group order, which keeps reruns identical.
    ordered = sorted(
        winners,
        key=lambda event: (event.epoch_seconds, priority(event)),
        reverse=True,
    )

    report = DeduplicationReport(
        events=ordered,
        input_count=total,
        skipped_count=skipped,
        group_count=len(groups),
    )

    if skipped:
        TIMELINE_RECORDS_SKIPPED_TOTAL.inc(skipped)
    if report.collapsed_count:
        TIMELINE_RECORDS_COLLAPSED_TOTAL.inc(report.collapsed_count)

    logger.debug(
        "timeline_deduplicated",
        input_count=total,
        output_count=len(ordered),
        skipped_count=skipped,
        collapsed_count=report.collapsed_count,
        window_seconds=window_seconds,
    )
    return report


def deduplicate(
    records: Iterable[Any],
    window_seconds: int = DEFAULT_READ_WINDOW_SECONDS,
) -> list[RawEvent]:
    """Deduplicate records into a newest-first timeline.

    Example:
        >>> deduped = deduplicate(events)
        >>> deduplicate(deduped) == deduped
        True
    """
    return deduplicate_events(records, window_seconds).events
