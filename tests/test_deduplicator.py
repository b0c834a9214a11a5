"""Tests for the read-time event deduplication service."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import pytest
from structlog.testing import capture_logs

from audit_timeline.domain.exceptions import MalformedEventError
from audit_timeline.domain.models import EventKind, RawEvent
from audit_timeline.services import deduplicator
from tests.conftest import APPLICATION, at, make_event

SUBMITTED = {"proof_type": "income", "submission_method": "paper"}
DRAFT_TO_IN_PROGRESS = {"from_status": "draft", "to_status": "in_progress"}


def mixed_events() -> list[RawEvent]:
    return [
        make_event(action="application_created", seconds=0),
        make_event(action="application_created", seconds=0),
        make_event(
            action="application_status_changed",
            kind=EventKind.STATUS_CHANGE,
            seconds=1,
            from_status="draft",
            to_status="in_progress",
        ),
        make_event(
            action="application_status_changed",
            kind=EventKind.AUDIT_EVENT,
            seconds=1,
            metadata={"old_status": "draft", "new_status": "in_progress"},
        ),
        make_event(
            action="application_status_changed",
            kind=EventKind.NOTIFICATION,
            seconds=2,
            metadata=DRAFT_TO_IN_PROGRESS,
        ),
        make_event(seconds=10, metadata=SUBMITTED),
        make_event(seconds=20, metadata=SUBMITTED),
        make_event(seconds=90, metadata=SUBMITTED),
        make_event(action="voucher_assigned", seconds=200, kind="webhook_delivery"),
    ]


def test_empty_input_returns_empty() -> None:
    assert deduplicator.deduplicate([]) == []


def test_idempotent() -> None:
    once = deduplicator.deduplicate(mixed_events())
    twice = deduplicator.deduplicate(once)

    assert twice == once


def test_output_newest_first() -> None:
    result = deduplicator.deduplicate(mixed_events())
    timestamps = [event.created_at for event in result]

    assert timestamps == sorted(timestamps, reverse=True)


def test_mixed_events_collapse() -> None:
    result = deduplicator.deduplicate(mixed_events())

    # 2 creations + 1 status change + 2 submission buckets + 1 voucher
    assert len(result) == 6
    status_entries = [e for e in result if e.action == "application_status_changed"]
    assert len(status_entries) == 1
    assert status_entries[0].kind == EventKind.STATUS_CHANGE.value


def test_creation_events_never_merge() -> None:
    events = [
        make_event(action="application_created", seconds=0, event_id="c1"),
        make_event(action="application_created", seconds=0, event_id="c2"),
    ]

    result = deduplicator.deduplicate(events)

    assert {event.event_id for event in result} == {"c1", "c2"}


def test_window_61_seconds_apart_both_survive() -> None:
    events = [
        make_event(seconds=0, metadata=SUBMITTED),
        make_event(seconds=61, metadata=SUBMITTED),
    ]

    assert len(deduplicator.deduplicate(events)) == 2


def test_window_5_seconds_apart_merge() -> None:
    events = [
        make_event(seconds=10, metadata=SUBMITTED),
        make_event(seconds=15, metadata=SUBMITTED),
    ]

    assert len(deduplicator.deduplicate(events)) == 1


def test_proof_submitted_10_seconds_apart_returns_one_event() -> None:
    earlier = make_event(seconds=10, metadata=SUBMITTED)
    later = make_event(seconds=20, metadata=SUBMITTED)

    result = deduplicator.deduplicate([earlier, later])

    assert result == [later]


def test_status_change_beats_notification() -> None:
    notification = make_event(
        action="application_status_changed",
        kind=EventKind.NOTIFICATION,
        seconds=3,
        metadata=DRAFT_TO_IN_PROGRESS,
    )
    status_change = make_event(
        action="application_status_changed",
        kind=EventKind.STATUS_CHANGE,
        seconds=1,
        from_status="draft",
        to_status="in_progress",
    )

    result = deduplicator.deduplicate([notification, status_change])

    assert result == [status_change]


def test_distinct_events_all_retained_newest_first() -> None:
    creation = make_event(action="application_created", seconds=0)
    status_change = make_event(
        kind=EventKind.STATUS_CHANGE,
        action="application_status_changed",
        seconds=1,
        from_status="draft",
        to_status="in_progress",
    )
    notice = make_event(
        action="status_changed_notice", kind=EventKind.NOTIFICATION, seconds=1
    )
    review = make_event(
        kind=EventKind.PROOF_REVIEW,
        action="proof_reviewed",
        seconds=65,
        proof_type="income",
        status="approved",
    )

    result = deduplicator.deduplicate([creation, status_change, notice, review])

    assert result == [review, status_change, notice, creation]


def test_same_action_different_metadata_not_collapsed() -> None:
    events = [
        make_event(
            action="income_proof_attached",
            seconds=1,
            metadata={"proof_type": "income", "blob_id": 1},
        ),
        make_event(
            action="income_proof_attached",
            seconds=2,
            metadata={"proof_type": "income", "blob_id": 2},
        ),
    ]

    assert len(deduplicator.deduplicate(events)) == 2


def test_attachments_without_proof_type_not_collapsed() -> None:
    events = [
        make_event(action="income_proof_attached", seconds=1, metadata={"blob_id": 1}),
        make_event(action="income_proof_attached", seconds=2, metadata={"blob_id": 2}),
    ]

    assert len(deduplicator.deduplicate(events)) == 2


def test_non_string_metadata_keys_kept() -> None:
    record = {"action": "voucher_assigned", "created_at": at(0), "metadata": {1: "x"}}

    report = deduplicator.deduplicate_events([record])

    assert report.skipped_count == 0
    assert report.events[0].metadata == {"1": "x"}


def test_winner_independent_of_input_order() -> None:
    events = mixed_events()

    forward = {event.event_id for event in deduplicator.deduplicate(events)}
    backward = {event.event_id for event in deduplicator.deduplicate(list(reversed(events)))}

    assert forward == backward


def test_custom_window() -> None:
    events = [
        make_event(seconds=0, metadata=SUBMITTED),
        make_event(seconds=100, metadata=SUBMITTED),
    ]

    assert len(deduplicator.deduplicate(events, window_seconds=3600)) == 1


def test_accepts_mappings_and_attribute_objects() -> None:
    @dataclass
    class StatusChangeRow:
        kind: str
        from_status: str
        to_status: str
        created_at: datetime
        subject: Any = None
        action: str | None = None

    row = StatusChangeRow(
        kind="StatusChange", from_status="draft", to_status="in_progress", created_at=at(1)
    )
    mapping = {
        "kind": "notification",
        "action": "application_status_changed",
        "created_at": at(2),
        "metadata": DRAFT_TO_IN_PROGRESS,
        "subject": {"type": APPLICATION.type, "id": 42},
    }

    result = deduplicator.deduplicate([mapping, row])

    assert len(result) == 1
    assert result[0].kind == "status_change"


def test_malformed_records_skipped_and_logged() -> None:
    good = make_event(seconds=10, metadata=SUBMITTED)
    missing_created_at = {"action": "proof_submitted"}
    missing_action = {"kind": "audit_event", "created_at": at(5)}
    bad_metadata = {"action": "x", "created_at": at(5), "metadata": ["not", "a", "map"]}

    with capture_logs() as logs:
        report = deduplicator.deduplicate_events(
            [missing_created_at, good, missing_action, bad_metadata]
        )

    assert report.events == [good]
    assert report.skipped_count == 3
    skipped = [entry for entry in logs if entry["event"] == "timeline_event_skipped"]
    assert [entry["position"] for entry in skipped] == [0, 2, 3]


def test_metadata_none_defaults_to_empty() -> None:
    event = deduplicator.coerce_event(
        {"action": "voucher_assigned", "created_at": at(0), "metadata": None}
    )

    assert event.metadata == {}


def test_coerce_event_raises_malformed() -> None:
    with pytest.raises(MalformedEventError) as exc_info:
        deduplicator.coerce_event({"action": "x"}, position=4)

    assert exc_info.value.position == 4
    assert "created_at" in str(exc_info.value)


def test_report_counts() -> None:
    report = deduplicator.deduplicate_events(mixed_events())

    assert report.input_count == 9
    assert report.skipped_count == 0
    assert report.collapsed_count == 3
    assert report.group_count == 6
