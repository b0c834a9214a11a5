"""Tests for fingerprint generation."""

from enum import Enum

import pytest

from audit_timeline.domain.models import EventKind
from audit_timeline.services.fingerprint import (
    FINGERPRINT_RULES,
    event_fingerprint,
    fingerprint,
    matching_rule,
    normalize_status,
)
from tests.conftest import make_event


class MetadataKey(str, Enum):
    PROOF_TYPE = "proof_type"
    SUBMISSION_METHOD = "submission_method"


def test_rule_table_order() -> None:
    """Rules are evaluated most specific first."""
    assert [rule.name for rule in FINGERPRINT_RULES] == [
        "creation",
        "proof_submission",
        "proof_attachment",
        "status_change",
        "proof_review",
    ]


def test_fingerprint_deterministic() -> None:
    metadata = {"proof_type": "income", "submission_method": "paper"}

    assert fingerprint("proof_submitted", metadata) == fingerprint(
        "proof_submitted", dict(metadata)
    )


def test_proof_submission_fingerprint() -> None:
    result = fingerprint(
        "income_proof_submitted",
        {"proof_type": "income", "submission_method": "paper", "note": "ignored"},
    )

    assert result == "income_proof_submitted_income_paper"


def test_proof_submission_missing_method_falls_through_to_action() -> None:
    assert fingerprint("proof_submitted", {"proof_type": "income"}) == "proof_submitted"


def test_proof_attachment_fingerprint_per_blob() -> None:
    first = fingerprint("income_proof_attached", {"proof_type": "income", "blob_id": 123})
    second = fingerprint("income_proof_attached", {"proof_type": "income", "blob_id": 124})

    assert first == "income_proof_attached_income_blob_123"
    assert second == "income_proof_attached_income_blob_124"


def test_proof_attachment_accepts_attachment_id() -> None:
    result = fingerprint(
        "residency_proof_attached", {"proof_type": "residency", "attachment_id": "a-9"}
    )

    assert result == "residency_proof_attached_residency_blob_a-9"


def test_proof_attachment_without_proof_type_keeps_blob() -> None:
    first = fingerprint("income_proof_attached", {"blob_id": 123})
    second = fingerprint("income_proof_attached", {"blob_id": 124})

    assert first == "income_proof_attached__blob_123"
    assert first != second


def test_proof_attachment_without_blob_uses_action() -> None:
    assert (
        fingerprint("income_proof_attached", {"proof_type": "income", "blob_id": ""})
        == "income_proof_attached"
    )


def test_status_change_fingerprint() -> None:
    result = fingerprint(
        "application_status_changed", {"from_status": "draft", "to_status": "in_progress"}
    )

    assert result == "application_status_changed_draft-in_progress"


def test_status_change_accepts_old_new_keys() -> None:
    assert fingerprint(
        "application_status_changed", {"old_status": "draft", "new_status": "in_progress"}
    ) == fingerprint(
        "application_status_changed", {"from_status": "draft", "to_status": "in_progress"}
    )


def test_status_change_normalizes_legacy_statuses() -> None:
    legacy = fingerprint(
        "application_status_changed",
        {"from_status": "in_progress", "to_status": "awaiting_documents"},
    )

    assert legacy == "application_status_changed_in_progress-awaiting_dcf"
    assert normalize_status("needs_information") == "awaiting_proof"
    assert normalize_status("approved") == "approved"


def test_proof_review_fingerprint() -> None:
    metadata = {"proof_type": "income", "status": "rejected"}

    assert fingerprint("proof_reviewed", metadata) == "proof_reviewed_income-rejected"
    assert fingerprint("income_proof_rejected", metadata) == "income_proof_rejected_income-rejected"


def test_default_fingerprint_is_action() -> None:
    assert fingerprint("voucher_assigned", {"voucher_id": 3}) == "voucher_assigned"
    assert fingerprint("voucher_assigned") == "voucher_assigned"


def test_creation_fingerprint_uses_record_identity() -> None:
    first = fingerprint("application_created", {"submission_method": "paper"}, record_id="1")
    second = fingerprint("application_created", {"submission_method": "paper"}, record_id="2")

    assert first == "application_created_1"
    assert first != second


def test_creation_without_identity_is_never_shared() -> None:
    assert fingerprint("application_created") != fingerprint("application_created")


@pytest.mark.parametrize(
    "metadata",
    [
        {"proof_type": "income", "submission_method": "paper"},
        {":proof_type": "income", ":submission_method": "paper"},
        {MetadataKey.PROOF_TYPE: "income", MetadataKey.SUBMISSION_METHOD: "paper"},
        {b"proof_type": "income", b"submission_method": "paper"},
    ],
)
def test_key_style_does_not_change_fingerprint(metadata: dict) -> None:
    assert fingerprint("proof_submitted", metadata) == "proof_submitted_income_paper"


def test_matching_rule_reports_fallthrough() -> None:
    rule = matching_rule("proof_submitted", {"proof_type": "income", "submission_method": "web"})

    assert rule is not None
    assert rule.name == "proof_submission"
    assert matching_rule("proof_submitted", {"proof_type": "income"}) is None


def test_event_fingerprint_uses_kind_fields() -> None:
    status_change = make_event(
        action="application_status_changed",
        kind=EventKind.STATUS_CHANGE,
        from_status="draft",
        to_status="in_progress",
    )
    review = make_event(
        kind=EventKind.PROOF_REVIEW,
        action="proof_reviewed",
        proof_type="income",
        status="approved",
    )

    assert event_fingerprint(status_change) == "application_status_changed_draft-in_progress"
    assert event_fingerprint(review) == "proof_reviewed_income-approved"


def test_event_fingerprint_kind_fields_override_metadata() -> None:
    event = make_event(
        action="application_status_changed",
        kind=EventKind.STATUS_CHANGE,
        metadata={"from_status": "stale"},
        from_status="draft",
        to_status="approved",
    )

    assert event_fingerprint(event) == "application_status_changed_draft-approved"


def test_event_fingerprint_creation_uses_event_id() -> None:
    event = make_event(action="application_created", event_id="evt-1")

    assert event_fingerprint(event) == "application_created_evt-1"
