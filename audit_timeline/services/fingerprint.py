"""Fingerprint generation for audit events.

A fingerprint identifies "the same logical event" across the subsystems
that record it. Rules are an ordered table evaluated top to bottom; the
first rule whose action predicate matches AND whose required metadata is
present builds the fingerprint. A rule with missing metadata falls through
to the next, coarser rule, ending at the bare action.

Rules (most specific first):
1. creation:          application_created_<record id>  (never shared)
2. proof_submission:  <action>_<proof_type>_<submission_method>
3. proof_attachment:  <action>_<proof_type>_blob_<attachment id>  (proof_type may be empty)
4. status_change:     <action>_<from>-<to>
5. proof_review:      <action>_<proof_type>-<status>
6. default:           <action>
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from audit_timeline.domain.deduplication_constants import (
    ATTACHMENT_ID_KEYS,
    CREATION_ACTIONS,
    FROM_STATUS_KEYS,
    LEGACY_STATUS_ALIASES,
    PROOF_ATTACHMENT_MARKER,
    PROOF_REVIEW_MARKER,
    PROOF_REVIEW_SUFFIXES,
    PROOF_SUBMISSION_MARKER,
    RECORD_ID_KEYS,
    STATUS_CHANGE_MARKER,
    TO_STATUS_KEYS,
)
from audit_timeline.domain.models import RawEvent
from audit_timeline.services.metadata_access import (
    has_values,
    metadata_value,
    normalize_metadata,
)

KeyGroups = tuple[tuple[str, ...], ...]


@dataclass(frozen=True)
class FingerprintRule:
    """One row of the fingerprint table."""

    name: str
    matches: Callable[[str], bool]
    required: KeyGroups
    build: Callable[[str, Mapping[str, Any], str | None], str]

    def applies(self, action: str, metadata: Mapping[str, Any]) -> bool:
        return self.matches(action) and has_values(metadata, self.required)


def is_creation_action(action: str) -> bool:
    """Creation actions are exempt from deduplication."""
    return action.strip() in CREATION_ACTIONS


def normalize_status(status: str) -> str:
    """Map legacy status names to their current equivalents."""
    return LEGACY_STATUS_ALIASES.get(status, status)


def _build_creation(action: str, metadata: Mapping[str, Any], record_id: str | None) -> str:
    identity = record_id or metadata_value(metadata, *RECORD_ID_KEYS)
    if identity is None:
        # Unidentified creation records are still never merged.
        identity = uuid4().hex
    return f"{action}_{identity}"


def _build_proof_submission(
    action: str, metadata: Mapping[str, Any], record_id: str | None
) -> str:
    proof_type = metadata_value(metadata, "proof_type")
    method = metadata_value(metadata, "submission_method")
    return f"{action}_{proof_type}_{method}"


def _build_proof_attachment(
    action: str, metadata: Mapping[str, Any], record_id: str | None
) -> str:
    proof_type = metadata_value(metadata, "proof_type") or ""
    attachment_id = metadata_value(metadata, *ATTACHMENT_ID_KEYS)
    return f"{action}_{proof_type}_blob_{attachment_id}"


def _build_status_change(
    action: str, metadata: Mapping[str, Any], record_id: str | None
) -> str:
    from_status = normalize_status(metadata_value(metadata, *FROM_STATUS_KEYS) or "")
    to_status = normalize_status(metadata_value(metadata, *TO_STATUS_KEYS) or "")
    return f"{action}_{from_status}-{to_status}"


def _build_proof_review(
    action: str, metadata: Mapping[str, Any], record_id: str | None
) -> str:
    proof_type = metadata_value(metadata, "proof_type")
    status = metadata_value(metadata, "status")
    return f"{action}_{proof_type}-{status}"


def _is_proof_review(action: str) -> bool:
    return PROOF_REVIEW_MARKER in action or action.endswith(PROOF_REVIEW_SUFFIXES)


FINGERPRINT_RULES: tuple[FingerprintRule, ...] = (
    FingerprintRule(
        name="creation",
        matches=is_creation_action,
        required=(),
        build=_build_creation,
    ),
    FingerprintRule(
        name="proof_submission",
        matches=lambda action: PROOF_SUBMISSION_MARKER in action,
        required=(("proof_type",), ("submission_method",)),
        build=_build_proof_submission,
    ),
    FingerprintRule(
        name="proof_attachment",
        matches=lambda action: PROOF_ATTACHMENT_MARKER in action,
        required=(ATTACHMENT_ID_KEYS,),
        build=_build_proof_attachment,
    ),
    FingerprintRule(
        name="status_change",
        matches=lambda action: STATUS_CHANGE_MARKER in action,
        required=(FROM_STATUS_KEYS, TO_STATUS_KEYS),
        build=_build_status_change,
    ),
    FingerprintRule(
        name="proof_review",
        matches=_is_proof_review,
        required=(("proof_type",), ("status",)),
        build=_build_proof_review,
    ),
)


def matching_rule(action: str, metadata: Mapping[Any, Any] | None) -> FingerprintRule | None:
    """Return the first applicable rule, or None for the default rule."""
    normalized = normalize_metadata(metadata)
    action = action.strip()
    for rule in FINGERPRINT_RULES:
        if rule.applies(action, normalized):
            return rule
    return None


def fingerprint(
    action: str,
    metadata: Mapping[Any, Any] | None = None,
    *,
    record_id: str | None = None,
) -> str:
    """Compute the fingerprint for an action and its metadata.

    Args:
        action: Action identifier, e.g. "income_proof_attached"
        metadata: Event metadata (any key style)
        record_id: Identity of the record; only used by creation actions

    Returns:
        Fingerprint string

    Example:
        >>> fingerprint("income_proof_attached", {"proof_type": "income", "blob_id": 123})
        'income_proof_attached_income_blob_123'
        >>> fingerprint("application_status_changed", {":from_status": "draft"})
        'application_status_changed'
    """
    action = action.strip()
    normalized = normalize_metadata(metadata)
    for rule in FINGERPRINT_RULES:
        if rule.applies(action, normalized):
            return rule.build(action, normalized, record_id)
    return action


def event_fingerprint(event: RawEvent) -> str:
    """Fingerprint a RawEvent.

    Kind-specific columns (status change from/to, review proof_type/status)
    take precedence over same-named metadata keys.
    """
    merged = {**normalize_metadata(event.metadata), **event.kind_fields()}
    return fingerprint(event.action, merged, record_id=event.event_id)
