"""Business rules and constants for audit event deduplication.

Windows, priorities and action families used by both the write path
(audit logger) and the read path (timeline deduplication) live here so the
two paths cannot drift apart.
"""

from typing import Final

# Time windows
DEFAULT_WRITE_WINDOW_SECONDS: Final[int] = 5
"""Trailing window for write-time suppression.

Business rule: an audit record is not written if a record with the same
fingerprint exists for the same subject within the last 5 seconds. This
catches the near-simultaneous writes a single request produces (model
callback plus explicit logging call).

Example:
    - 10:00:00.2 income_proof_attached (blob 123) -> persisted
    - 10:00:01.0 income_proof_attached (blob 123) -> suppressed
    - 10:00:01.0 income_proof_attached (blob 124) -> persisted
"""

DEFAULT_READ_WINDOW_SECONDS: Final[int] = 60
"""Bucket width for read-time deduplication.

Business rule: records from different subsystems describing the same moment
(status change row, audit event, notification) land in the same 60 second
bucket and collapse to one timeline entry.
"""

# Action families
APPLICATION_CREATED_ACTION: Final[str] = "application_created"
CREATION_ACTIONS: Final[frozenset[str]] = frozenset({APPLICATION_CREATED_ACTION})
"""Actions that mark the creation of a subject. Never deduplicated."""

PROOF_SUBMISSION_MARKER: Final[str] = "proof_submitted"
PROOF_ATTACHMENT_MARKER: Final[str] = "proof_attached"
STATUS_CHANGE_MARKER: Final[str] = "status_change"
PROOF_REVIEW_MARKER: Final[str] = "proof_review"
PROOF_REVIEW_SUFFIXES: Final[tuple[str, ...]] = ("proof_approved", "proof_rejected")

ATTACHMENT_ID_KEYS: Final[tuple[str, ...]] = ("blob_id", "attachment_id")
FROM_STATUS_KEYS: Final[tuple[str, ...]] = ("from_status", "old_status")
TO_STATUS_KEYS: Final[tuple[str, ...]] = ("to_status", "new_status")
RECORD_ID_KEYS: Final[tuple[str, ...]] = ("event_id", "id")

# Default actions for kinds whose records carry no action column
DEFAULT_STATUS_CHANGE_ACTION: Final[str] = "application_status_changed"
DEFAULT_PROOF_REVIEW_ACTION: Final[str] = "proof_reviewed"

LEGACY_STATUS_ALIASES: Final[dict[str, str]] = {
    "awaiting_documents": "awaiting_dcf",
    "needs_information": "awaiting_proof",
}
"""Renamed statuses. Old rows must fingerprint like new ones."""

# Priorities (higher wins)
CREATION_PRIORITY: Final[int] = 4
STATUS_CHANGE_PRIORITY: Final[int] = 3
CONTEXT_RICH_PRIORITY: Final[int] = 2
"""Audit events and proof reviews."""
NOTIFICATION_PRIORITY: Final[int] = 1
UNKNOWN_KIND_PRIORITY: Final[int] = 0

# Write path provenance
DEFAULT_PROVENANCE_MARKER: Final[str] = "audit_logger"
PROVENANCE_METADATA_KEY: Final[str] = "created_by_service"
