"""Audit logger with write-time deduplication.

Before a new audit record is persisted, the store is checked for a record
about the same subject with the same fingerprint inside a short trailing
window. A match suppresses the write and ``log`` returns None. This is
best-effort: two processes can both pass the check before either commits.
The read-time deduplicator absorbs whatever slips through.
"""

import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

import pytz
from pydantic import ValidationError as PydanticValidationError

from audit_timeline.config.logging_config import get_logger
from audit_timeline.domain.deduplication_constants import (
    DEFAULT_PROVENANCE_MARKER,
    DEFAULT_WRITE_WINDOW_SECONDS,
    PROVENANCE_METADATA_KEY,
)
from audit_timeline.domain.exceptions import RepositoryError, ValidationError
from audit_timeline.domain.models import (
    EntityRef,
    EventKind,
    RawEvent,
    RequestContext,
    ensure_utc,
)
from audit_timeline.domain.protocols import AuditEventRepositoryProtocol
from audit_timeline.observability.metrics import AUDIT_WRITES_TOTAL
from audit_timeline.services.fingerprint import event_fingerprint
from audit_timeline.services.metadata_access import normalize_metadata

logger = get_logger(__name__)


class _AdvisoryLocks:
    """In-process locks keyed by (subject, fingerprint)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._holders: dict[tuple[str, str], int] = {}

    @contextmanager
    def hold(self, key: tuple[str, str]) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]


def _coerce_ref(value: Any, field_name: str) -> EntityRef:
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, EntityRef):
        return value
    try:
        return EntityRef.model_validate(value, from_attributes=True)
    except PydanticValidationError as e:
        raise ValidationError(f"{field_name} must reference an entity (type + id)") from e


class AuditLogger:
    """Write path: persist audit records unless an equivalent one is recent."""

    def __init__(
        self,
        repository: AuditEventRepositoryProtocol,
        *,
        window_seconds: int = DEFAULT_WRITE_WINDOW_SECONDS,
        provenance_marker: str = DEFAULT_PROVENANCE_MARKER,
        advisory_lock: bool = True,
    ) -> None:
        """Initialize logger.

        Args:
            repository: Store implementing save_event/find_duplicate
            window_seconds: Trailing suppression window (default: 5)
            provenance_marker: Value recorded under created_by_service
            advisory_lock: Serialize check-then-write per (subject, fingerprint)
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._repository = repository
        self._window = timedelta(seconds=window_seconds)
        self._provenance_marker = provenance_marker
        self._locks = _AdvisoryLocks() if advisory_lock else None

    def log(
        self,
        action: str,
        actor: EntityRef | Mapping[str, Any] | None,
        subject: EntityRef | Mapping[str, Any] | None,
        metadata: Mapping[Any, Any] | None = None,
        occurred_at: datetime | None = None,
        context: RequestContext | None = None,
        *,
        kind: EventKind | str = EventKind.AUDIT_EVENT,
    ) -> RawEvent | None:
        """Record an action unless an equivalent record is recent.

        Args:
            action: Action identifier
            actor: Entity performing the action
            subject: Entity the action is about
            metadata: Mapping of extra details (None means empty)
            occurred_at: When it happened (default: now, UTC)
            context: Request metadata merged into the stored metadata
            kind: Record family of the new record

        Returns:
            The persisted record, or None when suppressed as a duplicate

        Raises:
            ValidationError: Missing action/actor/subject, non-mapping metadata or
                non-datetime occurred_at
            RepositoryError: Storage failures (never swallowed)

        Example:
            >>> audit_logger.log("income_proof_attached", user, app,
            ...                  {"proof_type": "income", "blob_id": 123})
        """
        if not isinstance(action, str) or not action.strip():
            raise ValidationError("action is required")
        actor_ref = _coerce_ref(actor, "actor")
        subject_ref = _coerce_ref(subject, "subject")
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, Mapping):
            raise ValidationError(
                f"metadata must be a mapping, got {type(metadata).__name__}"
            )

        if occurred_at is None:
            occurred = datetime.now(pytz.UTC)
        elif isinstance(occurred_at, datetime):
            occurred = ensure_utc(occurred_at)
        else:
            raise ValidationError(
                f"occurred_at must be a datetime, got {type(occurred_at).__name__}"
            )

        caller_metadata = normalize_metadata(metadata)
        stored_metadata = dict(caller_metadata)
        stored_metadata[PROVENANCE_METADATA_KEY] = self._provenance_marker
        if context is not None:
            stored_metadata.update(context.as_metadata())

        try:
            candidate = RawEvent(
                kind=kind,
                action=action.strip(),
                subject=subject_ref,
                actor=actor_ref,
                created_at=occurred,
                metadata=stored_metadata,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid audit record for {action}: {e}") from e

        # Fingerprint from caller metadata only, provenance keys excluded.
        signature = event_fingerprint(
            candidate.model_copy(update={"metadata": caller_metadata})
        )

        with self._serialized(subject_ref, signature):
            duplicate = self._repository.find_duplicate(
                subject_ref,
                signature,
                occurred - self._window,
                occurred,
            )
            if duplicate is not None:
                AUDIT_WRITES_TOTAL.labels(outcome="suppressed").inc()
                logger.info(
                    "audit_event_suppressed",
                    action=candidate.action,
                    subject=subject_ref.key,
                    fingerprint=signature,
                    duplicate_of=duplicate.event_id,
                )
                return None

            try:
                saved = self._repository.save_event(candidate, signature)
            except RepositoryError as e:
                AUDIT_WRITES_TOTAL.labels(outcome="failed").inc()
                logger.error(
                    "audit_event_write_failed",
                    action=candidate.action,
                    subject=subject_ref.key,
                    error=str(e),
                )
                raise

        AUDIT_WRITES_TOTAL.labels(outcome="persisted").inc()
        logger.info(
            "audit_event_logged",
            action=saved.action,
            subject=subject_ref.key,
            actor=actor_ref.key,
            event_id=saved.event_id,
            fingerprint=signature,
        )
        return saved

    @contextmanager
    def _serialized(self, subject: EntityRef, signature: str) -> Iterator[None]:
        if self._locks is None:
            yield
            return
        with self._locks.hold((subject.key, signature)):
            yield
