"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from audit_timeline.domain.models import EntityRef, RawEvent

if TYPE_CHECKING:
    from audit_timeline.adapters.query_builders import AuditEventQueryCriteria


class AuditEventRepositoryProtocol(Protocol):
    """Write-side store used by the audit logger."""

    def save_event(self, event: RawEvent, fingerprint: str) -> RawEvent:
        """Persist a new audit record.

        Args:
            event: Record to persist
            fingerprint: Fingerprint computed for the record

        Returns:
            The persisted record

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def find_duplicate(
        self,
        subject: EntityRef,
        fingerprint: str,
        created_after: datetime,
        created_before: datetime,
    ) -> RawEvent | None:
        """Find a record for subject with fingerprint in [after, before].

        Raises:
            RepositoryError: On storage errors
        """
        ...


class TimelineSourceProtocol(Protocol):
    """Read interface over event-like records for a subject."""

    def fetch_subject_events(self, subject: EntityRef) -> list[RawEvent]:
        """Fetch every stored record about the subject.

        Raises:
            RepositoryError: On storage errors
        """
        ...


class RepositoryProtocol(AuditEventRepositoryProtocol, TimelineSourceProtocol, Protocol):
    """Full repository: write store, timeline source and ad-hoc queries."""

    def query_events(self, criteria: "AuditEventQueryCriteria") -> list[RawEvent]:
        """Query records using criteria builder.

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def close(self) -> None:
        ...
