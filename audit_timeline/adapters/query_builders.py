"""Query builders for constructing type-safe database queries.

Instead of building SQL WHERE clauses with string literals, use these
builders to create queries in a type-safe, testable way.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from audit_timeline.domain.models import EntityRef, ensure_utc

SORTABLE_COLUMNS = frozenset({"created_at", "action", "kind"})


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime in the fixed-width form stored in the database.

    Fixed microsecond precision keeps lexical order equal to time order.
    """
    return ensure_utc(value).isoformat(timespec="microseconds")


@dataclass
class AuditEventQueryCriteria:
    """Criteria for querying audit records.

    Example:
        >>> criteria = AuditEventQueryCriteria(
        ...     subject=EntityRef(type="Application", id="42"),
        ...     actions=["proof_submitted"],
        ... )
        >>> where, params = criteria.to_where_clause()
    """

    subject: EntityRef | None = None
    """Filter by subject (type + id)"""

    fingerprint: str | None = None
    """Exact fingerprint match"""

    created_after: datetime | None = None
    """Inclusive lower bound on created_at"""

    created_before: datetime | None = None
    """Inclusive upper bound on created_at"""

    actions: list[str] | None = None
    """Filter by action (OR logic)"""

    kinds: list[str] | None = None
    """Filter by kind (OR logic)"""

    order_by: str = "created_at"
    order_desc: bool = True
    limit: int | None = None

    def to_where_clause(self) -> tuple[str, list[Any]]:
        """Build SQL WHERE clause with positional parameters."""
        conditions: list[str] = []
        params: list[Any] = []

        if self.subject is not None:
            conditions.append("subject_type = ? AND subject_id = ?")
            params.extend([self.subject.type, self.subject.id])

        if self.fingerprint is not None:
            conditions.append("fingerprint = ?")
            params.append(self.fingerprint)

        if self.created_after is not None:
            conditions.append("created_at >= ?")
            params.append(format_timestamp(self.created_after))

        if self.created_before is not None:
            conditions.append("created_at <= ?")
            params.append(format_timestamp(self.created_before))

        if self.actions:
            placeholders = ", ".join("?" for _ in self.actions)
            conditions.append(f"action IN ({placeholders})")
            params.extend(self.actions)

        if self.kinds:
            placeholders = ", ".join("?" for _ in self.kinds)
            conditions.append(f"kind IN ({placeholders})")
            params.extend(self.kinds)

        if not conditions:
            return "1=1", []
        return " AND ".join(conditions), params

    def to_order_clause(self) -> str:
        """Build SQL ORDER BY clause.

        Raises:
            ValueError: If order_by is not a sortable column
        """
        if self.order_by not in SORTABLE_COLUMNS:
            raise ValueError(f"Cannot order by {self.order_by!r}")
        direction = "DESC" if self.order_desc else "ASC"
        return f"{self.order_by} {direction}, event_id ASC"

    def to_limit_clause(self) -> tuple[str, list[Any]]:
        """Build SQL LIMIT clause."""
        if self.limit is None:
            return "", []
        return "LIMIT ?", [self.limit]


def duplicate_lookup_criteria(
    subject: EntityRef,
    fingerprint: str,
    created_after: datetime,
    created_before: datetime,
) -> AuditEventQueryCriteria:
    """Criteria for the write-time duplicate check (most recent match only)."""
    return AuditEventQueryCriteria(
        subject=subject,
        fingerprint=fingerprint,
        created_after=created_after,
        created_before=created_before,
        order_desc=True,
        limit=1,
    )
