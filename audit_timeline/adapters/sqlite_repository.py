"""SQLite repository adapter for audit records.

Implements RepositoryProtocol (write store + timeline source) with a
single ``audit_events`` table.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from audit_timeline.adapters.query_builders import (
    AuditEventQueryCriteria,
    duplicate_lookup_criteria,
    format_timestamp,
)
from audit_timeline.config.logging_config import get_logger
from audit_timeline.domain.exceptions import RepositoryError
from audit_timeline.domain.models import EntityRef, RawEvent

logger = get_logger(__name__)

_MEMORY_PATH = ":memory:"


class SQLiteAuditEventRepository:
    """SQLite-based store for audit records."""

    def __init__(self, db_path: str) -> None:
        """Initialize repository and ensure schema.

        Args:
            db_path: Path to SQLite database file (":memory:" keeps one
                shared in-process connection)
        """
        self.db_path = db_path
        self._shared_connection: sqlite3.Connection | None = None

        if db_path == _MEMORY_PATH:
            self._shared_connection = sqlite3.connect(
                _MEMORY_PATH, check_same_thread=False
            )
            self._shared_connection.row_factory = sqlite3.Row
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection.

        Returns:
            SQLite connection
        """
        if self._shared_connection is not None:
            return self._shared_connection
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is not self._shared_connection:
            conn.close()

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_events (
                    event_id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    action TEXT NOT NULL,
                    subject_type TEXT,
                    subject_id TEXT,
                    actor_type TEXT,
                    actor_id TEXT,
                    created_at TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    from_status TEXT,
                    to_status TEXT,
                    proof_type TEXT,
                    status TEXT
                )
            """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_audit_events_dedup
                ON audit_events (subject_type, subject_id, fingerprint, created_at)
            """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_audit_events_subject
                ON audit_events (subject_type, subject_id, created_at)
            """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to create schema: {e}") from e
        finally:
            self._release(conn)

    def save_event(self, event: RawEvent, fingerprint: str) -> RawEvent:
        """Insert a new audit record.

        Raises:
            RepositoryError: On storage errors (including duplicate event_id)
        """
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO audit_events (
                    event_id, kind, action, subject_type, subject_id,
                    actor_type, actor_id, created_at, fingerprint, metadata,
                    from_status, to_status, proof_type, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.kind,
                    event.action,
                    event.subject.type if event.subject else None,
                    event.subject.id if event.subject else None,
                    event.actor.type if event.actor else None,
                    event.actor.id if event.actor else None,
                    format_timestamp(event.created_at),
                    fingerprint,
                    json.dumps(event.metadata, default=str),
                    event.from_status,
                    event.to_status,
                    event.proof_type,
                    event.status,
                ),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to save audit event: {e}") from e
        finally:
            self._release(conn)

        logger.debug(
            "sqlite_audit_event_saved",
            event_id=event.event_id,
            action=event.action,
        )
        return event

    def find_duplicate(
        self,
        subject: EntityRef,
        fingerprint: str,
        created_after: datetime,
        created_before: datetime,
    ) -> RawEvent | None:
        """Return the most recent matching record in the window, if any."""
        criteria = duplicate_lookup_criteria(
            subject, fingerprint, created_after, created_before
        )
        matches = self.query_events(criteria)
        return matches[0] if matches else None

    def fetch_subject_events(self, subject: EntityRef) -> list[RawEvent]:
        """Fetch every stored record about the subject, newest first."""
        return self.query_events(AuditEventQueryCriteria(subject=subject))

    def query_events(self, criteria: AuditEventQueryCriteria) -> list[RawEvent]:
        """Query records using criteria builder.

        Example:
            >>> criteria = AuditEventQueryCriteria(actions=["proof_submitted"])
            >>> repo.query_events(criteria)
        """
        where_clause, where_params = criteria.to_where_clause()
        order_clause = criteria.to_order_clause()
        limit_clause, limit_params = criteria.to_limit_clause()

        query = f"""
            SELECT * FROM audit_events
            WHERE {where_clause}
            ORDER BY {order_clause}
            {limit_clause}
        """

        conn = self._get_connection()
        try:
            rows = conn.execute(query, where_params + limit_params).fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to query audit events: {e}") from e
        finally:
            self._release(conn)

        return [self._row_to_event(row) for row in rows]

    def count_events(self) -> int:
        conn = self._get_connection()
        try:
            row = conn.execute("SELECT COUNT(*) FROM audit_events").fetchone()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to count audit events: {e}") from e
        finally:
            self._release(conn)
        return int(row[0])

    def close(self) -> None:
        if self._shared_connection is not None:
            self._shared_connection.close()
            self._shared_connection = None

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> RawEvent:
        def _ref(type_col: str, id_col: str) -> dict[str, Any] | None:
            if row[type_col] is None or row[id_col] is None:
                return None
            return {"type": row[type_col], "id": row[id_col]}

        return RawEvent(
            event_id=row["event_id"],
            kind=row["kind"],
            action=row["action"],
            subject=_ref("subject_type", "subject_id"),
            actor=_ref("actor_type", "actor_id"),
            created_at=datetime.fromisoformat(row["created_at"]),
            metadata=json.loads(row["metadata"] or "{}"),
            from_status=row["from_status"],
            to_status=row["to_status"],
            proof_type=row["proof_type"],
            status=row["status"],
        )
