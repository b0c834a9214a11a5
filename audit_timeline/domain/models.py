"""Domain models for the audit timeline engine.

All models use Pydantic v2 for validation and serialization.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from audit_timeline.domain.deduplication_constants import (
    DEFAULT_PROOF_REVIEW_ACTION,
    DEFAULT_STATUS_CHANGE_ACTION,
)
from audit_timeline.services.metadata_access import normalize_metadata

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class EventKind(str, Enum):
    """Originating record family of a raw event."""

    AUDIT_EVENT = "audit_event"
    STATUS_CHANGE = "status_change"
    PROOF_REVIEW = "proof_review"
    NOTIFICATION = "notification"


def normalize_kind(value: Any) -> str:
    """Normalize a kind discriminator to snake_case.

    Example:
        >>> normalize_kind("StatusChange")
        'status_change'
        >>> normalize_kind(EventKind.NOTIFICATION)
        'notification'
    """
    if isinstance(value, Enum):
        value = value.value
    text = str(value).strip()
    return _CAMEL_BOUNDARY.sub("_", text).lower()


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC)


class EntityRef(BaseModel):
    """Reference to a subject or actor (entity type + id)."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., min_length=1, description="Entity type, e.g. Application")
    id: str = Field(..., min_length=1, description="Entity identifier")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def key(self) -> str:
        """Stable string form, e.g. ``Application:42``."""
        return f"{self.type}:{self.id}"


class RequestContext(BaseModel):
    """Request metadata supplied explicitly to the audit write path."""

    model_config = ConfigDict(frozen=True)

    ip_address: str | None = Field(default=None, description="Actor network address")
    user_agent: str | None = Field(default=None, description="Client user agent")
    client_id: str | None = Field(default=None, description="Client identifier")

    def as_metadata(self) -> dict[str, str]:
        """Return only the populated fields."""
        return {
            key: value
            for key, value in self.model_dump().items()
            if value not in (None, "")
        }


class RawEvent(BaseModel):
    """Event-like record from any originating subsystem.

    A tagged union: ``kind`` selects which of the optional per-kind fields
    are meaningful (``from_status``/``to_status`` for status changes,
    ``proof_type``/``status`` for proof reviews). Unknown kinds are kept
    and rank lowest.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(
        default_factory=lambda: str(uuid4()), description="Record identity"
    )
    kind: str = Field(
        default=EventKind.AUDIT_EVENT.value, description="Record family discriminator"
    )
    action: str = Field(..., min_length=1, description="Action identifier")
    subject: EntityRef | None = Field(default=None, description="Entity the event is about")
    actor: EntityRef | None = Field(default=None, description="Entity that acted")
    created_at: datetime = Field(..., description="When the event happened (UTC)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Open key-value map")

    # Status change fields
    from_status: str | None = Field(default=None)
    to_status: str | None = Field(default=None)

    # Proof review fields
    proof_type: str | None = Field(default=None)
    status: str | None = Field(default=None)

    @field_validator("event_id", mode="before")
    @classmethod
    def _stringify_event_id(cls, value: Any) -> Any:
        if value is None:
            return str(uuid4())
        if not isinstance(value, str):
            return str(value)
        return value

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> str:
        if value is None or value == "":
            return EventKind.AUDIT_EVENT.value
        return normalize_kind(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, Mapping):
            return normalize_metadata(value)
        return value

    @field_validator("created_at")
    @classmethod
    def _utc_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="before")
    @classmethod
    def _default_action_for_kind(cls, data: Any) -> Any:
        """Status change and proof review rows carry no action column."""
        if not isinstance(data, Mapping):
            # Attribute objects (ORM rows, dataclasses) are read field by field.
            data = {
                name: getattr(data, name)
                for name in cls.model_fields
                if hasattr(data, name)
            }
        data = dict(data)
        if data.get("action"):
            return data
        kind = data.get("kind")
        if kind is None:
            return data
        normalized = normalize_kind(kind)
        if normalized == EventKind.STATUS_CHANGE.value:
            return {**data, "action": DEFAULT_STATUS_CHANGE_ACTION}
        if normalized == EventKind.PROOF_REVIEW.value:
            return {**data, "action": DEFAULT_PROOF_REVIEW_ACTION}
        return data

    def kind_fields(self) -> dict[str, str]:
        """Return the populated kind-specific fields."""
        fields = {
            "from_status": self.from_status,
            "to_status": self.to_status,
            "proof_type": self.proof_type,
            "status": self.status,
        }
        return {key: value for key, value in fields.items() if value}

    @property
    def epoch_seconds(self) -> float:
        return self.created_at.timestamp()


@dataclass
class DeduplicationGroup:
    """Records sharing a (fingerprint, bucket) key during one read."""

    fingerprint: str
    bucket: int
    members: list[tuple[int, RawEvent]] = field(default_factory=list)
    """(input position, event) pairs in input order"""

    def add(self, position: int, event: RawEvent) -> None:
        self.members.append((position, event))

    def __len__(self) -> int:
        return len(self.members)


class TimelineResult(BaseModel):
    """Result of assembling a subject's timeline."""

    events: list[RawEvent] = Field(default_factory=list)
    raw_count: int = Field(default=0, description="Records fetched from sources")
    skipped_count: int = Field(default=0, description="Malformed records skipped")
    collapsed_count: int = Field(default=0, description="Records merged away")
    errors: list[str] = Field(default_factory=list)
