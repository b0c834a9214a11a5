"""Priority ranking used to pick one representative per dedup group.

Higher wins. Creation actions outrank everything; otherwise the record's
kind decides.
"""

from typing import Final

from audit_timeline.domain.deduplication_constants import (
    CONTEXT_RICH_PRIORITY,
    CREATION_PRIORITY,
    NOTIFICATION_PRIORITY,
    STATUS_CHANGE_PRIORITY,
    UNKNOWN_KIND_PRIORITY,
)
from audit_timeline.domain.models import EventKind, RawEvent
from audit_timeline.services.fingerprint import is_creation_action

KIND_PRIORITIES: Final[dict[EventKind, int]] = {
    EventKind.STATUS_CHANGE: STATUS_CHANGE_PRIORITY,
    EventKind.PROOF_REVIEW: CONTEXT_RICH_PRIORITY,
    EventKind.AUDIT_EVENT: CONTEXT_RICH_PRIORITY,
    EventKind.NOTIFICATION: NOTIFICATION_PRIORITY,
}


def priority(event: RawEvent) -> int:
    """Return the priority of an event.

    Example:
        >>> priority(RawEvent(kind="notification", action="x", created_at=now))
        1
    """
    if is_creation_action(event.action):
        return CREATION_PRIORITY

    try:
        kind = EventKind(event.kind)
    except ValueError:
        return UNKNOWN_KIND_PRIORITY

    return KIND_PRIORITIES.get(kind, UNKNOWN_KIND_PRIORITY)
