"""Time-bucketing grouper.

Groups events by (fingerprint, time bucket) and picks one representative
per group. Buckets are fixed-width intervals aligned to the epoch, so the
partition depends only on each event's own fingerprint and timestamp,
never on input order.
"""

import math
from collections.abc import Sequence
from datetime import datetime

from audit_timeline.domain.models import DeduplicationGroup, RawEvent, ensure_utc
from audit_timeline.services.fingerprint import event_fingerprint, is_creation_action
from audit_timeline.services.priority_ranker import priority


def time_bucket(moment: datetime | float, window_seconds: int) -> int:
    """Return floor(epoch / window) * window.

    Example:
        >>> time_bucket(125.0, 60)
        120
    """
    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    if isinstance(moment, datetime):
        epoch = ensure_utc(moment).timestamp()
    else:
        epoch = float(moment)
    return math.floor(epoch / window_seconds) * window_seconds


def group_events(events: Sequence[RawEvent], window_seconds: int) -> list[DeduplicationGroup]:
    """Partition events into dedup groups.

    Creation events always form their own singleton group.

    Args:
        events: Events in input order
        window_seconds: Bucket width

    Returns:
        Groups ordered by the input position of their first member
    """
    groups: list[DeduplicationGroup] = []
    index: dict[tuple[str, int], DeduplicationGroup] = {}

    for position, event in enumerate(events):
        key = (event_fingerprint(event), time_bucket(event.created_at, window_seconds))

        if is_creation_action(event.action):
            singleton = DeduplicationGroup(fingerprint=key[0], bucket=key[1])
            singleton.add(position, event)
            groups.append(singleton)
            continue

        group = index.get(key)
        if group is None:
            group = DeduplicationGroup(fingerprint=key[0], bucket=key[1])
            index[key] = group
            groups.append(group)
        group.add(position, event)

    return groups


def _rank_key(member: tuple[int, RawEvent]) -> tuple[int, float, str, int]:
    position, event = member
    return (-priority(event), -event.epoch_seconds, event.event_id, position)


def select_representative(group: DeduplicationGroup) -> RawEvent:
    """Pick the group winner.

    Order: highest priority, then latest created_at, then lowest event_id,
    then earliest input position.
    """
    if not group.members:
        raise ValueError("cannot select a representative from an empty group")
    _, winner = min(group.members, key=_rank_key)
    return winner
