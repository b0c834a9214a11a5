"""Normalized access to open-ended event metadata.

Metadata maps arrive from many producers. Keys may be plain strings,
symbol-style strings (``":proof_type"``), str-Enum members or bytes, and
values may be missing, blank, numeric or Enum members. Every fingerprint
rule reads metadata through these helpers so the key style never changes
the computed fingerprint.
"""

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any


def normalize_key(key: Any) -> str:
    """Return the canonical string form of a metadata key.

    Example:
        >>> normalize_key(":proof_type")
        'proof_type'
        >>> normalize_key(b"blob_id")
        'blob_id'
    """
    if isinstance(key, Enum):
        key = key.value
    if isinstance(key, bytes):
        key = key.decode("utf-8", errors="replace")
    return str(key).strip().lstrip(":")


def normalize_metadata(metadata: Mapping[Any, Any] | None) -> dict[str, Any]:
    """Copy metadata with canonical keys.

    When two raw keys normalize to the same name (``"proof_type"`` and
    ``":proof_type"``), the plain string key wins.
    """
    if not metadata:
        return {}

    normalized: dict[str, Any] = {}
    exact: set[str] = set()
    for raw_key, value in metadata.items():
        key = normalize_key(raw_key)
        is_exact = type(raw_key) is str and raw_key == key
        if key in exact or (key in normalized and not is_exact):
            continue
        normalized[key] = value
        if is_exact:
            exact.add(key)
    return normalized


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value).strip()
    return text or None


def metadata_value(metadata: Mapping[str, Any], *keys: str) -> str | None:
    """Return the first non-blank value among ``keys`` as a string.

    ``metadata`` must already be normalized (see ``normalize_metadata``).

    Example:
        >>> metadata_value({"old_status": "draft"}, "from_status", "old_status")
        'draft'
        >>> metadata_value({"blob_id": ""}, "blob_id") is None
        True
    """
    for key in keys:
        value = _stringify(metadata.get(key))
        if value is not None:
            return value
    return None


def has_values(metadata: Mapping[str, Any], key_groups: Iterable[tuple[str, ...]]) -> bool:
    """Check that every group of alternative keys resolves to a value."""
    return all(metadata_value(metadata, *group) is not None for group in key_groups)
