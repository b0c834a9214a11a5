"""Audit event aggregation with write-time and read-time deduplication."""

from audit_timeline.domain.models import EntityRef, EventKind, RawEvent, RequestContext
from audit_timeline.services.audit_logger import AuditLogger
from audit_timeline.services.deduplicator import deduplicate
from audit_timeline.services.fingerprint import fingerprint

__all__ = [
    "AuditLogger",
    "EntityRef",
    "EventKind",
    "RawEvent",
    "RequestContext",
    "deduplicate",
    "fingerprint",
]
