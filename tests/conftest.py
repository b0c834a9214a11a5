"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import pytz

from audit_timeline.adapters.repository_factory import create_audit_logger, create_repository
from audit_timeline.config.settings import Settings
from audit_timeline.domain.models import EntityRef, EventKind, RawEvent
from audit_timeline.domain.protocols import RepositoryProtocol
from audit_timeline.services.audit_logger import AuditLogger

BASE_TIME = datetime(2025, 10, 10, 10, 0, tzinfo=pytz.UTC)
"""Minute-aligned, so offsets 0-59s share one 60s bucket."""

APPLICATION = EntityRef(type="Application", id="42")
ADMIN = EntityRef(type="User", id="7")


def at(seconds: float) -> datetime:
    """Return BASE_TIME shifted by seconds."""
    return BASE_TIME + timedelta(seconds=seconds)


def make_event(
    action: str = "proof_submitted",
    seconds: float = 0,
    kind: EventKind | str = EventKind.AUDIT_EVENT,
    metadata: dict[Any, Any] | None = None,
    **kwargs: Any,
) -> RawEvent:
    """Helper to create a raw event relative to BASE_TIME."""
    defaults: dict[str, Any] = {
        "kind": kind,
        "action": action,
        "subject": APPLICATION,
        "actor": ADMIN,
        "created_at": at(seconds),
        "metadata": metadata or {},
    }
    defaults.update(kwargs)
    return RawEvent(**defaults)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with a temp SQLite path and no YAML overrides."""
    return Settings(
        config_dir=tmp_path / "no-config",
        db_path=str(tmp_path / "db" / "audit.sqlite"),
    )


@pytest.fixture
def repo(settings: Settings) -> Generator[RepositoryProtocol, None, None]:
    """Provide a repository instance backed by a temp SQLite file."""
    repository = create_repository(settings)
    try:
        yield repository
    finally:
        repository.close()


@pytest.fixture
def audit_logger(settings: Settings, repo: RepositoryProtocol) -> AuditLogger:
    return create_audit_logger(settings, repo)
