from __future__ import annotations

from datetime import datetime, timezone

import pytest

from congregation_core.audit.activity import AuditRecord, InMemoryAuditLog, audited
from congregation_core.domain.models import Actor
from congregation_core.errors import ConflictError

ACTOR = Actor(id="u1", name="Ruth")
NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


class BrokenSink:
    def append(self, record):
        raise OSError("disk full")


def _describe_rename(actor, result, name):
    return f"{actor.name} renamed to {name}", {"name": name}


class Service:

    def __init__(self, audit):
        self.audit = audit
        self.clock = lambda: NOW

    @audited("renamed", _describe_rename, "rename")
    def rename(self, actor, name):
        if name == "taken":
            raise ConflictError("Name already taken")
        return name.upper()


def test_success_record_written_before_return():
    log = InMemoryAuditLog()
    assert Service(log).rename(ACTOR, "north") == "NORTH"

    [record] = log.records()
    assert record.success is True
    assert record.action == "Ruth renamed to north"
    assert record.metadata == {"name": "north"}
    assert record.created_at == NOW
    assert record.error_message is None


def test_failure_record_then_reraise():
    log = InMemoryAuditLog()
    with pytest.raises(ConflictError):
        Service(log).rename(ACTOR, "taken")

    [record] = log.records()
    assert record.success is False
    assert record.error_message == "Name already taken"
    assert record.action == "Failed to rename: Name already taken"
    assert record.metadata == {"error_kind": "conflict"}


def test_broken_sink_does_not_change_outcome():
    service = Service(BrokenSink())
    assert service.rename(ACTOR, "east") == "EAST"
    with pytest.raises(ConflictError):
        service.rename(ACTOR, "taken")


def test_history_filters_and_limits():
    log = InMemoryAuditLog()
    for i, kind in enumerate(["a", "b", "a", "c"]):
        log.append(AuditRecord(id=str(i), actor_id="u", actor_name="u", type=kind, action=kind,
                               success=True, created_at=NOW))

    assert [r.id for r in log.history()] == ["3", "2", "1", "0"]
    assert [r.id for r in log.history(types=["a"])] == ["2", "0"]
    assert [r.id for r in log.history(types=["a", "b"], limit=2)] == ["2", "1"]
