# congregation_core/io_layer/json_store.py
"""One JSON document holding every collection plus the activity log."""
from __future__ import annotations

import dataclasses
import json
import logging
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from congregation_core.audit.activity import AuditRecord, InMemoryAuditLog
from congregation_core.domain.models import (
    Difficulty,
    FamilyLink,
    FieldServiceReport,
    Gender,
    Group,
    Member,
    PioneerStatus,
    ReportPayload,
    RosterEntry,
    ScheduleRecord,
    Territory,
    VisitReport,
    VisitStatus,
)
from congregation_core.io_layer.repositories import (
    InMemoryEntityRepository,
    InMemoryFieldServiceRepository,
    InMemoryGroupRepository,
    InMemoryReportRepository,
    InMemoryScheduleRepository,
    Repositories,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _encode(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        return {f.name: _encode(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, frozenset):
        return sorted(value)
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


def _date(v: Optional[str]) -> Optional[date]:
    return date.fromisoformat(v) if v else None


def _datetime(v: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(v) if v else None


def _member(d: Dict[str, Any]) -> Member:
    return Member(
        id=d["id"],
        full_name=d["full_name"],
        gender=Gender(d["gender"]) if d.get("gender") else None,
        pioneer_status=PioneerStatus(d.get("pioneer_status") or "none"),
        privileges=frozenset(d.get("privileges") or ()),
        group_id=d.get("group_id"),
        is_family_head=bool(d.get("is_family_head")),
        family_links=tuple(FamilyLink(**link) for link in d.get("family_links") or ()),
    )


def _territory(d: Dict[str, Any]) -> Territory:
    return Territory(
        id=d["id"],
        number=d["number"],
        name=d["name"],
        difficulty=Difficulty(d.get("difficulty") or "medium"),
        household_count=d.get("household_count"),
        group_id=d.get("group_id"),
        is_active=d.get("is_active", True),
    )


def _schedule(d: Dict[str, Any]) -> ScheduleRecord:
    return ScheduleRecord(
        id=d["id"],
        group_id=d["group_id"],
        month=d["month"],
        scheduled_date=_date(d.get("scheduled_date")),
        status=VisitStatus(d["status"]),
        overseer_id=d["overseer_id"],
        overseer_name=d["overseer_name"],
        completed_date=_date(d.get("completed_date")),
        created_at=_datetime(d.get("created_at")),
        updated_at=_datetime(d.get("updated_at")),
    )


def _report(d: Dict[str, Any]) -> VisitReport:
    fields = dict(d)
    fields["visit_date"] = _date(d["visit_date"])
    fields["members"] = tuple(RosterEntry(**m) for m in d.get("members") or ())
    fields["created_at"] = _datetime(d.get("created_at"))
    fields["updated_at"] = _datetime(d.get("updated_at"))
    return VisitReport(**fields)


def _audit(d: Dict[str, Any]) -> AuditRecord:
    fields = dict(d)
    fields["created_at"] = _datetime(d["created_at"])
    return AuditRecord(**fields)


class JsonStore:

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Tuple[Repositories, InMemoryAuditLog]:
        if not self.path.exists():
            logger.info("No store at %s yet; starting empty", self.path)
            return Repositories(), InMemoryAuditLog()
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        repos = Repositories(
            groups=InMemoryGroupRepository(Group(**g) for g in raw.get("groups", [])),
            members=InMemoryEntityRepository(_member(m) for m in raw.get("members", [])),
            territories=InMemoryEntityRepository(_territory(t) for t in raw.get("territories", [])),
            schedules=InMemoryScheduleRepository(_schedule(s) for s in raw.get("schedules", [])),
            reports=InMemoryReportRepository(_report(r) for r in raw.get("reports", [])),
            field_service=InMemoryFieldServiceRepository(
                FieldServiceReport(**f) for f in raw.get("field_service", [])
            ),
        )
        return repos, InMemoryAuditLog(_audit(a) for a in raw.get("activity", []))

    def save(self, repos: Repositories, audit: InMemoryAuditLog) -> Path:
        doc = {
            "version": FORMAT_VERSION,
            "groups": _encode(repos.groups.all()),
            "members": _encode(repos.members.all()),
            "territories": _encode(repos.territories.all()),
            "schedules": _encode(repos.schedules.all()),
            "reports": _encode(repos.reports.all()),
            "field_service": _encode(repos.field_service.all()),
            "activity": _encode(audit.records()),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)
        return self.path


def _pick(d: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for n in names:
        if n in d and d[n] is not None:
            return d[n]
    return default


def report_payload_from_dict(d: Dict[str, Any]) -> ReportPayload:
    """Accepts the camelCase form sent by the dashboard as well as snake_case."""
    members = tuple(
        RosterEntry(
            member_id=str(_pick(m, "id", "member_id", "memberId", default="")),
            name=str(_pick(m, "name", default="")),
            present=bool(_pick(m, "present", default=False)),
            has_study=bool(_pick(m, "hasStudy", "has_study", default=False)),
            participates_in_ministry=bool(
                _pick(m, "participatesInMinistry", "participates_in_ministry", default=False)
            ),
        )
        for m in _pick(d, "members", default=[])
    )
    return ReportPayload(
        group_id=_pick(d, "groupId", "group_id", default=""),
        month=_pick(d, "month", default=""),
        visit_date=_pick(d, "visitDate", "visit_date"),
        members=members,
        meeting_attendance=_pick(d, "meetingAttendance", "meeting_attendance", default=""),
        field_service_participation=_pick(d, "fieldServiceParticipation", "field_service_participation", default=""),
        general_observations=_pick(d, "generalObservations", "general_observations", default=""),
        encouragement=_pick(d, "encouragement", default=""),
        recommendations=_pick(d, "recommendations", default=""),
        follow_up_needed=bool(_pick(d, "followUpNeeded", "follow_up_needed", default=False)),
        follow_up_notes=_pick(d, "followUpNotes", "follow_up_notes"),
    )
