# congregation_core/visits/service.py
"""
Supervisory visit schedules and the reports that complete them.

A schedule record is one visit attempt, keyed by (group, month, scheduled date);
several attempts per group and month are allowed. A record only becomes
``completed`` when a report for the same group, month and calendar day is
saved, and drops back to ``scheduled`` when that report is deleted.

Every mutation that touches both stores records an undo step per write and
rolls back on failure, so a failed call leaves schedules and reports as they
were.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from congregation_core.audit.activity import AuditSink, audited
from congregation_core.config import AppConfig, DEFAULT_CONFIG
from congregation_core.domain.calendar import DateLike, current_month, now_in, parse_date, parse_month, same_day
from congregation_core.domain.models import (
    Actor,
    GridRow,
    Group,
    Member,
    MemberPresence,
    ReportPayload,
    RosterEntry,
    ScheduleRecord,
    VisitEvent,
    VisitReport,
    VisitStatus,
)
from congregation_core.errors import NotFoundError, UnauthorizedError, ValidationError
from congregation_core.io_layer.repositories import (
    InMemoryFieldServiceRepository,
    InMemoryReportRepository,
    InMemoryScheduleRepository,
    Repository,
)
from congregation_core.validation.validator import require_fields

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown Group"


class _UndoLog:
    def __init__(self):
        self._steps: List[Callable[[], object]] = []

    def push(self, step: Callable[[], object]) -> None:
        self._steps.append(step)

    def rollback(self) -> None:
        for step in reversed(self._steps):
            try:
                step()
            except Exception:
                logger.exception("Rollback step failed; stores may need manual repair")
        self._steps.clear()


def _describe_schedule(actor, record: ScheduleRecord, group_id, month, scheduled_date=None):
    return (
        f"{actor.name} scheduled a visit for group {record.group_id} - {record.month}"
        + (f" on {record.scheduled_date.isoformat()}" if record.scheduled_date else ""),
        {"scheduleId": record.id, "groupId": record.group_id, "month": record.month},
    )


def _describe_schedules(actor, records: List[ScheduleRecord], entries):
    return (
        f"{actor.name} updated group visit schedules for {len(records)} groups",
        {"schedulesCount": len(records), "scheduleIds": [r.id for r in records]},
    )


def _describe_schedule_delete(actor, record: ScheduleRecord, schedule_id):
    return (
        f"{actor.name} deleted group visit schedule for {record.group_id} - {record.month}",
        {"scheduleId": schedule_id, "groupId": record.group_id, "month": record.month},
    )


def _describe_report(actor, report: VisitReport, *args, **kwargs):
    return (
        f"{actor.name} saved overseer report for group {report.group_id} - {report.month}",
        {"entityId": report.id, "entityType": "OverseerReport", "groupId": report.group_id},
    )


def _describe_report_delete(actor, report: VisitReport, report_id):
    return (
        f"{actor.name} deleted overseer report for {report.month}",
        {"entityId": report_id, "entityType": "OverseerReport", "groupId": report.group_id},
    )


class VisitService:

    def __init__(
        self,
        groups: Repository[Group],
        members: Repository[Member],
        schedules: InMemoryScheduleRepository,
        reports: InMemoryReportRepository,
        field_service: InMemoryFieldServiceRepository,
        audit: AuditSink,
        config: AppConfig = DEFAULT_CONFIG,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.groups = groups
        self.members = members
        self.schedules = schedules
        self.reports = reports
        self.field_service = field_service
        self.audit = audit
        self.config = config
        self.clock = clock or (lambda: now_in(config.timezone_name))

    # --- helpers ---

    def _group(self, group_id: str) -> Group:
        group = self.groups.find_by_id(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}")
        return group

    def _owned_report(self, actor: Actor, report_id: str) -> VisitReport:
        report = self.reports.find_by_id(report_id)
        if report is None:
            raise NotFoundError(f"Report not found: {report_id}")
        if report.overseer_id != actor.id:
            raise UnauthorizedError("Unauthorized to change this report")
        return report

    def _schedule_key(self, group_id: str, month: str, scheduled_date: DateLike) -> Tuple[str, str, Optional[date]]:
        require_fields(group_id=group_id, month=month)
        return group_id, parse_month(month), parse_date(scheduled_date)

    def _upsert_one(self, actor: Actor, key: Tuple[str, str, Optional[date]], undo: _UndoLog) -> ScheduleRecord:
        group_id, month, when = key
        now = self.clock()

        def create() -> ScheduleRecord:
            status = VisitStatus.PENDING.apply(VisitEvent.DATE_SET) if when else VisitStatus.PENDING
            return ScheduleRecord(
                id=uuid.uuid4().hex, group_id=group_id, month=month, scheduled_date=when, status=status,
                overseer_id=actor.id, overseer_name=actor.name, created_at=now, updated_at=now,
            )

        record, created = self.schedules.find_or_create(key, create)
        if created:
            undo.push(lambda: self.schedules.delete_by_id(record.id))
            return record
        # same attempt again: only the overseer metadata changes
        undo.push(lambda: self.schedules.upsert(record))
        return self.schedules.upsert(dataclasses.replace(
            record, overseer_id=actor.id, overseer_name=actor.name, updated_at=now,
        ))

    def _apply_event(self, record: ScheduleRecord, event: VisitEvent, completed_date: Optional[date],
                     undo: _UndoLog) -> ScheduleRecord:
        undo.push(lambda: self.schedules.upsert(record))
        return self.schedules.upsert(dataclasses.replace(
            record, status=record.status.apply(event), completed_date=completed_date, updated_at=self.clock(),
        ))

    def _mark_completed(self, actor: Actor, group_id: str, month: str, visit_date: date,
                        undo: _UndoLog) -> ScheduleRecord:
        record = self._upsert_one(actor, (group_id, month, visit_date), undo)
        return self._apply_event(record, VisitEvent.REPORT_SUBMITTED, visit_date, undo)

    def _revert_completion(self, report: VisitReport, undo: _UndoLog) -> Optional[ScheduleRecord]:
        record = self.schedules.find_by_key(report.group_id, report.month, report.visit_date)
        if record is None:
            return None
        still_covered = any(
            r.id != report.id and same_day(r.visit_date, report.visit_date)
            for r in self.reports.find_many(group_id=report.group_id, month=report.month)
        )
        if still_covered:
            return record
        return self._apply_event(record, VisitEvent.REPORT_DELETED, None, undo)

    def _enrich(self, entry: RosterEntry, month: str) -> RosterEntry:
        require_fields(member_id=entry.member_id, name=entry.name)
        try:
            fs = self.field_service.find(entry.member_id, month)
        except Exception:
            logger.warning("Field service lookup failed for %s (%s); recording zero hours",
                           entry.member_id, month, exc_info=True)
            fs = None
        return dataclasses.replace(
            entry,
            field_service_hours=fs.hours if fs else 0,
            submitted_report=fs is not None,
        )

    def _build_report(self, actor: Actor, payload: ReportPayload, base: Optional[VisitReport]) -> VisitReport:
        require_fields(group_id=payload.group_id, month=payload.month, visit_date=payload.visit_date)
        month = parse_month(payload.month)
        visit_date = parse_date(payload.visit_date)
        self._group(payload.group_id)
        members = tuple(self._enrich(e, month) for e in payload.members)
        now = self.clock()
        return VisitReport(
            id=base.id if base else uuid.uuid4().hex,
            group_id=payload.group_id,
            month=month,
            visit_date=visit_date,
            overseer_id=actor.id,
            overseer_name=actor.name,
            members=members,
            meeting_attendance=payload.meeting_attendance,
            field_service_participation=payload.field_service_participation,
            general_observations=payload.general_observations,
            encouragement=payload.encouragement,
            recommendations=payload.recommendations,
            follow_up_needed=payload.follow_up_needed,
            follow_up_notes=payload.follow_up_notes,
            created_at=base.created_at if base else now,
            updated_at=now,
        )

    # --- schedules ---

    @audited("group_schedule", _describe_schedule, "update group schedule")
    def upsert_schedule(self, actor: Actor, group_id: str, month: str,
                        scheduled_date: DateLike = None) -> ScheduleRecord:
        key = self._schedule_key(group_id, month, scheduled_date)
        self._group(group_id)
        return self._upsert_one(actor, key, _UndoLog())

    @audited("group_schedule", _describe_schedules, "update group schedules")
    def upsert_schedules(self, actor: Actor,
                         entries: Sequence[Tuple[str, str, DateLike]]) -> List[ScheduleRecord]:
        if not entries:
            raise ValidationError("No schedules provided")
        keys = [self._schedule_key(*entry) for entry in entries]
        for group_id, _, _ in keys:
            self._group(group_id)
        undo = _UndoLog()
        try:
            return [self._upsert_one(actor, key, undo) for key in keys]
        except Exception:
            undo.rollback()
            raise

    @audited("group_schedule_delete", _describe_schedule_delete, "delete schedule")
    def delete_schedule(self, actor: Actor, schedule_id: str) -> ScheduleRecord:
        record = self.schedules.find_by_id(schedule_id)
        if record is None:
            raise NotFoundError(f"Schedule not found: {schedule_id}")
        if record.overseer_id != actor.id:
            raise UnauthorizedError("Only the overseer who created this schedule can delete it")
        self.schedules.delete_by_id(schedule_id)
        return record

    def list_schedules(self, actor: Actor, month: Optional[str] = None) -> List[ScheduleRecord]:
        filters = {"overseer_id": actor.id}
        if month:
            filters["month"] = parse_month(month)
        return sorted(self.schedules.find_many(**filters), key=lambda s: (s.month, s.scheduled_date or date.min))

    # --- reports ---

    @audited("overseer_report", _describe_report, "submit overseer report")
    def submit_report(self, actor: Actor, payload: ReportPayload) -> VisitReport:
        report = self._build_report(actor, payload, base=None)
        undo = _UndoLog()
        try:
            self.reports.upsert(report)
            undo.push(lambda: self.reports.delete_by_id(report.id))
            self._mark_completed(actor, report.group_id, report.month, report.visit_date, undo)
        except Exception:
            undo.rollback()
            raise
        return report

    @audited("overseer_report_update", _describe_report, "update overseer report")
    def update_report(self, actor: Actor, report_id: str, payload: ReportPayload) -> VisitReport:
        existing = self._owned_report(actor, report_id)
        updated = self._build_report(actor, payload, base=existing)
        moved = (existing.group_id, existing.month, existing.visit_date) != \
            (updated.group_id, updated.month, updated.visit_date)
        undo = _UndoLog()
        try:
            self.reports.upsert(updated)
            undo.push(lambda: self.reports.upsert(existing))
            if moved:
                self._mark_completed(actor, updated.group_id, updated.month, updated.visit_date, undo)
                self._revert_completion(existing, undo)
        except Exception:
            undo.rollback()
            raise
        return updated

    @audited("overseer_report_delete", _describe_report_delete, "delete overseer report")
    def delete_report(self, actor: Actor, report_id: str) -> VisitReport:
        report = self._owned_report(actor, report_id)
        undo = _UndoLog()
        try:
            self.reports.delete_by_id(report_id)
            undo.push(lambda: self.reports.upsert(report))
            self._revert_completion(report, undo)
        except Exception:
            undo.rollback()
            raise
        return report

    def get_report(self, actor: Actor, report_id: str) -> VisitReport:
        return self._owned_report(actor, report_id)

    def list_reports(self, actor: Actor, month: Optional[str] = None,
                     group_id: Optional[str] = None) -> List[VisitReport]:
        filters = {"overseer_id": actor.id}
        if month:
            filters["month"] = parse_month(month)
        if group_id:
            filters["group_id"] = group_id
        return sorted(self.reports.find_many(**filters), key=lambda r: r.created_at or datetime.min, reverse=True)

    def group_roster(self, group_id: str, month: str) -> List[RosterEntry]:
        """Pre-filled roster for a visit report from the current group members."""
        self._group(group_id)
        month = parse_month(month)
        out: List[RosterEntry] = []
        for m in sorted(self.members.find_many(group_id=group_id), key=lambda m: m.full_name):
            fs = self.field_service.find(m.id, month)
            out.append(RosterEntry(
                member_id=m.id,
                name=m.full_name,
                has_study=bool(fs and fs.bible_studies > 0),
                participates_in_ministry=bool(fs and fs.hours > 0),
                field_service_hours=fs.hours if fs else 0,
                submitted_report=fs is not None,
            ))
        return out

    # --- projections ---

    def _group_names(self) -> Dict[str, str]:
        return {g.id: g.name for g in self.groups.find_many()}

    @staticmethod
    def _report_row(report: VisitReport, group_name: str, scheduled_date: Optional[date]) -> GridRow:
        return GridRow(
            id=report.id,
            group_id=report.group_id,
            group_name=group_name,
            month=report.month,
            scheduled_date=scheduled_date,
            visit_date=report.visit_date,
            status=VisitStatus.COMPLETED,
            present_count=report.present_count,
            total_members=len(report.members),
            study_count=report.study_count,
            ministry_active=report.ministry_active,
            follow_up_needed=report.follow_up_needed,
        )

    def list_for_grid(self, actor: Actor, month: Optional[str] = None) -> List[GridRow]:
        month = parse_month(month) if month else current_month(self.config.timezone_name)
        schedules = self.schedules.find_many(overseer_id=actor.id, month=month)
        if not schedules:
            return []
        names = self._group_names()
        reports = self.reports.find_many(overseer_id=actor.id, month=month)

        rows: List[GridRow] = []
        for index, s in enumerate(schedules):
            name = names.get(s.group_id, UNKNOWN_GROUP)
            report = next(
                (r for r in reports if r.group_id == s.group_id and same_day(r.visit_date, s.scheduled_date)),
                None,
            )
            if report is not None:
                rows.append(self._report_row(report, name, s.scheduled_date))
                continue
            rows.append(GridRow(
                id=f"scheduled-{s.id}-{s.group_id}-{s.month}-{index}",
                group_id=s.group_id,
                group_name=name,
                month=s.month,
                scheduled_date=s.scheduled_date,
                visit_date=None,
                status=s.status,
            ))
        return rows

    def overseer_analytics(self, month: Optional[str] = None) -> List[GridRow]:
        """Every report (any overseer), newest visit first."""
        filters = {"month": parse_month(month)} if month else {}
        names = self._group_names()
        reports = sorted(self.reports.find_many(**filters), key=lambda r: r.visit_date, reverse=True)
        return [self._report_row(r, names.get(r.group_id, UNKNOWN_GROUP), None) for r in reports]

    def member_presence_summary(self, month: Optional[str] = None) -> List[MemberPresence]:
        filters = {"month": parse_month(month)} if month else {}
        stats: Dict[str, MemberPresence] = {}
        for report in self.reports.find_many(**filters):
            for entry in report.members:
                p = stats.setdefault(entry.member_id, MemberPresence(member_id=entry.member_id, name=entry.name))
                p.visits += 1
                p.was_present = p.was_present or entry.present
                p.has_study = p.has_study or entry.has_study
                p.participates_in_ministry = p.participates_in_ministry or entry.participates_in_ministry
        return sorted(stats.values(), key=lambda p: p.name)
