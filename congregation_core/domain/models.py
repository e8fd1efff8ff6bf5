# congregation_core/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple, Union

from congregation_core.errors import ValidationError


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class PioneerStatus(str, Enum):
    NONE = "none"
    AUXILIARY = "auxiliary"
    REGULAR = "regular"
    SPECIAL = "special"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class EntityKind(str, Enum):
    MEMBER = "member"
    TERRITORY = "territory"


class Strategy(str, Enum):
    SIMPLE = "simple"
    GENDER = "gender"
    PIONEER = "pioneer"
    PRIVILEGE = "privilege"
    FAMILY = "family"
    EQUAL = "equal"
    DIFFICULTY = "difficulty"
    SIZE = "size"

    @classmethod
    def parse(cls, name: str, kind: EntityKind = EntityKind.MEMBER) -> "Strategy":
        try:
            strategy = cls(str(getattr(name, "value", name)).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown distribution strategy: {name!r}") from None
        if strategy not in STRATEGIES_BY_KIND[kind]:
            raise ValidationError(f"Strategy {strategy.value!r} does not apply to {kind.value} distribution")
        return strategy


STRATEGIES_BY_KIND: Dict[EntityKind, Tuple[Strategy, ...]] = {
    EntityKind.MEMBER: (Strategy.SIMPLE, Strategy.GENDER, Strategy.PIONEER, Strategy.PRIVILEGE, Strategy.FAMILY),
    EntityKind.TERRITORY: (Strategy.EQUAL, Strategy.DIFFICULTY, Strategy.SIZE),
}


class VisitEvent(str, Enum):
    DATE_SET = "date_set"
    REPORT_SUBMITTED = "report_submitted"
    REPORT_DELETED = "report_deleted"


class VisitStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"

    def apply(self, event: VisitEvent) -> "VisitStatus":
        return _VISIT_TRANSITIONS[(self, event)]


# every (status, event) pair is listed; only REPORT_DELETED moves backwards
_VISIT_TRANSITIONS: Dict[Tuple[VisitStatus, VisitEvent], VisitStatus] = {
    (VisitStatus.PENDING, VisitEvent.DATE_SET): VisitStatus.SCHEDULED,
    (VisitStatus.SCHEDULED, VisitEvent.DATE_SET): VisitStatus.SCHEDULED,
    (VisitStatus.COMPLETED, VisitEvent.DATE_SET): VisitStatus.COMPLETED,
    (VisitStatus.PENDING, VisitEvent.REPORT_SUBMITTED): VisitStatus.COMPLETED,
    (VisitStatus.SCHEDULED, VisitEvent.REPORT_SUBMITTED): VisitStatus.COMPLETED,
    (VisitStatus.COMPLETED, VisitEvent.REPORT_SUBMITTED): VisitStatus.COMPLETED,
    (VisitStatus.PENDING, VisitEvent.REPORT_DELETED): VisitStatus.PENDING,
    (VisitStatus.SCHEDULED, VisitEvent.REPORT_DELETED): VisitStatus.SCHEDULED,
    (VisitStatus.COMPLETED, VisitEvent.REPORT_DELETED): VisitStatus.SCHEDULED,
}


class WarningType(str, Enum):
    EMPTY = "empty"
    TOO_SMALL = "too-small"
    TOO_LARGE = "too-large"
    NO_ELDER = "no-elder"
    NO_PIONEER = "no-pioneer"


@dataclass(frozen=True)
class Actor:
    id: str
    name: str


@dataclass(frozen=True)
class Group:
    id: str
    name: str


@dataclass(frozen=True)
class FamilyLink:
    """Points at the family head this member belongs to"""
    member_id: str
    relationship: str = "other"


@dataclass(frozen=True)
class Member:
    id: str
    full_name: str
    gender: Optional[Gender] = None
    pioneer_status: PioneerStatus = PioneerStatus.NONE
    privileges: FrozenSet[str] = frozenset()
    group_id: Optional[str] = None
    is_family_head: bool = False
    family_links: Tuple[FamilyLink, ...] = ()

    @property
    def is_pioneer(self) -> bool:
        return self.pioneer_status != PioneerStatus.NONE

    def has_privilege(self, name: str) -> bool:
        return name in self.privileges

    def linked_to(self, head_id: str) -> bool:
        return any(link.member_id == head_id for link in self.family_links)


@dataclass(frozen=True)
class Territory:
    id: str
    number: str
    name: str
    difficulty: Difficulty = Difficulty.MEDIUM
    household_count: Optional[int] = None
    group_id: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class FieldServiceReport:
    member_id: str
    month: str                  # YYYY-MM
    hours: float = 0
    bible_studies: int = 0


@dataclass(frozen=True)
class ScheduleRecord:
    """One visit attempt for a group in a month"""
    id: str
    group_id: str
    month: str
    scheduled_date: Optional[date]
    status: VisitStatus
    overseer_id: str
    overseer_name: str
    completed_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str, Optional[date]]:
        return (self.group_id, self.month, self.scheduled_date)


@dataclass(frozen=True)
class RosterEntry:
    """A member as seen on the day of the visit"""
    member_id: str
    name: str
    present: bool = False
    has_study: bool = False
    participates_in_ministry: bool = False
    field_service_hours: float = 0
    submitted_report: bool = False


@dataclass(frozen=True)
class VisitReport:
    id: str
    group_id: str
    month: str
    visit_date: date
    overseer_id: str
    overseer_name: str
    members: Tuple[RosterEntry, ...] = ()
    meeting_attendance: str = ""
    field_service_participation: str = ""
    general_observations: str = ""
    encouragement: str = ""
    recommendations: str = ""
    follow_up_needed: bool = False
    follow_up_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def present_count(self) -> int:
        return sum(1 for m in self.members if m.present)

    @property
    def study_count(self) -> int:
        return sum(1 for m in self.members if m.has_study)

    @property
    def ministry_active(self) -> int:
        return sum(1 for m in self.members if m.participates_in_ministry)


@dataclass(frozen=True)
class ReportPayload:
    """What an overseer submits; ids, overseer fields and the parsed visit date are filled in on save"""
    group_id: str
    month: str
    visit_date: Union[date, str, None]
    members: Tuple[RosterEntry, ...] = ()
    meeting_attendance: str = ""
    field_service_participation: str = ""
    general_observations: str = ""
    encouragement: str = ""
    recommendations: str = ""
    follow_up_needed: bool = False
    follow_up_notes: Optional[str] = None


@dataclass(frozen=True)
class GroupWarning:
    group_id: str
    group_name: str
    type: WarningType
    message: str


@dataclass(frozen=True)
class GridRow:
    id: str
    group_id: str
    group_name: str
    month: str
    scheduled_date: Optional[date]
    visit_date: Optional[date]
    status: VisitStatus
    present_count: int = 0
    total_members: int = 0
    study_count: int = 0
    ministry_active: int = 0
    follow_up_needed: bool = False


@dataclass(frozen=True)
class BucketCount:
    group: Group
    member_count: int


@dataclass
class DistributionResult:
    strategy: Strategy
    kind: EntityKind
    count: int
    group_count: int
    assignments: Dict[str, str] = field(default_factory=dict)  # entity id -> group id


@dataclass
class GroupAnalytics:
    group_id: str
    group_name: str
    total_members: int
    male_count: int
    female_count: int
    pioneer_count: int
    elder_count: int
    ms_count: int


@dataclass
class TerritoryStats:
    group_id: str
    group_name: str
    total_territories: int
    easy_count: int
    medium_count: int
    hard_count: int
    household_total: int


@dataclass
class MemberPresence:
    member_id: str
    name: str
    was_present: bool = False
    has_study: bool = False
    participates_in_ministry: bool = False
    visits: int = 0
