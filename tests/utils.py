"""Builders shared by the test modules."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from congregation_core.app import CongregationApp
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
    Territory,
)
from congregation_core.io_layer.repositories import (
    InMemoryEntityRepository,
    InMemoryFieldServiceRepository,
    InMemoryGroupRepository,
    Repositories,
)

ELDER = "Elder"
SERVANT = "Ministerial Servant"


class TickingClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self, start: datetime = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def member(
    mid: str,
    gender: Optional[Gender] = None,
    pioneer: PioneerStatus = PioneerStatus.NONE,
    privileges: Iterable[str] = (),
    group_id: Optional[str] = None,
    head: bool = False,
    head_id: Optional[str] = None,
    name: Optional[str] = None,
) -> Member:
    links = (FamilyLink(member_id=head_id, relationship="child"),) if head_id else ()
    return Member(
        id=mid,
        full_name=name or f"Member {mid}",
        gender=gender,
        pioneer_status=pioneer,
        privileges=frozenset(privileges),
        group_id=group_id,
        is_family_head=head,
        family_links=links,
    )


def make_members(n: int, group_id: Optional[str] = None) -> List[Member]:
    return [member(f"m{i:02d}", group_id=group_id) for i in range(1, n + 1)]


def make_groups(n: int) -> List[Group]:
    return [Group(id=f"G{i}", name=f"Group {i}") for i in range(1, n + 1)]


def territory(tid: str, difficulty: Difficulty = Difficulty.MEDIUM, households: Optional[int] = None,
              active: bool = True, group_id: Optional[str] = None) -> Territory:
    return Territory(id=tid, number=tid, name=f"Territory {tid}", difficulty=difficulty,
                     household_count=households, group_id=group_id, is_active=active)


def make_app(
    groups: Sequence[Group] = (),
    members: Sequence[Member] = (),
    territories: Sequence[Territory] = (),
    field_service: Sequence[FieldServiceReport] = (),
    repos: Optional[Repositories] = None,
) -> CongregationApp:
    repos = repos or Repositories()
    repos.groups = InMemoryGroupRepository(groups)
    repos.members = InMemoryEntityRepository(members)
    repos.territories = InMemoryEntityRepository(territories)
    repos.field_service = InMemoryFieldServiceRepository(field_service)
    return CongregationApp(repos, clock=TickingClock())


def payload(group_id: str = "G1", month: str = "2025-03", visit_date: str = "2025-03-10",
            present: Sequence[str] = (), absent: Sequence[str] = (), **kwargs) -> ReportPayload:
    entries = [RosterEntry(member_id=m, name=f"Member {m}", present=True, participates_in_ministry=True)
               for m in present]
    entries += [RosterEntry(member_id=m, name=f"Member {m}") for m in absent]
    return ReportPayload(group_id=group_id, month=month, visit_date=visit_date, members=tuple(entries), **kwargs)


def group_of(app: CongregationApp, entity_id: str) -> Optional[str]:
    return app.repos.members.find_by_id(entity_id).group_id


# roster workbook rows, one list per sheet
GROUPS = [{"id": "G1", "name": "North"}, {"id": "G2", "name": "South"}]
MEMBERS = [
    {"id": "m1", "full_name": "Anna Berg", "gender": "female", "pioneer_status": "Regular",
     "privileges": "", "group": "North", "is_family_head": "yes", "family_head_id": "", "relationship": ""},
    {"id": "m2", "full_name": "Bo Berg", "gender": "Male", "pioneer_status": "",
     "privileges": "Elder, Ministerial Servant", "group": "G2", "is_family_head": "",
     "family_head_id": "m1", "relationship": "spouse"},
    {"id": "m3", "full_name": "Cid Holm", "gender": "", "pioneer_status": "",
     "privileges": "", "group": "", "is_family_head": "", "family_head_id": "", "relationship": ""},
]
TERRITORIES = [
    {"number": 1, "name": "Harbour", "difficulty": "Hard", "household_count": 120, "group": "North", "is_active": ""},
    {"number": 2, "name": "Hills", "difficulty": "", "household_count": None, "group": "", "is_active": "no"},
]
FIELD_SERVICE = [{"member_id": "m1", "month": "2025-03", "hours": 50.5, "bible_studies": 2}]


def write_roster(path: Path, sheets: Dict[str, List[dict]]) -> str:
    with pd.ExcelWriter(path, engine="openpyxl") as w:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(w, sheet_name=name, index=False)
    return str(path)
