# congregation_core/io_layer/xlsx_reader.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd
from openpyxl import load_workbook

from congregation_core.domain.calendar import parse_month
from congregation_core.domain.models import (
    Difficulty,
    FamilyLink,
    FieldServiceReport,
    Gender,
    Group,
    Member,
    PioneerStatus,
    Territory,
)
from congregation_core.errors import ValidationError
from congregation_core.io_layer.paths import InputPaths
from congregation_core.io_layer.repositories import (
    InMemoryEntityRepository,
    InMemoryFieldServiceRepository,
    InMemoryGroupRepository,
    Repositories,
)

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "y", "x"}


def _text(row: pd.Series, col: str) -> str:
    if col not in row.index or pd.isna(row[col]):
        return ""
    v = row[col]
    # Excel hands back whole numbers as floats
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    return str(v).strip()


def _flag(row: pd.Series, col: str, default: bool = False) -> bool:
    t = _text(row, col)
    if not t:
        return default
    return t.lower() in _TRUE


def _number(row: pd.Series, col: str) -> Optional[float]:
    t = _text(row, col)
    if not t:
        return None
    try:
        return float(t)
    except ValueError:
        raise ValidationError(f"Column {col} must be numeric, got {t!r}") from None


def _require_columns(df: pd.DataFrame, cols: List[str], where: str) -> None:
    for c in cols:
        if c not in df.columns:
            raise ValidationError(f"{where} is missing column {c}")


@dataclass
class RosterData:
    groups: List[Group] = field(default_factory=list)
    members: List[Member] = field(default_factory=list)
    territories: List[Territory] = field(default_factory=list)
    field_service: List[FieldServiceReport] = field(default_factory=list)

    def to_repositories(self, base: Optional[Repositories] = None) -> Repositories:
        """Replaces the roster collections; schedules and reports are kept."""
        repos = base or Repositories()
        repos.groups = InMemoryGroupRepository(self.groups)
        repos.members = InMemoryEntityRepository(self.members)
        repos.territories = InMemoryEntityRepository(self.territories)
        repos.field_service = InMemoryFieldServiceRepository(self.field_service)
        return repos


@dataclass(frozen=True)
class RosterReader:
    paths: InputPaths

    def read_groups(self, path: str, sheet: str) -> List[Group]:
        """groups sheet: id, name"""
        df = pd.read_excel(path, sheet_name=sheet)
        _require_columns(df, ["id", "name"], f"{path}:{sheet}")
        groups: List[Group] = []
        seen = set()
        for _, row in df.iterrows():
            gid = _text(row, "id")
            if not gid:
                continue
            if gid in seen:
                raise ValidationError(f"Duplicate group id {gid} in {path}:{sheet}")
            seen.add(gid)
            groups.append(Group(id=gid, name=_text(row, "name") or gid))
        return groups

    def read_members(self, path: str, sheet: str, group_name_to_id: Dict[str, str]) -> List[Member]:
        """
        members sheet: id, full_name, gender, pioneer_status, privileges (comma separated),
        group (name or id), is_family_head, family_head_id, relationship
        """
        df = pd.read_excel(path, sheet_name=sheet)
        _require_columns(df, ["id", "full_name"], f"{path}:{sheet}")
        group_ids = set(group_name_to_id.values())

        members: List[Member] = []
        for _, row in df.iterrows():
            mid = _text(row, "id")
            if not mid:
                continue

            gender_text = _text(row, "gender").capitalize()
            try:
                gender = Gender(gender_text) if gender_text else None
                pioneer = PioneerStatus(_text(row, "pioneer_status").lower() or "none")
            except ValueError as e:
                raise ValidationError(f"Member {mid}: {e}") from None

            group_ref = _text(row, "group")
            group_id = group_name_to_id.get(group_ref, group_ref if group_ref in group_ids else None)
            if group_ref and group_id is None:
                raise ValidationError(f"Member {mid} refers to unknown group {group_ref}")

            head_id = _text(row, "family_head_id")
            links = (FamilyLink(member_id=head_id, relationship=_text(row, "relationship") or "other"),) \
                if head_id and head_id != mid else ()

            privileges = frozenset(p.strip() for p in _text(row, "privileges").split(",") if p.strip())
            members.append(Member(
                id=mid,
                full_name=_text(row, "full_name"),
                gender=gender,
                pioneer_status=pioneer,
                privileges=privileges,
                group_id=group_id,
                is_family_head=_flag(row, "is_family_head"),
                family_links=links,
            ))

        known = {m.id for m in members}
        for m in members:
            for link in m.family_links:
                if link.member_id not in known:
                    raise ValidationError(f"Member {m.id} links to unknown family head {link.member_id}")
        return members

    def read_territories(self, path: str, sheet: str, group_name_to_id: Dict[str, str]) -> List[Territory]:
        """territories sheet: number, name, id, difficulty, household_count, group, is_active"""
        df = pd.read_excel(path, sheet_name=sheet)
        _require_columns(df, ["number", "name"], f"{path}:{sheet}")
        out: List[Territory] = []
        for _, row in df.iterrows():
            number = _text(row, "number")
            if not number:
                continue
            try:
                difficulty = Difficulty(_text(row, "difficulty").lower() or "medium")
            except ValueError as e:
                raise ValidationError(f"Territory {number}: {e}") from None
            households = _number(row, "household_count")
            group_ref = _text(row, "group")
            group_id = group_name_to_id.get(group_ref, group_ref if group_ref in group_name_to_id.values() else None)
            if group_ref and group_id is None:
                raise ValidationError(f"Territory {number} refers to unknown group {group_ref}")
            out.append(Territory(
                id=_text(row, "id") or number,
                number=number,
                name=_text(row, "name"),
                difficulty=difficulty,
                household_count=int(households) if households is not None else None,
                group_id=group_id,
                is_active=_flag(row, "is_active", default=True),
            ))
        return out

    def read_field_service(self, path: str, sheet: str) -> List[FieldServiceReport]:
        """field_service sheet: member_id, month (YYYY-MM), hours, bible_studies"""
        df = pd.read_excel(path, sheet_name=sheet, dtype={"month": str})
        _require_columns(df, ["member_id", "month"], f"{path}:{sheet}")
        out: List[FieldServiceReport] = []
        for _, row in df.iterrows():
            member_id = _text(row, "member_id")
            if not member_id:
                continue
            out.append(FieldServiceReport(
                member_id=member_id,
                month=parse_month(_text(row, "month")[:7]),
                hours=_number(row, "hours") or 0,
                bible_studies=int(_number(row, "bible_studies") or 0),
            ))
        return out

    def build_roster(self) -> RosterData:
        paths = self.paths
        if not paths.roster_file:
            raise ValidationError("No roster workbook given")
        wb = load_workbook(paths.roster_file, read_only=True)
        sheets = set(wb.sheetnames)
        wb.close()

        for required in (paths.groups_sheet, paths.members_sheet):
            if required not in sheets:
                raise ValidationError(f"{paths.roster_file} has no '{required}' sheet")

        data = RosterData()
        data.groups = self.read_groups(paths.roster_file, paths.groups_sheet)
        name_to_id = {g.name: g.id for g in data.groups}
        data.members = self.read_members(paths.roster_file, paths.members_sheet, name_to_id)

        # optional sheets
        if paths.territories_sheet in sheets:
            data.territories = self.read_territories(paths.roster_file, paths.territories_sheet, name_to_id)
        if paths.field_service_sheet in sheets:
            data.field_service = self.read_field_service(paths.roster_file, paths.field_service_sheet)

        logger.info(
            "Read roster %s: %d groups, %d members, %d territories, %d field service reports",
            paths.roster_file, len(data.groups), len(data.members), len(data.territories), len(data.field_service),
        )
        return data


