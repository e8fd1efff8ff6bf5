# congregation_core/reporting/report.py
from __future__ import annotations

from typing import Dict, List, Sequence

import pandas as pd

from congregation_core.domain.models import (
    GridRow,
    Group,
    GroupAnalytics,
    GroupWarning,
    Member,
    MemberPresence,
    TerritoryStats,
)

GRID_COLUMNS = [
    "id", "group_name", "month", "scheduled_date", "visit_date", "status",
    "present_count", "total_members", "study_count", "ministry_active", "follow_up_needed",
]


def build_grid_table(rows: Sequence[GridRow]) -> pd.DataFrame:
    records = [dict(
        id=r.id,
        group_name=r.group_name,
        month=r.month,
        scheduled_date=r.scheduled_date.isoformat() if r.scheduled_date else "",
        visit_date=r.visit_date.isoformat() if r.visit_date else "",
        status=r.status.value,
        present_count=r.present_count,
        total_members=r.total_members,
        study_count=r.study_count,
        ministry_active=r.ministry_active,
        follow_up_needed=r.follow_up_needed,
    ) for r in rows]
    return pd.DataFrame(records, columns=GRID_COLUMNS)


def build_group_summary(analytics: Sequence[GroupAnalytics]) -> pd.DataFrame:
    df = pd.DataFrame([vars(a) for a in analytics])
    if not df.empty:
        df = df.drop(columns=["group_id"]).sort_values("group_name").reset_index(drop=True)
    return df


def build_territory_summary(stats: Sequence[TerritoryStats]) -> pd.DataFrame:
    df = pd.DataFrame([vars(s) for s in stats])
    if not df.empty:
        df = df.drop(columns=["group_id"]).sort_values("group_name").reset_index(drop=True)
    return df


def build_warning_table(warnings: Sequence[GroupWarning]) -> pd.DataFrame:
    return pd.DataFrame(
        [dict(group_name=w.group_name, type=w.type.value, message=w.message) for w in warnings],
        columns=["group_name", "type", "message"],
    )


def build_assignment_export(members: Sequence[Member], groups: Sequence[Group]) -> pd.DataFrame:
    """One row per member; sorted by group then name, unassigned members last."""
    names: Dict[str, str] = {g.id: g.name for g in groups}
    rows: List[dict] = []
    for m in members:
        rows.append(dict(
            Name=m.full_name,
            Gender=m.gender.value if m.gender else "",
            Group=names.get(m.group_id, "Unassigned") if m.group_id else "Unassigned",
            PioneerStatus=m.pioneer_status.value,
            Privileges=", ".join(sorted(m.privileges)) or "None",
        ))
    df = pd.DataFrame(rows, columns=["Name", "Gender", "Group", "PioneerStatus", "Privileges"])
    if not df.empty:
        df["_unassigned"] = df["Group"] == "Unassigned"
        df = df.sort_values(["_unassigned", "Group", "Name"]).drop(columns="_unassigned").reset_index(drop=True)
    return df


def build_presence_summary(presence: Sequence[MemberPresence]) -> pd.DataFrame:
    df = pd.DataFrame(
        [vars(p) for p in presence],
        columns=["member_id", "name", "was_present", "has_study", "participates_in_ministry", "visits"],
    )
    if not df.empty:
        df = df.sort_values(["was_present", "name"], ascending=[True, True]).reset_index(drop=True)
    return df
