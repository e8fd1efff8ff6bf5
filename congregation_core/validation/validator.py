# congregation_core/validation/validator.py
from __future__ import annotations

from typing import Dict, List, Sequence

from congregation_core.config import GroupRules
from congregation_core.domain.models import Group, GroupWarning, Member, WarningType
from congregation_core.errors import ValidationError


def require_fields(**fields) -> None:
    missing = [name for name, value in fields.items() if value is None or (isinstance(value, str) and not value.strip())]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def require_groups(groups: Sequence[Group]) -> None:
    if not groups:
        raise ValidationError("No groups available")


def validate_group_composition(
    groups: Sequence[Group],
    members: Sequence[Member],
    rules: GroupRules,
) -> List[GroupWarning]:
    """
    One warning per violated soft rule per group. Never raises.
    An empty group also counts as too small and lacking an elder and a pioneer.
    """
    warnings: List[GroupWarning] = []

    by_group: Dict[str, List[Member]] = {g.id: [] for g in groups}
    for m in members:
        if m.group_id in by_group:
            by_group[m.group_id].append(m)

    for g in groups:
        mems = by_group[g.id]
        n = len(mems)

        def warn(wtype: WarningType, message: str) -> None:
            warnings.append(GroupWarning(group_id=g.id, group_name=g.name, type=wtype, message=message))

        if n == 0:
            warn(WarningType.EMPTY, "Group has no members")
        if n < rules.min_members:
            warn(WarningType.TOO_SMALL, f"Group only has {n} members")
        if n > rules.max_members:
            warn(WarningType.TOO_LARGE, f"Group has {n} members (too large)")
        if not any(m.has_privilege(rules.elder_privilege) for m in mems):
            warn(WarningType.NO_ELDER, "Group has no elder")
        if not any(m.is_pioneer for m in mems):
            warn(WarningType.NO_PIONEER, "Group has no pioneers")

    return warnings
