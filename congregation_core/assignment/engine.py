# congregation_core/assignment/engine.py
"""
Distribution engine: moves members and territories between groups.

Groups and the roster are re-read at the start of every call. A distribution is
planned completely in memory, then committed: in one batch when the repository
offers ``bulk_set_group``, otherwise as one idempotent ``set_group`` write per
entity in roster order. In the sequential case an interrupted call (crash,
caller timeout) leaves the entities written so far reassigned and the rest
untouched; re-running the same distribution converges to the full plan.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from congregation_core.assignment.strategies import plan_assignment
from congregation_core.audit.activity import AuditSink, audited
from congregation_core.config import AppConfig, DEFAULT_CONFIG
from congregation_core.domain.calendar import now_in
from congregation_core.domain.models import (
    Actor,
    BucketCount,
    Difficulty,
    DistributionResult,
    EntityKind,
    Gender,
    Group,
    GroupAnalytics,
    GroupWarning,
    Member,
    Strategy,
    TerritoryStats,
)
from congregation_core.errors import NotFoundError
from congregation_core.io_layer.repositories import EntityRepository, Repository
from congregation_core.validation.validator import require_groups, validate_group_composition

logger = logging.getLogger(__name__)

ASSIGNMENT_OPERATIONS = (
    "members_assigned_to_group",
    "groups_balanced",
    "members_removed_from_group",
    "members_swapped",
)


def _noun(kind: EntityKind) -> str:
    return "members" if kind == EntityKind.MEMBER else "territories"


def _describe_assign(actor, count, entity_ids, group_id, kind=EntityKind.MEMBER):
    return (
        f"{actor.name} assigned {len(entity_ids)} {_noun(kind)} to group {group_id}",
        {"entityId": group_id, "count": count, "entityIds": list(entity_ids), "kind": kind.value},
    )


def _describe_distribute(actor, result: DistributionResult, strategy, kind=EntityKind.MEMBER):
    return (
        f"{actor.name} balanced {result.count} {_noun(result.kind)} across {result.group_count} groups "
        f"using {result.strategy.value} strategy",
        {"count": result.count, "groupCount": result.group_count,
         "strategy": result.strategy.value, "kind": result.kind.value},
    )


def _describe_remove(actor, count, entity_ids, kind=EntityKind.MEMBER):
    return (
        f"{actor.name} removed {len(entity_ids)} {_noun(kind)} from their groups",
        {"count": count, "entityIds": list(entity_ids), "kind": kind.value},
    )


def _describe_swap(actor, ok, id_a, id_b, kind=EntityKind.MEMBER):
    return (
        f"{actor.name} swapped {id_a} and {id_b} between groups",
        {"entityIds": [id_a, id_b], "kind": kind.value},
    )


class DistributionEngine:

    def __init__(
        self,
        groups: Repository[Group],
        members: EntityRepository,
        territories: EntityRepository,
        audit: AuditSink,
        config: AppConfig = DEFAULT_CONFIG,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.groups = groups
        self.members = members
        self.territories = territories
        self.audit = audit
        self.config = config
        self.clock = clock or (lambda: now_in(config.timezone_name))

    # --- helpers ---

    def _repo(self, kind: EntityKind) -> EntityRepository:
        return self.members if kind == EntityKind.MEMBER else self.territories

    def _roster(self, kind: EntityKind) -> List:
        if kind == EntityKind.TERRITORY:
            return self.territories.find_many(is_active=True)
        return self.members.find_many()

    def _commit(self, repo: EntityRepository, assignments: Mapping[str, Optional[str]]) -> int:
        bulk = getattr(repo, "bulk_set_group", None)
        if bulk is not None:
            return bulk(assignments)
        written = 0
        for entity_id, group_id in assignments.items():
            if repo.set_group(entity_id, group_id):
                written += 1
        return written

    # --- mutations ---

    @audited("members_assigned_to_group", _describe_assign, "assign to group")
    def assign_entities(self, actor: Actor, entity_ids: Sequence[str], group_id: str,
                        kind: EntityKind = EntityKind.MEMBER) -> int:
        if self.groups.find_by_id(group_id) is None:
            raise NotFoundError(f"Group not found: {group_id}")
        return self._commit(self._repo(kind), {eid: group_id for eid in entity_ids})

    @audited("groups_balanced", _describe_distribute, "balance groups")
    def distribute(self, actor: Actor, strategy: Union[Strategy, str],
                   kind: EntityKind = EntityKind.MEMBER) -> DistributionResult:
        strategy = Strategy.parse(strategy, kind)
        groups = self.groups.find_many()
        require_groups(groups)
        roster = self._roster(kind)

        plan = plan_assignment(strategy, roster, len(groups), self.config.rules)
        assignments: Dict[str, str] = {eid: groups[idx].id for eid, idx in plan.items()}
        self._commit(self._repo(kind), assignments)

        return DistributionResult(
            strategy=strategy,
            kind=kind,
            count=len(assignments),
            group_count=len(groups),
            assignments=assignments,
        )

    @audited("members_removed_from_group", _describe_remove, "remove from group")
    def remove_from_bucket(self, actor: Actor, entity_ids: Sequence[str],
                           kind: EntityKind = EntityKind.MEMBER) -> int:
        return self._commit(self._repo(kind), {eid: None for eid in entity_ids})

    @audited("members_swapped", _describe_swap, "swap group assignments")
    def swap_entities(self, actor: Actor, id_a: str, id_b: str,
                      kind: EntityKind = EntityKind.MEMBER) -> bool:
        repo = self._repo(kind)
        a, b = repo.find_by_id(id_a), repo.find_by_id(id_b)
        missing = [eid for eid, e in ((id_a, a), (id_b, b)) if e is None]
        if missing:
            raise NotFoundError(f"Not found: {', '.join(missing)}")
        self._commit(repo, {id_a: b.group_id, id_b: a.group_id})
        return True

    # --- reads ---

    def list_buckets_with_counts(self, kind: EntityKind = EntityKind.MEMBER) -> List[BucketCount]:
        roster = self._roster(kind)
        counts: Dict[str, int] = {}
        for e in roster:
            if e.group_id is not None:
                counts[e.group_id] = counts.get(e.group_id, 0) + 1
        return [BucketCount(group=g, member_count=counts.get(g.id, 0)) for g in self.groups.find_many()]

    def validate_buckets(self) -> List[GroupWarning]:
        return validate_group_composition(self.groups.find_many(), self.members.find_many(), self.config.rules)

    def members_with_groups(self) -> List[Member]:
        return sorted(self.members.find_many(), key=lambda m: m.full_name)

    def group_analytics(self) -> List[GroupAnalytics]:
        rules = self.config.rules
        out: List[GroupAnalytics] = []
        for g in self.groups.find_many():
            mems = self.members.find_many(group_id=g.id)
            out.append(GroupAnalytics(
                group_id=g.id,
                group_name=g.name,
                total_members=len(mems),
                male_count=sum(1 for m in mems if m.gender == Gender.MALE),
                female_count=sum(1 for m in mems if m.gender == Gender.FEMALE),
                pioneer_count=sum(1 for m in mems if m.is_pioneer),
                elder_count=sum(1 for m in mems if m.has_privilege(rules.elder_privilege)),
                ms_count=sum(1 for m in mems if m.has_privilege(rules.ministerial_servant_privilege)),
            ))
        return out

    def territory_stats(self) -> List[TerritoryStats]:
        out: List[TerritoryStats] = []
        for g in self.groups.find_many():
            ts = self.territories.find_many(group_id=g.id, is_active=True)
            out.append(TerritoryStats(
                group_id=g.id,
                group_name=g.name,
                total_territories=len(ts),
                easy_count=sum(1 for t in ts if t.difficulty == Difficulty.EASY),
                medium_count=sum(1 for t in ts if t.difficulty == Difficulty.MEDIUM),
                hard_count=sum(1 for t in ts if t.difficulty == Difficulty.HARD),
                household_total=sum(t.household_count or 0 for t in ts),
            ))
        return out

    def assignment_history(self, limit: Optional[int] = None):
        history = getattr(self.audit, "history", None)
        if history is None:
            return []
        return history(types=ASSIGNMENT_OPERATIONS, limit=limit or self.config.history_limit)
