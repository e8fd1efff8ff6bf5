# congregation_core/assignment/strategies.py
"""
Distribution strategies.

Each strategy is a pure function of the roster order and the number of groups
and returns ``{entity_id: bucket_index}``. Insertion order of the returned dict
is the order in which the writes are committed.

The round-robin variants differ in how the cursor is shared:

- gender / privilege / difficulty / size: tiers are concatenated and walked
  with one continuous cursor
- pioneer: each subset restarts the cursor at bucket 0
- family: the cursor advances once per family unit, not per member
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Dict, Iterable, List, Sequence

from congregation_core.config import GroupRules
from congregation_core.domain.models import Difficulty, Gender, Member, Strategy, Territory
from congregation_core.errors import ValidationError

logger = logging.getLogger(__name__)

Plan = Dict[str, int]


def _check_buckets(bucket_count: int) -> None:
    if bucket_count < 1:
        raise ValidationError("No groups available")


def _round_robin(entities: Iterable, bucket_count: int, plan: Plan, cursor: int = 0) -> int:
    """Assigns entities in order starting at ``cursor``; returns the next cursor."""
    for e in entities:
        plan[e.id] = cursor
        cursor = (cursor + 1) % bucket_count
    return cursor


def assign_simple(entities: Sequence, bucket_count: int) -> Plan:
    """Contiguous chunks of ceil(n / b); the last group absorbs the remainder."""
    _check_buckets(bucket_count)
    plan: Plan = {}
    if not entities:
        return plan
    chunk = math.ceil(len(entities) / bucket_count)
    for i, e in enumerate(entities):
        plan[e.id] = min(i // chunk, bucket_count - 1)
    return plan


def assign_by_gender(members: Sequence[Member], bucket_count: int) -> Plan:
    _check_buckets(bucket_count)
    males = [m for m in members if m.gender == Gender.MALE]
    females = [m for m in members if m.gender == Gender.FEMALE]
    # members without a recorded gender continue after the females
    unknown = [m for m in members if m.gender not in (Gender.MALE, Gender.FEMALE)]
    plan: Plan = {}
    _round_robin(males + females + unknown, bucket_count, plan)
    return plan


def assign_by_pioneer(members: Sequence[Member], bucket_count: int) -> Plan:
    _check_buckets(bucket_count)
    plan: Plan = {}
    _round_robin([m for m in members if m.is_pioneer], bucket_count, plan)
    _round_robin([m for m in members if not m.is_pioneer], bucket_count, plan)
    return plan


def assign_by_privilege(members: Sequence[Member], bucket_count: int, rules: GroupRules) -> Plan:
    _check_buckets(bucket_count)
    elders = [m for m in members if m.has_privilege(rules.elder_privilege)]
    servants = [
        m for m in members
        if m.has_privilege(rules.ministerial_servant_privilege) and not m.has_privilege(rules.elder_privilege)
    ]
    tiered = {m.id for m in elders} | {m.id for m in servants}
    others = [m for m in members if m.id not in tiered]
    plan: Plan = {}
    _round_robin(elders + servants + others, bucket_count, plan)
    return plan


def assign_by_family(members: Sequence[Member], bucket_count: int) -> Plan:
    _check_buckets(bucket_count)
    plan: Plan = {}
    cursor = 0
    for head in (m for m in members if m.is_family_head):
        unit = [head] + [m for m in members if m.id != head.id and m.linked_to(head.id)]
        for m in unit:
            # first family to claim a member keeps it
            if m.id not in plan:
                plan[m.id] = cursor
        cursor = (cursor + 1) % bucket_count
    _round_robin([m for m in members if m.id not in plan], bucket_count, plan, cursor)
    return plan


def assign_equal(territories: Sequence[Territory], bucket_count: int) -> Plan:
    return assign_simple(territories, bucket_count)


def assign_by_difficulty(territories: Sequence[Territory], bucket_count: int) -> Plan:
    _check_buckets(bucket_count)
    ordered: List[Territory] = []
    for level in (Difficulty.HARD, Difficulty.MEDIUM, Difficulty.EASY):
        ordered.extend(t for t in territories if t.difficulty == level)
    plan: Plan = {}
    _round_robin(ordered, bucket_count, plan)
    return plan


def assign_by_size(territories: Sequence[Territory], bucket_count: int) -> Plan:
    _check_buckets(bucket_count)
    ordered = sorted(territories, key=lambda t: t.household_count or 0, reverse=True)
    plan: Plan = {}
    _round_robin(ordered, bucket_count, plan)
    return plan


def plan_assignment(strategy: Strategy, entities: Sequence, bucket_count: int, rules: GroupRules) -> Plan:
    handlers: Dict[Strategy, Callable[[], Plan]] = {
        Strategy.SIMPLE: lambda: assign_simple(entities, bucket_count),
        Strategy.GENDER: lambda: assign_by_gender(entities, bucket_count),
        Strategy.PIONEER: lambda: assign_by_pioneer(entities, bucket_count),
        Strategy.PRIVILEGE: lambda: assign_by_privilege(entities, bucket_count, rules),
        Strategy.FAMILY: lambda: assign_by_family(entities, bucket_count),
        Strategy.EQUAL: lambda: assign_equal(entities, bucket_count),
        Strategy.DIFFICULTY: lambda: assign_by_difficulty(entities, bucket_count),
        Strategy.SIZE: lambda: assign_by_size(entities, bucket_count),
    }
    plan = handlers[strategy]()
    logger.debug("Planned %s distribution of %d entities over %d groups", strategy.value, len(plan), bucket_count)
    return plan
