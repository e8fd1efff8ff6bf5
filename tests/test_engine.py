from __future__ import annotations

import pytest

from congregation_core.app import CongregationApp
from congregation_core.domain.models import Difficulty, EntityKind, Gender, PioneerStatus, Strategy
from congregation_core.errors import NotFoundError, ValidationError
from congregation_core.io_layer.repositories import InMemoryEntityRepository, InMemoryGroupRepository, Repositories
from tests.utils import (
    ELDER,
    SERVANT,
    TickingClock,
    group_of,
    make_app,
    make_groups,
    make_members,
    member,
    territory,
)


class SequentialEntityRepository(InMemoryEntityRepository):
    """A store without batched writes."""
    bulk_set_group = None


def test_distribute_simple_fills_groups_in_chunks():
    app = make_app(make_groups(4), make_members(23))

    assert app.distribute("admin", "simple") == 23

    counts = [b.member_count for b in app.list_buckets_with_counts("admin")]
    assert counts == [6, 6, 6, 5]
    assert group_of(app, "m06") == "G1"
    assert group_of(app, "m19") == "G4"


def test_distribute_without_groups_fails_and_is_audited():
    app = make_app([], make_members(3))

    with pytest.raises(ValidationError, match="No groups available"):
        app.distribute("admin", Strategy.SIMPLE)

    [record] = app.audit.records()
    assert record.type == "groups_balanced"
    assert record.success is False
    assert record.error_message == "No groups available"
    assert record.action == "Failed to balance groups: No groups available"
    assert record.metadata["error_kind"] == "validation"
    assert all(m.group_id is None for m in app.repos.members.all())


def test_distribute_rejects_unknown_strategy():
    app = make_app(make_groups(2), make_members(3))
    with pytest.raises(ValidationError):
        app.distribute("admin", "random")
    assert app.audit.records()[-1].success is False


def test_distribute_with_no_members_commits_nothing():
    app = make_app(make_groups(2), [])
    assert app.distribute("admin", "gender") == 0
    assert app.audit.records()[-1].success is True


def test_distribute_records_success_with_strategy():
    app = make_app(make_groups(3), make_members(9))
    result = app.engine.distribute(app.actor("admin"), "pioneer")

    assert result.group_count == 3
    assert set(result.assignments.values()) == {"G1", "G2", "G3"}
    record = app.audit.records()[-1]
    assert record.success is True
    assert record.metadata == {"count": 9, "groupCount": 3, "strategy": "pioneer", "kind": "member"}
    assert "pioneer strategy" in record.action


def test_distribute_falls_back_to_sequential_writes():
    repos = Repositories(
        groups=InMemoryGroupRepository(make_groups(3)),
        members=SequentialEntityRepository(make_members(10)),
    )
    app = CongregationApp(repos, clock=TickingClock())

    assert app.distribute("admin", "simple") == 10
    assert [b.member_count for b in app.list_buckets_with_counts("admin")] == [4, 4, 2]


def test_territory_distribution_skips_inactive():
    territories = [
        territory("t1", Difficulty.HARD, 30),
        territory("t2", Difficulty.EASY, 10),
        territory("t3", Difficulty.MEDIUM, 20, active=False),
    ]
    app = make_app(make_groups(2), [], territories)

    assert app.distribute("admin", "difficulty", kind=EntityKind.TERRITORY) == 2

    assert app.repos.territories.find_by_id("t1").group_id == "G1"
    assert app.repos.territories.find_by_id("t2").group_id == "G2"
    assert app.repos.territories.find_by_id("t3").group_id is None


def test_assign_to_unknown_group():
    app = make_app(make_groups(1), make_members(2))
    with pytest.raises(NotFoundError):
        app.assign_entities("admin", ["m01"], "G9")
    assert group_of(app, "m01") is None


def test_assign_skips_unknown_entities():
    app = make_app(make_groups(2), make_members(2))

    assert app.assign_entities("admin", ["m01", "ghost"], "G2") == 1
    assert group_of(app, "m01") == "G2"
    record = app.audit.records()[-1]
    assert record.type == "members_assigned_to_group"
    assert record.metadata["entityId"] == "G2"


def test_remove_clears_group():
    app = make_app(make_groups(1), make_members(3, group_id="G1"))

    assert app.remove_from_bucket("admin", ["m01", "m02", "ghost"]) == 2
    assert group_of(app, "m01") is None
    assert group_of(app, "m03") == "G1"


def test_swap_twice_restores_groups():
    members = [member("a", group_id="G1"), member("b", group_id="G2"), member("c")]
    app = make_app(make_groups(2), members)

    assert app.swap_entities("admin", "a", "b") is True
    assert (group_of(app, "a"), group_of(app, "b")) == ("G2", "G1")

    app.swap_entities("admin", "a", "b")
    assert (group_of(app, "a"), group_of(app, "b")) == ("G1", "G2")

    app.swap_entities("admin", "a", "c")
    assert (group_of(app, "a"), group_of(app, "c")) == (None, "G1")


def test_swap_with_missing_entity():
    app = make_app(make_groups(2), [member("a", group_id="G1")])

    with pytest.raises(NotFoundError, match="ghost"):
        app.swap_entities("admin", "a", "ghost")
    assert group_of(app, "a") == "G1"
    assert app.audit.records()[-1].type == "members_swapped"
    assert app.audit.records()[-1].success is False


def test_actor_name_comes_from_roster():
    app = make_app(make_groups(1), [member("m1", name="Anna Berg")])
    app.assign_entities("m1", ["m1"], "G1")
    record = app.audit.records()[-1]
    assert record.actor_id == "m1"
    assert record.actor_name == "Anna Berg"
    assert record.action.startswith("Anna Berg assigned 1 members")


def test_group_analytics_and_territory_stats():
    members = [
        member("e", Gender.MALE, privileges=(ELDER,), group_id="G1"),
        member("s", Gender.MALE, privileges=(SERVANT,), group_id="G1"),
        member("p", Gender.FEMALE, pioneer=PioneerStatus.REGULAR, group_id="G1"),
        member("x", Gender.FEMALE, group_id="G2"),
    ]
    territories = [
        territory("t1", Difficulty.HARD, 30, group_id="G1"),
        territory("t2", Difficulty.EASY, None, group_id="G1"),
        territory("t3", Difficulty.EASY, 50, group_id="G1", active=False),
    ]
    app = make_app(make_groups(2), members, territories)

    g1, g2 = app.engine.group_analytics()
    assert (g1.total_members, g1.male_count, g1.female_count) == (3, 2, 1)
    assert (g1.pioneer_count, g1.elder_count, g1.ms_count) == (1, 1, 1)
    assert g2.total_members == 1

    t1, t2 = app.engine.territory_stats()
    assert (t1.total_territories, t1.hard_count, t1.easy_count, t1.household_total) == (2, 1, 1, 30)
    assert t2.total_territories == 0


def test_assignment_history_is_newest_first():
    app = make_app(make_groups(2), make_members(4))
    app.assign_entities("admin", ["m01"], "G1")
    app.distribute("admin", "simple")
    app.swap_entities("admin", "m01", "m04")
    app.visits.upsert_schedule(app.actor("admin"), "G1", "2025-03", "2025-03-10")

    history = app.engine.assignment_history()
    assert [r.type for r in history] == ["members_swapped", "groups_balanced", "members_assigned_to_group"]
    assert len(app.engine.assignment_history(limit=1)) == 1


def test_members_with_groups_sorted_by_name():
    app = make_app(make_groups(1), [member("2", name="Zed"), member("1", name="Abe", group_id="G1")])
    assert [m.full_name for m in app.engine.members_with_groups()] == ["Abe", "Zed"]
