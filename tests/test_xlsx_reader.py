from __future__ import annotations

from pathlib import Path

import pytest

from congregation_core.domain.models import Difficulty, Gender, PioneerStatus
from congregation_core.errors import ValidationError
from congregation_core.io_layer.paths import InputPaths
from congregation_core.io_layer.repositories import Repositories
from congregation_core.io_layer.xlsx_reader import RosterReader
from tests.utils import FIELD_SERVICE, GROUPS, MEMBERS, TERRITORIES, write_roster


def reader_for(path: str) -> RosterReader:
    return RosterReader(InputPaths(roster_file=path))


def test_full_roster(tmp_path: Path) -> None:
    path = write_roster(tmp_path / "roster.xlsx", {
        "groups": GROUPS, "members": MEMBERS, "territories": TERRITORIES, "field_service": FIELD_SERVICE,
    })
    data = reader_for(path).build_roster()

    assert [g.name for g in data.groups] == ["North", "South"]

    anna, bo, cid = data.members
    assert (anna.gender, anna.pioneer_status, anna.group_id, anna.is_family_head) == \
        (Gender.FEMALE, PioneerStatus.REGULAR, "G1", True)
    assert bo.privileges == frozenset({"Elder", "Ministerial Servant"})
    assert bo.group_id == "G2"
    assert bo.linked_to("m1")
    assert bo.family_links[0].relationship == "spouse"
    assert (cid.gender, cid.group_id) == (None, None)

    harbour, hills = data.territories
    assert (harbour.id, harbour.difficulty, harbour.household_count, harbour.group_id, harbour.is_active) == \
        ("1", Difficulty.HARD, 120, "G1", True)
    assert (hills.difficulty, hills.household_count, hills.is_active) == (Difficulty.MEDIUM, None, False)

    [fs] = data.field_service
    assert (fs.member_id, fs.month, fs.hours, fs.bible_studies) == ("m1", "2025-03", 50.5, 2)


def test_optional_sheets_may_be_missing(tmp_path: Path) -> None:
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS, "members": MEMBERS})
    data = reader_for(path).build_roster()
    assert data.territories == []
    assert data.field_service == []


def test_missing_members_sheet(tmp_path: Path) -> None:
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS})
    with pytest.raises(ValidationError, match="members"):
        reader_for(path).build_roster()


def test_unknown_group_reference(tmp_path: Path) -> None:
    bad = [dict(MEMBERS[0], group="West")]
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS, "members": bad})
    with pytest.raises(ValidationError, match="unknown group West"):
        reader_for(path).build_roster()


def test_unknown_family_head(tmp_path: Path) -> None:
    bad = [dict(MEMBERS[1], family_head_id="m9")]
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS, "members": bad})
    with pytest.raises(ValidationError, match="m9"):
        reader_for(path).build_roster()


def test_duplicate_group_ids(tmp_path: Path) -> None:
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS + [GROUPS[0]], "members": MEMBERS})
    with pytest.raises(ValidationError, match="Duplicate group id G1"):
        reader_for(path).build_roster()


def test_missing_column(tmp_path: Path) -> None:
    rows = [{"id": m["id"], "group": m["group"]} for m in MEMBERS]
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS, "members": rows})
    with pytest.raises(ValidationError, match="missing column full_name"):
        reader_for(path).build_roster()


def test_import_keeps_visit_history(tmp_path: Path) -> None:
    path = write_roster(tmp_path / "roster.xlsx", {"groups": GROUPS, "members": MEMBERS})
    data = reader_for(path).build_roster()
    base = Repositories()
    schedules = base.schedules

    repos = data.to_repositories(base=base)
    assert repos.schedules is schedules
    assert repos.members.count() == 3
    assert repos.members.count(group_id="G1") == 1
