from __future__ import annotations

from pathlib import Path

import pandas as pd
from openpyxl import load_workbook

from congregation_core.domain.models import Gender, PioneerStatus
from congregation_core.reporting.export_xlsx import export_tables_xlsx
from congregation_core.reporting.report import (
    GRID_COLUMNS,
    build_assignment_export,
    build_grid_table,
    build_group_summary,
    build_presence_summary,
    build_warning_table,
)
from tests.utils import ELDER, make_app, make_groups, member, payload


def test_assignment_export_puts_unassigned_last():
    members = [
        member("1", Gender.MALE, name="Zed", group_id="G1", privileges=(ELDER,)),
        member("2", Gender.FEMALE, PioneerStatus.REGULAR, name="Amy"),
        member("3", name="Bea", group_id="G2"),
    ]
    df = build_assignment_export(members, make_groups(2))

    assert list(df.columns) == ["Name", "Gender", "Group", "PioneerStatus", "Privileges"]
    assert list(df["Name"]) == ["Zed", "Bea", "Amy"]
    last = df.iloc[-1]
    assert (last["Group"], last["PioneerStatus"], last["Privileges"], last["Gender"]) == \
        ("Unassigned", "regular", "None", "Female")


def test_grid_and_summaries():
    app = make_app(make_groups(2), [member("m1", group_id="G1"), member("m2", group_id="G1")])
    app.upsert_visit_schedule("co", "G1", "2025-03", "2025-03-10")
    app.upsert_visit_schedule("co", "G2", "2025-03", None)
    app.submit_visit_report("co", payload(present=["m1"], absent=["m2"]))

    grid = build_grid_table(app.list_schedule_grid("co", "2025-03"))
    assert list(grid.columns) == GRID_COLUMNS
    assert list(grid["status"]) == ["completed", "pending"]
    assert list(grid["scheduled_date"]) == ["2025-03-10", ""]

    groups = build_group_summary(app.engine.group_analytics())
    assert list(groups["total_members"]) == [2, 0]

    warnings = build_warning_table(app.validate_buckets("co"))
    assert set(warnings["group_name"]) == {"Group 1", "Group 2"}

    presence = build_presence_summary(app.visits.member_presence_summary("2025-03"))
    # absent members first
    assert list(presence["member_id"]) == ["m2", "m1"]


def test_empty_tables_keep_headers():
    assert list(build_grid_table([]).columns) == GRID_COLUMNS
    assert list(build_warning_table([]).columns) == ["group_name", "type", "message"]
    assert build_presence_summary([]).empty


def test_export_writes_one_sheet_per_table(tmp_path: Path):
    out = tmp_path / "out" / "congregation.xlsx"
    tables = {
        "grid": pd.DataFrame({"a": [1]}),
        "a very long sheet name that Excel refuses": pd.DataFrame({"b": [2]}),
    }
    assert export_tables_xlsx(str(out), tables) == str(out)

    wb = load_workbook(out, read_only=True)
    assert wb.sheetnames == ["grid", "a very long sheet name that Exc"]
    wb.close()
