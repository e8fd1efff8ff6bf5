# main_cli.py
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from congregation_core.app import CongregationApp
from congregation_core.config import DEFAULT_CONFIG, AppConfig, LoggingConfig
from congregation_core.domain.calendar import current_month, month_label
from congregation_core.domain.models import EntityKind
from congregation_core.errors import CoreError, ValidationError
from congregation_core.io_layer.json_store import JsonStore, report_payload_from_dict
from congregation_core.io_layer.paths import InputPaths
from congregation_core.io_layer.xlsx_reader import RosterReader
from congregation_core.reporting.export_xlsx import export_tables_xlsx
from congregation_core.reporting.report import (
    build_assignment_export,
    build_grid_table,
    build_group_summary,
    build_presence_summary,
    build_territory_summary,
    build_warning_table,
)

logger = logging.getLogger(__name__)

# commands that change the store and must be saved afterwards
MUTATING = {"assign", "distribute", "remove", "swap", "schedule", "delete-schedule",
            "submit-report", "delete-report"}


def configure_logging(cfg: LoggingConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, cfg.level.upper(), logging.INFO),
        format=cfg.fmt,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="congregation")
    p.add_argument("--store", default=DEFAULT_CONFIG.store.store_path, help="JSON store file")
    p.add_argument("--actor", default="admin", help="id of the acting user")
    p.add_argument("--timezone", default=None, help="tz name used for the current month")
    p.add_argument("--min-members", type=int, default=None)
    p.add_argument("--max-members", type=int, default=None)
    p.add_argument("--log-level", default=None)
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("import-roster", help="replace groups/members/territories from an xlsx workbook")
    s.add_argument("roster")

    def with_kind(parser):
        parser.add_argument("--territories", action="store_true", help="act on territories instead of members")
        return parser

    s = with_kind(sub.add_parser("assign"))
    s.add_argument("--group", required=True)
    s.add_argument("ids", nargs="+")

    s = with_kind(sub.add_parser("distribute"))
    s.add_argument("--strategy", required=True)

    s = with_kind(sub.add_parser("remove"))
    s.add_argument("ids", nargs="+")

    s = with_kind(sub.add_parser("swap"))
    s.add_argument("id_a")
    s.add_argument("id_b")

    with_kind(sub.add_parser("groups", help="groups with their counts"))
    sub.add_parser("validate", help="group composition warnings")

    s = sub.add_parser("schedule")
    s.add_argument("--group", required=True)
    s.add_argument("--month", required=True)
    s.add_argument("--date", default=None)

    s = sub.add_parser("delete-schedule")
    s.add_argument("schedule_id")

    s = sub.add_parser("submit-report")
    s.add_argument("file", help="report JSON")

    s = sub.add_parser("delete-report")
    s.add_argument("report_id")

    s = sub.add_parser("grid")
    s.add_argument("--month", default=None)

    s = sub.add_parser("export")
    s.add_argument("--month", default=None)
    s.add_argument("--out", default=DEFAULT_CONFIG.store.export_path, help="output xlsx")

    s = sub.add_parser("history")
    s.add_argument("--limit", type=int, default=None)

    return p.parse_args(argv)


def build_config(args) -> AppConfig:
    cfg = DEFAULT_CONFIG
    if args.timezone:
        cfg = dataclasses.replace(cfg, timezone_name=args.timezone)
    rules = {}
    if args.min_members is not None:
        rules["min_members"] = args.min_members
    if args.max_members is not None:
        rules["max_members"] = args.max_members
    if rules:
        cfg = dataclasses.replace(cfg, rules=dataclasses.replace(cfg.rules, **rules))
    if args.log_level:
        cfg = dataclasses.replace(cfg, logging=dataclasses.replace(cfg.logging, level=args.log_level))
    return dataclasses.replace(cfg, store=dataclasses.replace(cfg.store, store_path=args.store))


def _kind(args) -> EntityKind:
    return EntityKind.TERRITORY if getattr(args, "territories", False) else EntityKind.MEMBER


def import_roster(args, cfg: AppConfig) -> int:
    store = JsonStore(cfg.store.store_path)
    paths = InputPaths(roster_file=args.roster)
    data = RosterReader(paths).build_roster()
    repos, audit = store.load()
    store.save(data.to_repositories(base=repos), audit)
    print(f"[RESULT] OK: {len(data.groups)} groups, {len(data.members)} members, "
          f"{len(data.territories)} territories -> {store.path}")
    return 0


def read_report_file(path: str) -> dict:
    try:
        doc = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValidationError(f"Cannot read report file {path}: {e}") from e
    if not isinstance(doc, dict):
        raise ValidationError(f"Report file {path} must hold a JSON object")
    return doc


def run(args, app: CongregationApp) -> int:
    cmd = args.command
    actor = args.actor

    if cmd == "assign":
        n = app.assign_entities(actor, args.ids, args.group, kind=_kind(args))
        print(f"[RESULT] OK: {n} assigned to {args.group}")
    elif cmd == "distribute":
        n = app.distribute(actor, args.strategy, kind=_kind(args))
        print(f"[RESULT] OK: {n} distributed using {args.strategy}")
        if _kind(args) == EntityKind.MEMBER:
            for w in app.validate_buckets(actor):
                print(f"[WARN] {w.group_name}: {w.message}")
    elif cmd == "remove":
        n = app.remove_from_bucket(actor, args.ids, kind=_kind(args))
        print(f"[RESULT] OK: {n} removed")
    elif cmd == "swap":
        app.swap_entities(actor, args.id_a, args.id_b, kind=_kind(args))
        print(f"[RESULT] OK: swapped {args.id_a} and {args.id_b}")
    elif cmd == "groups":
        for b in app.list_buckets_with_counts(actor, kind=_kind(args)):
            print(f"{b.group.id}\t{b.group.name}\t{b.member_count}")
    elif cmd == "validate":
        warnings = app.validate_buckets(actor)
        for w in warnings:
            print(f"[WARN] {w.group_name}: {w.type.value}: {w.message}")
        print(f"[RESULT] {len(warnings)} warning(s)")
        return 2 if warnings else 0
    elif cmd == "schedule":
        app.upsert_visit_schedule(actor, args.group, args.month, args.date)
        print(f"[RESULT] OK: {args.group} {args.month} {args.date or '(no date)'}")
    elif cmd == "delete-schedule":
        record = app.visits.delete_schedule(app.actor(actor), args.schedule_id)
        print(f"[RESULT] OK: deleted schedule {record.id}")
    elif cmd == "submit-report":
        payload = report_payload_from_dict(read_report_file(args.file))
        report_id = app.submit_visit_report(actor, payload)
        print(f"[RESULT] OK: {report_id}")
    elif cmd == "delete-report":
        app.delete_visit_report(actor, args.report_id)
        print(f"[RESULT] OK: deleted report {args.report_id}")
    elif cmd == "grid":
        month = args.month or current_month(app.config.timezone_name)
        rows = app.list_schedule_grid(actor, month)
        print(f"{month_label(month)}")
        if rows:
            print(build_grid_table(rows).to_string(index=False))
        else:
            print("[RESULT] no schedules")
    elif cmd == "export":
        tables = {
            "grid": build_grid_table(app.list_schedule_grid(actor, args.month)),
            "groups": build_group_summary(app.engine.group_analytics()),
            "territories": build_territory_summary(app.engine.territory_stats()),
            "warnings": build_warning_table(app.validate_buckets(actor)),
            "assignments": build_assignment_export(app.engine.members_with_groups(), app.repos.groups.all()),
            "presence": build_presence_summary(app.visits.member_presence_summary(args.month)),
        }
        out_path = export_tables_xlsx(args.out, tables)
        print(f"[RESULT] OK: {out_path}")
    elif cmd == "history":
        for r in app.engine.assignment_history(args.limit):
            status = "ok" if r.success else "failed"
            print(f"{r.created_at.isoformat()}\t{r.type}\t{status}\t{r.action}")
    return 0


def main(argv=None):
    args = parse_args(argv)
    cfg = build_config(args)
    configure_logging(cfg.logging)

    try:
        if args.command == "import-roster":
            return import_roster(args, cfg)

        store = JsonStore(cfg.store.store_path)
        app = CongregationApp.from_store(store, config=cfg)
        try:
            code = run(args, app)
        finally:
            # failure records are kept too
            if args.command in MUTATING:
                app.save(store)
                logger.debug("Saved %s", store.path)
        return code
    except CoreError as e:
        print(f"[ERROR] {e.kind}: {e.message}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
