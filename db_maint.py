#!/usr/bin/env python3
"""Maintenance and backup commands for the managed MySQL schema."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from backup.planner import BackupPlanner
from backup.types import BackupOutcome
from core.db import ConnectionProvider, MySQLConnectionProvider
from core.logging_utils import configure_console_logging, configure_json_logging
from core.paths import resolve_working_dir
from core.process import ProcessRunner, SubprocessRunner
from core.settings import SettingsStore
from core.versioning import VersionProbe
from maint.clients import count_clients
from maint.lock import schema_locked
from maint.tables import TableHealthChecker

LOGGER = logging.getLogger("dbkeeper.db_maint")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOCKED = 2


@dataclass(slots=True)
class Context:
    settings: SettingsStore
    provider: ConnectionProvider
    runner: ProcessRunner


def _configure_logging(verbose: bool, working_dir: Path, json_logs: bool, db_name: str) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    configure_console_logging("dbkeeper", level=level).propagate = False
    if json_logs:
        configure_json_logging("dbkeeper", working_dir=working_dir, level=level, context={"db": db_name})


def _parse_version(text: str) -> Tuple[int, int, int]:
    parts = [int(piece) for piece in text.split(".") if piece.strip()]
    if not parts or len(parts) > 3:
        raise argparse.ArgumentTypeError(f"expected MAJOR[.MINOR[.POINT]], got {text!r}")
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dbkeeper", description=__doc__)
    parser.add_argument("--working-dir", type=Path, default=None, help="settings and log directory")
    parser.add_argument("--hostname", default=None, help="host name used for per-host settings")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    version = sub.add_parser("version", help="print the DBMS version")
    version.add_argument("--compare", type=_parse_version, default=None, metavar="X.Y.Z")

    tables = sub.add_parser("tables", help="list base tables")
    tables.add_argument("--engine", action="append", default=[], help="restrict to a storage engine")

    check = sub.add_parser("check", help="check repairable tables")
    check.add_argument("--options", default="QUICK")

    repair = sub.add_parser("repair", help="check and repair tables under the schema lock")
    repair.add_argument("--options", default="QUICK")

    sub.add_parser("backup", help="back up the database")
    sub.add_parser("backup-status", help="report whether a backup is running")
    sub.add_parser("clients", help="estimate connected client programs")
    return parser


def cmd_version(ctx: Context, args: argparse.Namespace) -> int:
    probe = VersionProbe(ctx.provider, ctx.settings)
    raw = probe.get_version()
    if not raw:
        return EXIT_FAILED
    payload = {"version": raw, "parsed": list(probe.version().as_tuple())}
    if args.compare is not None:
        payload["compare"] = probe.compare(*args.compare)
    print(json.dumps(payload))
    return EXIT_OK


def cmd_tables(ctx: Context, args: argparse.Namespace) -> int:
    for name in TableHealthChecker(ctx.provider).get_tables(args.engine):
        print(name)
    return EXIT_OK


def cmd_check(ctx: Context, args: argparse.Namespace) -> int:
    ok = TableHealthChecker(ctx.provider).check_tables(repair=False, options=args.options)
    return EXIT_OK if ok else EXIT_FAILED


def cmd_repair(ctx: Context, args: argparse.Namespace) -> int:
    params = ctx.settings.database_params()
    clients = count_clients(ctx.provider, params.name)
    if clients > 1:
        LOGGER.warning("%d other client(s) appear to use %s; repairs may be unsafe", clients - 1, params.name)
    with schema_locked(ctx.provider) as lock_conn:
        if lock_conn is None:
            LOGGER.error("Schema lock unavailable; not repairing")
            return EXIT_LOCKED
        ok = TableHealthChecker(ctx.provider).check_tables(repair=True, options=args.options)
    return EXIT_OK if ok else EXIT_FAILED


def cmd_backup(ctx: Context, args: argparse.Namespace) -> int:
    planner = BackupPlanner(provider=ctx.provider, settings=ctx.settings, runner=ctx.runner)
    if planner.is_backup_in_progress():
        LOGGER.warning("A backup appears to be running already; starting another")
    result = planner.backup()
    print(json.dumps({
        "outcome": result.outcome.value,
        "path": str(result.path) if result.path else None,
        "strategy": result.strategy,
    }))
    return EXIT_FAILED if result.outcome is BackupOutcome.FAILED else EXIT_OK


def cmd_backup_status(ctx: Context, args: argparse.Namespace) -> int:
    planner = BackupPlanner(provider=ctx.provider, settings=ctx.settings, runner=ctx.runner)
    run = planner.last_run()
    print(json.dumps({
        "running": planner.is_backup_in_progress(),
        "started": run.started_at.isoformat() if run.started_at else None,
        "ended": run.ended_at.isoformat() if run.ended_at else None,
    }))
    return EXIT_OK


def cmd_clients(ctx: Context, args: argparse.Namespace) -> int:
    print(count_clients(ctx.provider, ctx.settings.database_params().name))
    return EXIT_OK


_COMMANDS = {
    "version": cmd_version,
    "tables": cmd_tables,
    "check": cmd_check,
    "repair": cmd_repair,
    "backup": cmd_backup,
    "backup-status": cmd_backup_status,
    "clients": cmd_clients,
}


def build_context(working_dir: Path, hostname: Optional[str]) -> Context:
    settings = SettingsStore(working_dir, hostname=hostname)
    pool_size = int(settings.section("database").get("pool_size") or 4)
    provider = MySQLConnectionProvider(settings.database_params(), pool_size=pool_size)
    return Context(settings=settings, provider=provider, runner=SubprocessRunner())


def main(argv: Optional[Sequence[str]] = None, *, context: Optional[Context] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    ctx = context
    if ctx is None:
        working_dir = Path(args.working_dir) if args.working_dir else resolve_working_dir()
        ctx = build_context(working_dir, args.hostname)
    log_cfg = ctx.settings.section("logging")
    _configure_logging(
        args.verbose,
        ctx.settings.working_dir,
        bool(log_cfg.get("json", True)),
        ctx.settings.database_params().name,
    )
    return _COMMANDS[args.command](ctx, args)


if __name__ == "__main__":
    sys.exit(main())
