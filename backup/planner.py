"""Decide whether and how to back up the database, and record each run."""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from core.db import DBError, ConnectionProvider, db_error_message, run_query
from core.paths import BackupDirectoryResolver, MostFreeDirectoryResolver, resolve_backup_directory
from core.process import ProcessRunner
from core.settings import SettingsStore
from core.versioning import VersionProbe
from maint.tables import TableHealthChecker

from .executor import BackupExecutor, script_is_usable
from .logs import BackupLogger
from .types import BackupOutcome, BackupResult, BackupRun

LAST_RUN_START_KEY = "BackupDBLastRunStart"
LAST_RUN_END_KEY = "BackupDBLastRunEnd"
DISABLE_KEY = "DisableAutomaticBackup"
SCRIPT_KEY = "DatabaseBackupScript"
SCRIPT_ARGS_KEY = "BackupDBScriptArgs"
SCHEMA_VERSION_KEY = "DBSchemaVer"
HOUSEKEEPING_TAG = "BackupDB"

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_run_timestamp(value: datetime) -> str:
    return value.strftime(_TIMESTAMP_FORMAT)


def parse_run_timestamp(value: object) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace(" ", "T"))
    except ValueError:
        return None


class BackupPlanner:
    """Run the backup state machine for one database.

    Disabled and empty databases end early without touching settings.
    Otherwise the run start is recorded, the operator script is tried, the
    built-in dump is the single fallback, and the run end is always recorded.
    """

    def __init__(
        self,
        *,
        provider: ConnectionProvider,
        settings: SettingsStore,
        runner: ProcessRunner,
        working_dir: Optional[Path] = None,
        checker: Optional[TableHealthChecker] = None,
        version_probe: Optional[VersionProbe] = None,
        directory_resolver: Optional[BackupDirectoryResolver] = None,
        logger: Optional[BackupLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
        platform: str = sys.platform,
        credential_dir: Optional[Path] = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._runner = runner
        self._working_dir = Path(working_dir or settings.working_dir)
        self._checker = checker or TableHealthChecker(provider)
        self._version_probe = version_probe or VersionProbe(provider, settings)
        backup_cfg = settings.section("backup")
        if directory_resolver is None:
            directory_resolver = MostFreeDirectoryResolver(backup_cfg.get("directories") or [])
        self._resolver = directory_resolver
        self._dump_command = str(backup_cfg.get("dump_command") or "mysqldump")
        compress = backup_cfg.get("compress_command")
        self._compress_command = str(compress) if compress else None
        self._logger = logger or BackupLogger(self._working_dir)
        self._clock = clock
        self._platform = platform
        self._credential_dir = credential_dir

    # ------------------------------------------------------------------
    def is_disabled(self) -> bool:
        if self._platform.startswith("win"):
            self._logger.info("backup_disabled", reason="platform", platform=self._platform)
            return True
        if self._settings.get_int(DISABLE_KEY, 0):
            self._logger.info("backup_disabled", reason="setting")
            return True
        return False

    def last_run(self) -> BackupRun:
        # Another process may have recorded a run since these settings were read.
        self._settings.reload()
        start_raw = self._settings.get_str(LAST_RUN_START_KEY)
        end_raw = self._settings.get_str(LAST_RUN_END_KEY)
        started = parse_run_timestamp(start_raw)
        ended = parse_run_timestamp(end_raw)
        if start_raw and started is None:
            self._logger.warning("bad_timestamp", key=LAST_RUN_START_KEY, value=start_raw)
        if end_raw and ended is None:
            self._logger.warning("bad_timestamp", key=LAST_RUN_END_KEY, value=end_raw)
        return BackupRun(started_at=started, ended_at=ended)

    def is_backup_in_progress(self, now: Optional[datetime] = None) -> bool:
        run = self.last_run()
        running = run.in_progress(now or self._clock())
        self._logger.info(
            "backup_in_progress_check",
            started=run.started_at.isoformat() if run.started_at else None,
            ended=run.ended_at.isoformat() if run.ended_at else None,
            running=running,
        )
        return running

    # ------------------------------------------------------------------
    def _record(self, key: str) -> None:
        try:
            self._settings.save_on_host(key, format_run_timestamp(self._clock()))
        except OSError as exc:
            self._logger.warning("record_failed", key=key, error=str(exc))

    def _touch_housekeeping(self) -> None:
        try:
            with self._provider.connection() as conn:
                run_query(conn, "DELETE FROM housekeeping WHERE tag = %s", (HOUSEKEEPING_TAG,))
                run_query(
                    conn,
                    "INSERT INTO housekeeping(tag, lastrun) VALUES (%s, NOW())",
                    (HOUSEKEEPING_TAG,),
                )
                conn.commit()
        except DBError as exc:
            self._logger.warning("housekeeping_failed", error=db_error_message(exc))

    def _executor(self) -> BackupExecutor:
        return BackupExecutor(
            self._runner,
            self._settings.database_params(),
            logger=self._logger,
            schema_version=self._settings.get_str(SCHEMA_VERSION_KEY),
            dbms_version=self._version_probe.get_version(),
            dump_command=self._dump_command,
            compress_command=self._compress_command,
            credential_dir=self._credential_dir,
            clock=self._clock,
        )

    def backup(self) -> BackupResult:
        if self.is_disabled():
            return BackupResult(outcome=BackupOutcome.DISABLED)
        if self._checker.is_new_database():
            self._logger.info("backup_skipped", reason="new database")
            return BackupResult(outcome=BackupOutcome.EMPTY_DATABASE)

        script = self._settings.get_str(SCRIPT_KEY).strip()
        if script and not script_is_usable(script):
            self._logger.warning("script_missing", script=script)
            script = ""

        directory = resolve_backup_directory(self._resolver)
        executor = self._executor()
        self._record(LAST_RUN_START_KEY)
        self._logger.event(event="backup_start", phase="plan", ok=True, directory=directory)

        result = None
        strategy = None
        try:
            if script:
                result = executor.run_script(script, self._settings.get_str(SCRIPT_ARGS_KEY), directory)
                strategy = "script"
                if not result.ok:
                    self._logger.warning("script_fallback", note="retrying with built-in backup")
            if result is None or not result.ok:
                result = executor.run_builtin(directory)
                strategy = "builtin"
        finally:
            self._record(LAST_RUN_END_KEY)
            self._touch_housekeeping()

        if result.ok:
            self._logger.event(event="backup_complete", phase="plan", ok=True, strategy=strategy, path=result.path)
            return BackupResult(outcome=BackupOutcome.COMPLETED, path=result.path, strategy=strategy)
        self._logger.event(event="backup_failed", phase="plan", ok=False)
        return BackupResult(outcome=BackupOutcome.FAILED, strategy=strategy)


__all__ = [
    "BackupPlanner",
    "DISABLE_KEY",
    "HOUSEKEEPING_TAG",
    "LAST_RUN_END_KEY",
    "LAST_RUN_START_KEY",
    "SCHEMA_VERSION_KEY",
    "SCRIPT_ARGS_KEY",
    "SCRIPT_KEY",
    "format_run_timestamp",
    "parse_run_timestamp",
]
