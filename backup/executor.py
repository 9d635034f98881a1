"""Run a database backup through an operator script or mysqldump."""
from __future__ import annotations

import os
import shlex
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from core.db import DatabaseParams
from core.process import ProcessRunner, find_executable

from .credentials import credential_file
from .logs import BackupLogger
from .naming import backup_prefix, create_backup_filename, find_backup_outputs
from .types import StrategyResult

DUMP_EXTENSION = ".sql"
COMPRESSED_EXTENSION = ".gz"

_DUMP_OPTIONS = (
    "--add-drop-table",
    "--add-locks",
    "--allow-keywords",
    "--complete-insert",
    "--extended-insert",
    "--lock-tables",
    "--no-create-db",
    "--quick",
)


def script_is_usable(script: Optional[str]) -> bool:
    if not script:
        return False
    path = Path(os.path.expandvars(os.path.expanduser(script)))
    return path.is_file() and os.access(path, os.X_OK)


class BackupExecutor:
    """Produce one dump file using a single strategy per call.

    Secrets reach the child only through a private credential file; they are
    never placed on the command line.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        params: DatabaseParams,
        *,
        logger: BackupLogger,
        schema_version: str = "",
        dbms_version: str = "",
        dump_command: str = "mysqldump",
        compress_command: Optional[str] = "gzip",
        credential_dir: Optional[Path] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._runner = runner
        self._params = params
        self._logger = logger
        self._schema_version = schema_version
        self._dbms_version = dbms_version
        self._dump_command = dump_command
        self._compress_command = compress_command
        self._credential_dir = credential_dir
        self._clock = clock

    def suggested_filename(self, extension: str = DUMP_EXTENSION) -> str:
        prefix = backup_prefix(self._params.name, self._schema_version)
        return create_backup_filename(prefix, extension, self._clock())

    # ------------------------------------------------------------------
    def _script_conf(self, directory: Path, filename: str, rotate: str) -> str:
        lines = [
            f"DBHostName={self._params.host}",
            f"DBPort={self._params.port}",
            f"DBUserName={self._params.user}",
            f"DBPassword={self._params.password}",
            f"DBName={self._params.name}",
            f"DBSchemaVer={self._schema_version}",
            f"DBMSVersion={self._dbms_version}",
            f"DBBackupDirectory={directory}",
            f"DBBackupFilename={filename}",
        ]
        if rotate:
            lines.append(rotate)
        return "\n".join(lines) + "\n"

    def run_script(self, script: str, script_args: str, directory: Path) -> StrategyResult:
        filename = self.suggested_filename()
        try:
            args: List[str] = shlex.split(script_args) if script_args else []
        except ValueError as exc:
            self._logger.warning("script_args_invalid", phase="script", script=script, error=str(exc))
            return StrategyResult(ok=False)
        # Ask the script not to rotate old backups unless the operator chose a policy.
        rotate = "" if "rotate" in script_args.lower() else "rotate=-1"
        with credential_file(self._script_conf(directory, filename, rotate), directory=self._credential_dir) as conf:
            if conf is None:
                self._logger.warning("credential_file_missing", phase="script", note="attempting backup anyway")
            else:
                args.append(str(conf))
            self._logger.info("script_start", phase="script", script=script)
            result = self._runner.run(script, args)
        if not result.ok:
            self._logger.event(event="script_failed", phase="script", ok=False, script=script, exit_code=result.exit_code)
            return StrategyResult(ok=False)

        outputs = find_backup_outputs(directory, filename)
        if not outputs:
            # The script is free to choose another name; report success without a path.
            self._logger.info("script_output_unknown", phase="script", prefix=filename, directory=directory)
            return StrategyResult(ok=True, path=None)
        if len(outputs) > 1:
            self._logger.warning(
                "script_output_ambiguous",
                phase="script",
                prefix=filename,
                directory=directory,
                candidates=[item.name for item in outputs],
                chosen=outputs[0].name,
            )
        self._logger.event(event="script_complete", phase="script", ok=True, path=outputs[0])
        return StrategyResult(ok=True, path=outputs[0])

    # ------------------------------------------------------------------
    def _dump_args(self, conf: Path) -> List[str]:
        # --defaults-extra-file must come first for mysqldump to honour it.
        args = [f"--defaults-extra-file={conf}", f"--host={self._params.host}"]
        if self._params.port > 0:
            args.append(f"--port={self._params.port}")
        args.append(f"--user={self._params.user}")
        args.extend(_DUMP_OPTIONS)
        args.append(self._params.name)
        return args

    def _compress(self, path: Path) -> Path:
        compressor = find_executable("gzip", self._compress_command) if self._compress_command else None
        if not compressor:
            self._logger.warning("compress_unavailable", phase="builtin", note="backup stays uncompressed")
            return path
        self._logger.info("compress_start", phase="builtin", path=path)
        result = self._runner.run(compressor, [str(path)])
        if not result.ok:
            self._logger.warning("compress_failed", phase="builtin", path=path, exit_code=result.exit_code)
            return path
        return path.with_name(path.name + COMPRESSED_EXTENSION)

    def run_builtin(self, directory: Path) -> StrategyResult:
        target = directory / self.suggested_filename()
        password = self._params.password
        conf_text = f"[client]\npassword={password}\n[mysqldump]\npassword={password}\n"
        dump = find_executable(self._dump_command) or self._dump_command
        with credential_file(conf_text, directory=self._credential_dir) as conf:
            if conf is None:
                self._logger.event(event="builtin_failed", phase="builtin", ok=False, reason="no credential file")
                return StrategyResult(ok=False)
            self._logger.info("builtin_start", phase="builtin", path=target)
            result = self._runner.run(dump, self._dump_args(conf), stdout=target)
        if not result.ok:
            self._logger.event(event="builtin_failed", phase="builtin", ok=False, exit_code=result.exit_code)
            try:
                target.unlink(missing_ok=True)
            except OSError as exc:
                self._logger.warning("partial_dump_left", phase="builtin", path=target, error=str(exc))
            return StrategyResult(ok=False)
        final = self._compress(target)
        self._logger.event(event="builtin_complete", phase="builtin", ok=True, path=final)
        return StrategyResult(ok=True, path=final)


__all__ = ["BackupExecutor", "COMPRESSED_EXTENSION", "DUMP_EXTENSION", "script_is_usable"]
