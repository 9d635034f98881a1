from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence

__all__ = [
    "EXIT_COMMAND_NOT_FOUND",
    "ProcessResult",
    "ProcessRunner",
    "SubprocessRunner",
    "find_executable",
]

LOGGER = logging.getLogger("dbkeeper.process")

EXIT_COMMAND_NOT_FOUND = 127


@dataclass(slots=True)
class ProcessResult:
    exit_code: int
    duration_s: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        env: Optional[Dict[str, str]] = None,
        stdout: Optional[Path] = None,
    ) -> ProcessResult:  # pragma: no cover - protocol
        ...


class SubprocessRunner:
    """Run external tools synchronously, without a shell.

    Standard input is bound to ``/dev/null`` so a child never competes with
    the host application for the terminal. Only the command name is logged
    unless ``log_args`` is set.
    """

    def __init__(self, *, log_args: bool = False) -> None:
        self._log_args = log_args

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        env: Optional[Dict[str, str]] = None,
        stdout: Optional[Path] = None,
    ) -> ProcessResult:
        argv = [command, *args]
        merged_env = None
        if env:
            merged_env = dict(os.environ)
            merged_env.update(env)
        if self._log_args:
            LOGGER.debug("Running %s", " ".join(argv))
        else:
            LOGGER.debug("Running %s", command)
        start = time.monotonic()
        try:
            if stdout is not None:
                with open(stdout, "wb") as handle:
                    completed = subprocess.run(
                        argv,
                        stdin=subprocess.DEVNULL,
                        stdout=handle,
                        stderr=subprocess.DEVNULL,
                        env=merged_env,
                        check=False,
                    )
            else:
                completed = subprocess.run(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    env=merged_env,
                    check=False,
                )
        except OSError as exc:
            LOGGER.error("Unable to start %s: %s", command, exc)
            return ProcessResult(exit_code=EXIT_COMMAND_NOT_FOUND, duration_s=time.monotonic() - start)
        duration = time.monotonic() - start
        LOGGER.debug("%s exited with %s after %.2fs", command, completed.returncode, duration)
        return ProcessResult(exit_code=completed.returncode, duration_s=duration)


def find_executable(name: str, override: Optional[str] = None) -> Optional[str]:
    """Return the full path of ``name``, honouring an explicit override."""

    if override:
        candidate = Path(os.path.expandvars(os.path.expanduser(override)))
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate.resolve())
        found = shutil.which(override)
        if found:
            return found
    return shutil.which(name)
