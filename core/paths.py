from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence

__all__ = [
    "BackupDirectoryResolver",
    "MostFreeDirectoryResolver",
    "get_default_settings_paths",
    "get_logs_dir",
    "resolve_backup_directory",
    "resolve_working_dir",
]

LOGGER = logging.getLogger("dbkeeper.paths")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_HOME = "DBKEEPER_HOME"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - best effort cleanup
            pass
        return False


def resolve_working_dir() -> Path:
    """Resolve the dbkeeper working directory, creating it if required."""

    env_home = os.environ.get(_ENV_HOME)
    if env_home:
        env_path = _expand_path(env_home)
        if _ensure_writable_dir(env_path):
            return env_path
        LOGGER.warning("%s=%s is not writable; using the default location", _ENV_HOME, env_path)

    fallback = Path.home() / ".dbkeeper"
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]


class BackupDirectoryResolver(Protocol):
    """Placement service that proposes where a database backup should go."""

    def next_directory(self) -> Optional[Path]:  # pragma: no cover - protocol
        ...


class MostFreeDirectoryResolver:
    """Pick the configured directory with the most free space."""

    def __init__(self, directories: Iterable[str | os.PathLike[str]]) -> None:
        self._directories: List[Path] = []
        for entry in directories:
            text = str(entry).strip()
            if text:
                self._directories.append(_expand_path(text))

    @property
    def directories(self) -> Sequence[Path]:
        return tuple(self._directories)

    def next_directory(self) -> Optional[Path]:
        best: Optional[Path] = None
        best_free = -1
        for directory in self._directories:
            try:
                free = shutil.disk_usage(directory).free
            except OSError:
                continue
            if free > best_free:
                best, best_free = directory, free
        if best is None and self._directories:
            # Nothing could be measured; let the caller validate the first entry.
            return self._directories[0]
        return best


def resolve_backup_directory(resolver: Optional[BackupDirectoryResolver] = None) -> Path:
    """Return the destination directory for a backup.

    Falls back to the system temp directory when the resolver has nothing to
    offer or proposes a directory that does not exist.
    """

    directory = resolver.next_directory() if resolver is not None else None
    if directory is not None and not Path(directory).is_dir():
        LOGGER.info("Ignoring backup directory %s, using %s", directory, tempfile.gettempdir())
        directory = None
    if directory is None:
        return Path(tempfile.gettempdir())
    return Path(directory)
