"""Backup file naming and discovery."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional


def create_backup_filename(prefix: str, extension: str, now: Optional[datetime] = None) -> str:
    """Return ``{prefix}-{YYYYMMDDhhmmss}{extension}``.

    ``extension`` is used verbatim, so include the dot when one is wanted.
    """

    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{stamp}{extension}"


def backup_prefix(db_name: str, schema_version: str) -> str:
    return f"{db_name}-{schema_version}"


def find_backup_outputs(directory: Path, prefix: str) -> List[Path]:
    """List regular files in ``directory`` whose name starts with ``prefix``.

    Newest first by modification time, then by name, so the choice among
    several matches is stable.
    """

    if not directory.is_dir():
        return []
    matches = [
        entry
        for entry in directory.iterdir()
        if entry.name.startswith(prefix) and entry.is_file()
    ]

    def _key(path: Path):
        try:
            mtime = path.stat().st_mtime
        except OSError:
            mtime = 0.0
        return (-mtime, path.name)

    return sorted(matches, key=_key)


__all__ = ["backup_prefix", "create_backup_filename", "find_backup_outputs"]
