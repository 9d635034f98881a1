"""Database backup planning and execution."""
from __future__ import annotations

from .errors import BackupError
from .executor import BackupExecutor
from .naming import create_backup_filename
from .planner import BackupPlanner
from .types import BackupOutcome, BackupResult, BackupRun

__all__ = [
    "BackupError",
    "BackupExecutor",
    "BackupOutcome",
    "BackupPlanner",
    "BackupResult",
    "BackupRun",
    "create_backup_filename",
]
