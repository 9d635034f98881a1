"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional

BACKUP_GRACE = timedelta(minutes=10)


class BackupOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    DISABLED = "disabled"
    EMPTY_DATABASE = "empty_database"


@dataclass(slots=True)
class StrategyResult:
    """Result of one backup strategy attempt."""

    ok: bool
    path: Optional[Path] = None


@dataclass(slots=True)
class BackupResult:
    outcome: BackupOutcome
    path: Optional[Path] = None
    strategy: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not BackupOutcome.FAILED


@dataclass(slots=True)
class BackupRun:
    """Start and end of the most recent backup as recorded in settings."""

    started_at: Optional[datetime]
    ended_at: Optional[datetime] = None
    result_file: Optional[Path] = None

    @property
    def complete(self) -> bool:
        return (
            self.started_at is not None
            and self.ended_at is not None
            and self.ended_at >= self.started_at
        )

    def in_progress(self, now: datetime, *, grace: timedelta = BACKUP_GRACE) -> bool:
        if self.started_at is None:
            return False
        if self.complete:
            return False
        # No end yet, or a stale end from an earlier run: trust the start
        # only while it is recent.
        return now - self.started_at < grace


__all__ = [
    "BACKUP_GRACE",
    "BackupOutcome",
    "BackupResult",
    "BackupRun",
    "StrategyResult",
]
