"""Structured logging helpers for backup operations."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict

from core.logging_utils import is_secret_key, redact_secret
from core.paths import get_logs_dir

LOGGER = logging.getLogger("dbkeeper.backup")


def _scrub(payload: Dict[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for key, value in payload.items():
        if is_secret_key(key):
            clean[key] = redact_secret(str(value) if value is not None else None)
        elif isinstance(value, Path):
            clean[key] = str(value)
        else:
            clean[key] = value
    return clean


class BackupLogger:
    """Write JSONL entries for backup events and mirror them to ``logging``."""

    def __init__(self, working_dir: Path) -> None:
        self._log_path = get_logs_dir(Path(working_dir)) / "backup.jsonl"
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._log_path

    def _write(self, payload: Dict[str, Any], *, level: int) -> None:
        payload = _scrub(payload)
        payload.setdefault("ts", datetime.now(timezone.utc).isoformat())
        line = json.dumps(payload, sort_keys=True, default=str)
        try:
            with self._lock:
                with self._log_path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except OSError as exc:
            LOGGER.warning("Unable to append to %s: %s", self._log_path, exc)
        LOGGER.log(level, "%s", line)

    def event(self, *, event: str, phase: str, ok: bool, **extra: Any) -> None:
        payload = {
            "event": event,
            "phase": phase,
            "ok": bool(ok),
        }
        if extra:
            payload.update(extra)
        level = logging.INFO if ok else logging.ERROR
        self._write(payload, level=level)

    def info(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": True}, level=logging.INFO)

    def warning(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": False}, level=logging.WARNING)

    def error(self, event: str, **extra: Any) -> None:
        self._write({"event": event, **extra, "ok": False}, level=logging.ERROR)


__all__ = ["BackupLogger"]
