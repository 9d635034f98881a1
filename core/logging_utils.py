from __future__ import annotations

import json
import logging
import os
import socket
import sys
import time
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .paths import get_logs_dir, resolve_working_dir

__all__ = [
    "JsonLogFormatter",
    "REDACTED",
    "configure_console_logging",
    "configure_json_logging",
    "is_secret_key",
    "redact_secret",
]

REDACTED = "***"

_SECRET_MARKERS = ("password", "passwd", "secret")

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}

_CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"


def is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_MARKERS)


def redact_secret(value: Optional[str]) -> str:
    """Replace a secret wholesale; no part of it is kept."""

    return REDACTED if value else ""


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record.

    Every line carries the host, process id and any fixed ``context`` given
    at setup (for example the database name), so lines from several
    maintenance processes sharing a log can be told apart. ``extra`` fields
    whose names look like secrets are redacted.
    """

    def __init__(self, context: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()
        self._context: Dict[str, Any] = {"host": socket.gethostname(), "pid": os.getpid()}
        if context:
            self._context.update(context)

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            **self._context,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in payload or key in _RESERVED_ATTRS:
                continue
            if is_secret_key(key):
                payload[key] = redact_secret(str(value) if value is not None else None)
                continue
            try:
                json.dumps(value)
            except TypeError:
                value = str(value)
            payload[key] = value
        return json.dumps(payload, ensure_ascii=False)


def configure_json_logging(
    name: str = "dbkeeper",
    *,
    working_dir: Optional[Path] = None,
    level: int | str = logging.INFO,
    context: Optional[Mapping[str, Any]] = None,
) -> logging.Logger:
    base = Path(working_dir) if working_dir is not None else resolve_working_dir()
    logs_dir = get_logs_dir(base)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / "dbkeeper.log.jsonl"
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler) and getattr(handler, "baseFilename", None) == str(log_path):
            handler.setFormatter(JsonLogFormatter(context))
            break
    else:
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(JsonLogFormatter(context))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def configure_console_logging(name: str = "dbkeeper", *, level: int | str = logging.INFO) -> logging.Logger:
    """Attach a single stderr handler to ``name``; repeat calls only adjust the level."""

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in logger.handlers:
        if getattr(handler, "_dbkeeper_console", False):
            handler.setLevel(level)
            handler.setStream(sys.stderr)  # type: ignore[attr-defined]
            return logger
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, "%Y-%m-%d %H:%M:%S"))
    handler.setLevel(level)
    handler._dbkeeper_console = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
