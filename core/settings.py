from __future__ import annotations

import json
import logging
import os
import socket
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .db import DatabaseParams
from .paths import get_default_settings_paths
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "SettingsStore",
    "load_settings",
    "merge_defaults",
    "save_settings",
]

LOGGER = logging.getLogger("dbkeeper.settings")

SETTINGS_VERSION = 1


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "database": {
        "host": "localhost",
        "port": 3306,
        "user": "dbkeeper",
        "password": "",
        "name": "dbkeeper",
        "pool_size": 4,
    },
    "backup": {
        "directories": [],
        "dump_command": "mysqldump",
        "compress_command": "gzip",
    },
    "logging": {
        "json": True,
        "level": "INFO",
    },
    # Global key/value settings; "hosts" holds per-host overrides.
    "values": {
        "DisableAutomaticBackup": 0,
        "DatabaseBackupScript": "",
        "BackupDBScriptArgs": "",
        "DBMSVersionOverride": "",
        "DBSchemaVer": "",
    },
    "hosts": {},
}


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                if isinstance(current, dict):
                    result[key] = _merge(value, current)
                else:
                    result[key] = _merge(value, {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                result[key] = payload.get(key, value)
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    version = settings.get("version")
    try:
        version_int = int(version)
    except (TypeError, ValueError):
        version_int = 0
    if version_int < SETTINGS_VERSION:
        settings["version"] = SETTINGS_VERSION
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    logs_dir = working_dir / "logs"
    payload = {
        "ts": time.time(),
        "unknown": unknown,
    }
    target = logs_dir / "settings_unknown.json"
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
    except OSError:
        LOGGER.warning("Unknown settings keys: %s", ", ".join(unknown))


def load_settings(working_dir: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for candidate in get_default_settings_paths(working_dir):
        try:
            with open(candidate, "r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except FileNotFoundError:
            continue
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring malformed settings file %s", candidate)
            continue
        except OSError:
            continue
        if isinstance(loaded, dict):
            data = loaded
            break
    merged = merge_defaults(data)
    merged = _apply_migrations(merged)
    merged.setdefault("working_dir", str(working_dir))
    _log_unknown_keys(merged, working_dir)
    return merged


def save_settings(settings: Dict[str, Any], working_dir: Path) -> None:
    merged = merge_defaults(dict(settings))
    merged = _apply_migrations(merged)
    merged.setdefault("working_dir", str(working_dir))
    path = working_dir / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    # Readers in other processes must never see a half-written file.
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as handle:
            json.dump(merged, handle, ensure_ascii=False, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


class SettingsStore:
    """Per-host key/value settings persisted in ``settings.json``.

    Lookups prefer the value saved for this host and fall back to the global
    ``values`` block. Writes always go to this host, mirroring how each
    machine records its own backup runs.
    """

    def __init__(self, working_dir: Path, *, hostname: Optional[str] = None) -> None:
        self._working_dir = Path(working_dir)
        self._settings = load_settings(self._working_dir)
        configured = self._settings.get("hostname")
        self._hostname = hostname or (str(configured) if configured else socket.gethostname())

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def hostname(self) -> str:
        return self._hostname

    @property
    def data(self) -> Dict[str, Any]:
        return self._settings

    def _host_values(self) -> Dict[str, Any]:
        hosts = self._settings.get("hosts")
        if not isinstance(hosts, dict):
            hosts = {}
            self._settings["hosts"] = hosts
        values = hosts.get(self._hostname)
        if not isinstance(values, dict):
            values = {}
            hosts[self._hostname] = values
        return values

    def reload(self) -> None:
        """Re-read ``settings.json`` to pick up values saved by other processes."""

        self._settings = load_settings(self._working_dir)

    def get(self, key: str, default: Any = None) -> Any:
        host_values = self._settings.get("hosts", {}).get(self._hostname)
        if isinstance(host_values, dict) and key in host_values:
            return host_values[key]
        values = self._settings.get("values")
        if isinstance(values, dict) and key in values:
            return values[key]
        return default

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key)
        if value is None:
            return default
        return str(value)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            LOGGER.warning("Setting %s=%r is not an integer; using %s", key, value, default)
            return default

    def save_on_host(self, key: str, value: Any) -> None:
        # Merge onto the file as it is now so keys saved elsewhere survive.
        self.reload()
        self._host_values()[key] = value
        save_settings(self._settings, self._working_dir)

    def section(self, name: str) -> Dict[str, Any]:
        block = self._settings.get(name)
        return dict(block) if isinstance(block, dict) else {}

    def database_params(self) -> DatabaseParams:
        return DatabaseParams.from_mapping(self.section("database"))
