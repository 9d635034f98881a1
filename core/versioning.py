"""Detect and compare the version of the managed DBMS."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from .db import DBError, ConnectionProvider, as_text, db_error_message, run_query
from .settings import SettingsStore

__all__ = ["DBMSVersion", "VersionProbe", "VERSION_OVERRIDE_KEY"]

LOGGER = logging.getLogger("dbkeeper.versioning")

VERSION_OVERRIDE_KEY = "DBMSVersionOverride"

_DIGITS = re.compile(r"(\d+)")


@dataclass(frozen=True, slots=True)
class DBMSVersion:
    raw: str
    major: int = -1
    minor: int = -1
    point: int = -1

    @classmethod
    def parse(cls, raw: str) -> "DBMSVersion":
        """Take up to three decimal runs from ``raw``, in order.

        ``"5.0.22-Debian_0ubuntu6.06.2-log"`` parses as ``(5, 0, 22)``; a
        missing component stays ``-1``.
        """

        parts = [-1, -1, -1]
        for index, match in enumerate(_DIGITS.finditer(raw or "")):
            if index >= 3:
                break
            parts[index] = int(match.group(1))
        return cls(raw=raw or "", major=parts[0], minor=parts[1], point=parts[2])

    @property
    def known(self) -> bool:
        return self.major > -1

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.point)

    def compare(self, major: int, minor: int = 0, point: int = 0) -> Optional[int]:
        """Return negative, zero or positive, or ``None`` if unknown.

        A component the server did not report only counts when the requested
        component is non-zero, so ``"5.1"`` equals ``5.1.0``.
        """

        if not self.known:
            return None
        result = 0
        for ours, theirs in zip(self.as_tuple(), (major, minor, point)):
            if result:
                break
            if ours > -1 or theirs != 0:
                result = ours - theirs
        return result


class VersionProbe:
    """Query the server version once and keep it for the process lifetime."""

    def __init__(self, provider: ConnectionProvider, settings: Optional[SettingsStore] = None) -> None:
        self._provider = provider
        self._settings = settings
        self._raw = ""
        self._parsed: Optional[DBMSVersion] = None

    def _query(self) -> str:
        # Operators can override a server string mangled by a custom build.
        if self._settings is not None:
            override = self._settings.get_str(VERSION_OVERRIDE_KEY).strip()
            if override:
                return override
        try:
            with self._provider.connection() as conn:
                result = run_query(conn, "SELECT VERSION()")
        except DBError as exc:
            LOGGER.error("Unable to determine the DBMS version: %s", db_error_message(exc))
            return ""
        if not result.rows:
            LOGGER.error("Unable to determine the DBMS version: empty result")
            return ""
        return as_text(result.rows[0][0])

    def get_version(self) -> str:
        if not self._raw:
            self._raw = self._query()
        return self._raw

    def version(self) -> DBMSVersion:
        if self._parsed is None or not self._parsed.known:
            parsed = DBMSVersion.parse(self.get_version())
            if parsed.raw:
                self._parsed = parsed
            return parsed
        return self._parsed

    def compare(self, major: int, minor: int = 0, point: int = 0) -> Optional[int]:
        return self.version().compare(major, minor, point)
