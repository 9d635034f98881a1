from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import mysql.connector
from mysql.connector import pooling

__all__ = [
    "DBError",
    "DEFAULT_POOL_SIZE",
    "ConnectionProvider",
    "DatabaseParams",
    "MySQLConnectionProvider",
    "QueryResult",
    "as_text",
    "db_error_message",
    "run_query",
]

LOGGER = logging.getLogger("dbkeeper.db")

DEFAULT_POOL_SIZE = 4

DBError = mysql.connector.Error


@dataclass(slots=True)
class DatabaseParams:
    """Connection parameters for the managed schema."""

    host: str = "localhost"
    port: int = 3306
    user: str = "dbkeeper"
    password: str = field(default="", repr=False)
    name: str = "dbkeeper"

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "DatabaseParams":
        raw = dict(data or {})
        try:
            port = int(raw.get("port") or 0)
        except (TypeError, ValueError):
            port = 0
        return cls(
            host=str(raw.get("host") or "localhost"),
            port=port,
            user=str(raw.get("user") or ""),
            password=str(raw.get("password") or ""),
            name=str(raw.get("name") or ""),
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "user": self.user,
            "password": self.password,
            "database": self.name,
        }
        if self.port > 0:
            kwargs["port"] = self.port
        return kwargs


class ConnectionProvider(Protocol):
    """Hands out one live connection for the duration of a ``with`` block."""

    def connection(self) -> Any:  # pragma: no cover - protocol
        ...


class MySQLConnectionProvider:
    """Pooled ``mysql.connector`` connections, created lazily."""

    def __init__(
        self,
        params: DatabaseParams,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        pool_name: str = "dbkeeper",
        connect_timeout: int = 10,
    ) -> None:
        self._params = params
        self._pool_size = max(1, int(pool_size))
        self._pool_name = pool_name
        self._connect_timeout = connect_timeout
        self._pool: Optional[pooling.MySQLConnectionPool] = None

    @property
    def params(self) -> DatabaseParams:
        return self._params

    def _get_pool(self) -> pooling.MySQLConnectionPool:
        if self._pool is None:
            self._pool = pooling.MySQLConnectionPool(
                pool_name=self._pool_name,
                pool_size=self._pool_size,
                connection_timeout=self._connect_timeout,
                **self._params.connect_kwargs(),
            )
        return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        conn = self._get_pool().get_connection()
        try:
            yield conn
        finally:
            # Returns the connection to the pool.
            conn.close()


@dataclass(slots=True)
class QueryResult:
    columns: List[str]
    rows: List[Tuple[Any, ...]]

    def column_index(self, name: str) -> int:
        lowered = name.lower()
        for index, column in enumerate(self.columns):
            if column.lower() == lowered:
                return index
        raise KeyError(name)


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def run_query(conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
    """Execute ``sql`` on ``conn`` and return every row it produced."""

    cursor = conn.cursor()
    try:
        cursor.execute(sql, params)
        if cursor.description:
            columns = [as_text(item[0]) for item in cursor.description]
            rows = [tuple(row) for row in cursor.fetchall()]
        else:
            columns, rows = [], []
    finally:
        cursor.close()
    return QueryResult(columns=columns, rows=rows)


def db_error_message(exc: BaseException) -> str:
    """Render a server error the way operators expect to read it."""

    errno = getattr(exc, "errno", None)
    sqlstate = getattr(exc, "sqlstate", None)
    message = getattr(exc, "msg", None) or str(exc)
    if errno and errno != -1:
        if sqlstate:
            return f"{errno} ({sqlstate}): {message}"
        return f"{errno}: {message}"
    return str(message)
