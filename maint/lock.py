"""Cross-process schema lock built on a server-side table lock."""
from __future__ import annotations

import contextlib
import logging
from typing import Any, Iterator, Optional

from core.db import DBError, ConnectionProvider, db_error_message, run_query

from .tables import BOOTSTRAP_TABLE, quote_identifier

__all__ = ["SchemaLock", "schema_locked"]

LOGGER = logging.getLogger("dbkeeper.lock")


class SchemaLock(contextlib.AbstractContextManager):
    """Exclusive ``LOCK TABLE ... WRITE`` on the bootstrap table.

    MySQL scopes table locks to a connection, so the lock lives and dies with
    ``conn``. Release on any other connection is a no-op for this lock.
    The lock is advisory: it blocks other processes taking the same lock and
    nothing else.
    """

    def __init__(self, conn: Any, *, table: str = BOOTSTRAP_TABLE) -> None:
        self._conn = conn
        self._table = quote_identifier(table)
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    @property
    def connection(self) -> Any:
        return self._conn

    def acquire(self) -> bool:
        try:
            run_query(
                self._conn,
                f"CREATE TABLE IF NOT EXISTS {self._table} ( schemalock int(1))",
            )
        except DBError as exc:
            LOGGER.error("Unable to create schemalock table: %s", db_error_message(exc))
            return False
        try:
            run_query(self._conn, f"LOCK TABLE {self._table} WRITE")
        except DBError as exc:
            LOGGER.error("Unable to acquire database upgrade lock: %s", db_error_message(exc))
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False
        try:
            run_query(self._conn, "UNLOCK TABLES")
        except DBError as exc:
            LOGGER.error("Unlocking tables failed: %s", db_error_message(exc))

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._held:
            self.release()
        return False


@contextlib.contextmanager
def schema_locked(provider: ConnectionProvider, *, table: str = BOOTSTRAP_TABLE) -> Iterator[Optional[Any]]:
    """Hold the schema lock on one borrowed connection.

    Yields that connection while the lock is held, or ``None`` when it could
    not be taken. A session under LOCK TABLES may only touch the locked
    table, so schema work inside the block runs on other connections while
    this one keeps the lock.
    """

    with provider.connection() as conn:
        with SchemaLock(conn, table=table) as acquired:
            yield conn if acquired else None
