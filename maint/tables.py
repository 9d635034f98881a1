"""Table integrity checks and repairs for the managed schema."""
from __future__ import annotations

import contextlib
import logging
from typing import Any, Iterator, List, Optional, Sequence

from core.db import DBError, ConnectionProvider, as_text, db_error_message, run_query

from .status import crashed_tables, decode_records

__all__ = [
    "BOOTSTRAP_TABLE",
    "REPAIRABLE_ENGINES",
    "TableHealthChecker",
    "TableRepairer",
    "quote_identifier",
    "quote_table_name",
]

LOGGER = logging.getLogger("dbkeeper.dbmaint")

BOOTSTRAP_TABLE = "schemalock"
REPAIRABLE_ENGINES = ("MyISAM",)

_CHECK_OPTIONS = {"QUICK", "FAST", "MEDIUM", "EXTENDED", "CHANGED"}

_LIST_TABLES_SQL = (
    "SELECT CONCAT('`', TABLE_SCHEMA, '`.`', TABLE_NAME, '`') AS TABLE_NAME"
    "  FROM INFORMATION_SCHEMA.TABLES"
    " WHERE TABLE_SCHEMA = DATABASE()"
    "   AND TABLE_TYPE = 'BASE TABLE'"
)


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def quote_table_name(name: str) -> str:
    """Return ``name`` as a backtick-quoted ``schema.table`` reference.

    CHECK/REPAIR TABLE report plain ``schema.table``; names that are already
    quoted are passed through.
    """

    text = name.strip()
    if text.startswith("`"):
        return text
    schema, sep, table = text.partition(".")
    if not sep:
        return quote_identifier(schema)
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"


def _normalize_options(options: str) -> str:
    words = options.upper().split()
    normalized: List[str] = []
    index = 0
    while index < len(words):
        word = words[index]
        if word == "FOR" and index + 1 < len(words) and words[index + 1] == "UPGRADE":
            normalized.append("FOR UPGRADE")
            index += 2
            continue
        if word not in _CHECK_OPTIONS:
            raise ValueError(f"unsupported CHECK TABLE option: {word}")
        normalized.append(word)
        index += 1
    return " ".join(normalized)


@contextlib.contextmanager
def _borrow(provider: ConnectionProvider, conn: Optional[Any]) -> Iterator[Any]:
    if conn is not None:
        yield conn
        return
    with provider.connection() as owned:
        yield owned


def _list_tables(conn: Any, engines: Sequence[str]) -> List[str]:
    sql = _LIST_TABLES_SQL
    params: Optional[List[str]] = None
    if engines:
        sql += "   AND ENGINE IN (" + ", ".join(["%s"] * len(engines)) + ")"
        params = list(engines)
    result = run_query(conn, sql, params)
    return [as_text(row[0]) for row in result.rows]


class TableRepairer:
    """Run REPAIR TABLE on tables a check reported as crashed.

    Repairing a table another client is using can destroy it. Callers must
    guarantee exclusivity, for example by holding the schema lock.
    """

    def __init__(self, provider: ConnectionProvider) -> None:
        self._provider = provider

    def repair(self, tables: Sequence[str], *, conn: Optional[Any] = None) -> bool:
        if not tables:
            raise ValueError("repair() needs at least one table")
        names = ", ".join(quote_table_name(name) for name in tables)
        LOGGER.info("Repairing database tables: %s", names)
        try:
            with _borrow(self._provider, conn) as active:
                result = run_query(active, f"REPAIR TABLE {names}")
        except DBError as exc:
            LOGGER.error("Repairing tables failed: %s", db_error_message(exc))
            return False
        try:
            remaining = crashed_tables(decode_records(result))
        except KeyError as exc:
            LOGGER.error("REPAIR TABLE result lacks column %s", exc)
            return False
        if remaining:
            LOGGER.error("Unable to repair crashed table(s): %s", ", ".join(remaining))
            return False
        return True


class TableHealthChecker:
    def __init__(
        self,
        provider: ConnectionProvider,
        *,
        repairer: Optional[TableRepairer] = None,
        engines: Sequence[str] = REPAIRABLE_ENGINES,
        bootstrap_table: str = BOOTSTRAP_TABLE,
    ) -> None:
        self._provider = provider
        self._repairer = repairer or TableRepairer(provider)
        self._engines = tuple(engines)
        self._bootstrap_suffix = "." + quote_identifier(bootstrap_table)

    def get_tables(self, engines: Sequence[str] = ()) -> List[str]:
        """Return the schema's base tables as `` `schema`.`table` `` names."""

        try:
            with self._provider.connection() as conn:
                return _list_tables(conn, engines)
        except DBError as exc:
            LOGGER.error("Finding tables failed: %s", db_error_message(exc))
            return []

    def is_new_database(self) -> bool:
        tables = self.get_tables()
        # A fresh schema holds nothing, or only the lock table.
        if not tables:
            return True
        return len(tables) == 1 and tables[0].endswith(self._bootstrap_suffix)

    def check_tables(self, repair: bool = False, options: str = "QUICK", *, conn: Optional[Any] = None) -> bool:
        normalized = _normalize_options(options)
        try:
            with _borrow(self._provider, conn) as active:
                tables = _list_tables(active, self._engines)
                if not tables:
                    return True
                LOGGER.info("Checking database tables.")
                sql = f"CHECK TABLE {', '.join(tables)}"
                if normalized:
                    sql += f" {normalized}"
                result = run_query(active, sql)
                crashed = crashed_tables(decode_records(result))
                if not crashed:
                    return True
                LOGGER.warning("Found crashed database table(s): %s", ", ".join(crashed))
                if not repair:
                    return False
                return self._repairer.repair(crashed, conn=active)
        except DBError as exc:
            LOGGER.error("Checking tables failed: %s", db_error_message(exc))
            return False
        except KeyError as exc:
            LOGGER.error("CHECK TABLE result lacks column %s", exc)
            return False
