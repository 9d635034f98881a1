from __future__ import annotations

import logging

from core.db import DBError, ConnectionProvider, as_text, db_error_message, run_query

__all__ = ["CONNECTIONS_PER_CLIENT", "count_clients"]

LOGGER = logging.getLogger("dbkeeper.dbmaint")

CONNECTIONS_PER_CLIENT = 4


def count_clients(provider: ConnectionProvider, db_name: str) -> int:
    """Estimate how many client programs are using ``db_name``.

    Counts server threads attached to the schema and rounds up, assuming a
    client holds about four connections. Returns 0 when the server cannot be
    asked.
    """

    try:
        with provider.connection() as conn:
            result = run_query(conn, "SHOW PROCESSLIST")
        db_index = result.column_index("db")
    except DBError as exc:
        LOGGER.error("Counting clients failed: %s", db_error_message(exc))
        return 0
    except KeyError:
        LOGGER.error("SHOW PROCESSLIST result has no db column")
        return 0
    threads = sum(1 for row in result.rows if as_text(row[db_index]) == db_name)
    count = (threads + CONNECTIONS_PER_CLIENT - 1) // CONNECTIONS_PER_CLIENT
    LOGGER.debug("Found %d client(s) for %s (%d threads)", count, db_name, threads)
    return count
