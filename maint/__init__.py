"""Table health, repair, and schema locking for the managed database."""
from __future__ import annotations

from .clients import count_clients
from .lock import SchemaLock, schema_locked
from .status import MessageType, TableState, TableStatus
from .tables import TableHealthChecker, TableRepairer

__all__ = [
    "MessageType",
    "SchemaLock",
    "TableHealthChecker",
    "TableRepairer",
    "TableState",
    "TableStatus",
    "count_clients",
    "schema_locked",
]
