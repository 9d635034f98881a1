"""Decode CHECK TABLE / REPAIR TABLE result rows into table states."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Sequence

from core.db import QueryResult, as_text

__all__ = [
    "CheckRecord",
    "MessageType",
    "TableState",
    "TableStatus",
    "crashed_tables",
    "decode_records",
    "table_statuses",
]


class MessageType(str, Enum):
    STATUS = "status"
    ERROR = "error"
    INFO = "info"
    NOTE = "note"
    WARNING = "warning"
    OTHER = "other"

    @classmethod
    def decode(cls, value: object) -> "MessageType":
        text = as_text(value).strip().lower()
        try:
            return cls(text)
        except ValueError:
            return cls.OTHER


class TableState(str, Enum):
    OK = "OK"
    CRASHED = "CRASHED"


@dataclass(frozen=True, slots=True)
class CheckRecord:
    table: str
    msg_type: MessageType
    text_ok: bool
    text: str = ""

    @classmethod
    def from_values(cls, table: object, msg_type: object, msg_text: object) -> "CheckRecord":
        text = as_text(msg_text).strip()
        return cls(
            table=as_text(table),
            msg_type=MessageType.decode(msg_type),
            text_ok=text.lower() == "ok",
            text=text,
        )


@dataclass(frozen=True, slots=True)
class TableStatus:
    name: str
    state: TableState

    @property
    def ok(self) -> bool:
        return self.state is TableState.OK


def decode_records(result: QueryResult) -> List[CheckRecord]:
    table_index = result.column_index("Table")
    type_index = result.column_index("Msg_type")
    text_index = result.column_index("Msg_text")
    return [
        CheckRecord.from_values(row[table_index], row[type_index], row[text_index])
        for row in result.rows
    ]


def table_statuses(records: Iterable[CheckRecord]) -> List[TableStatus]:
    """Fold result records into one status per table, in first-seen order.

    ``status``/``OK`` marks a table healthy, ``error`` or a non-OK status
    marks it crashed, and informational rows leave it unchanged; the last
    deciding row wins, so an empty table reported crashed and then OK is OK.
    """

    states: Dict[str, TableState] = {}
    for record in records:
        current = states.setdefault(record.table, TableState.OK)
        if record.msg_type is MessageType.STATUS:
            current = TableState.OK if record.text_ok else TableState.CRASHED
        elif record.msg_type is MessageType.ERROR:
            current = TableState.CRASHED
        states[record.table] = current
    return [TableStatus(name=name, state=state) for name, state in states.items()]


def crashed_tables(records: Sequence[CheckRecord]) -> List[str]:
    return [status.name for status in table_statuses(records) if not status.ok]
