from core.db import QueryResult
from maint.status import (
    CheckRecord,
    MessageType,
    TableState,
    crashed_tables,
    decode_records,
    table_statuses,
)


def _records(*rows):
    return [CheckRecord.from_values(table, msg_type, text) for table, msg_type, text in rows]


def test_message_type_decodes_case_insensitively():
    assert MessageType.decode("STATUS") is MessageType.STATUS
    assert MessageType.decode(b"Error") is MessageType.ERROR
    assert MessageType.decode("surprise") is MessageType.OTHER


def test_last_ok_status_supersedes_earlier_error():
    records = _records(
        ("db.music", "warning", "Table is marked as crashed"),
        ("db.music", "error", "Found 3 keys of 4"),
        ("db.music", "status", "OK"),
    )
    assert crashed_tables(records) == []


def test_error_after_ok_marks_crashed():
    records = _records(
        ("db.a", "status", "OK"),
        ("db.b", "status", "OK"),
        ("db.b", "error", "Corrupt"),
    )
    assert crashed_tables(records) == ["db.b"]


def test_non_ok_status_marks_crashed_and_info_does_not():
    records = _records(
        ("db.a", "status", "Table is already up to date"),
        ("db.b", "info", "Checking"),
        ("db.c", "note", "The storage engine doesn't support check"),
    )
    statuses = {status.name: status.state for status in table_statuses(records)}
    assert statuses == {"db.a": TableState.CRASHED, "db.b": TableState.OK, "db.c": TableState.OK}


def test_each_table_appears_once_in_first_seen_order():
    records = _records(
        ("db.b", "error", "bad"),
        ("db.a", "status", "OK"),
        ("db.b", "status", "OK"),
        ("db.b", "error", "bad again"),
    )
    statuses = table_statuses(records)
    assert [status.name for status in statuses] == ["db.b", "db.a"]
    assert [status.state for status in statuses] == [TableState.CRASHED, TableState.OK]


def test_decode_records_finds_columns_by_name():
    result = QueryResult(
        columns=["Table", "Op", "Msg_type", "Msg_text"],
        rows=[("db.t", "check", "status", "ok")],
    )
    (record,) = decode_records(result)
    assert record.table == "db.t"
    assert record.msg_type is MessageType.STATUS
    assert record.text_ok
