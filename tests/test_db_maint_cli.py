import json
import logging

import mysql.connector
import pytest

import db_maint
from core.settings import SettingsStore
from fakes import FakeConnection, FakeProvider, FakeRunner, check_response, tables_response


def _context(tmp_path, conn):
    working = tmp_path / "work"
    working.mkdir()
    (working / "settings.json").write_text(
        json.dumps({"database": {"name": "media"}, "logging": {"json": False}}),
        encoding="utf-8",
    )
    settings = SettingsStore(working, hostname="testhost")
    return db_maint.Context(settings=settings, provider=FakeProvider(conn), runner=FakeRunner())


def test_version_prints_comparison(tmp_path, capsys):
    conn = FakeConnection({"SELECT VERSION()": (("VERSION()",), [("10.6.12-MariaDB",)])})

    code = db_maint.main(["version", "--compare", "10.5"], context=_context(tmp_path, conn))

    assert code == db_maint.EXIT_OK
    payload = json.loads(capsys.readouterr().out)
    assert payload == {"version": "10.6.12-MariaDB", "parsed": [10, 6, 12], "compare": 1}


def test_version_unreachable_server_fails(tmp_path):
    conn = FakeConnection({"SELECT VERSION()": mysql.connector.Error(msg="refused", errno=2003)})
    assert db_maint.main(["version"], context=_context(tmp_path, conn)) == db_maint.EXIT_FAILED


def test_repair_refuses_without_lock(tmp_path):
    conn = FakeConnection({"LOCK TABLE": mysql.connector.Error(msg="busy", errno=1205)})

    code = db_maint.main(["repair"], context=_context(tmp_path, conn))

    assert code == db_maint.EXIT_LOCKED
    assert not any(stmt.startswith("CHECK TABLE") for stmt in conn.statements())


def test_repair_under_lock(tmp_path):
    conn = FakeConnection({
        "SELECT CONCAT(": tables_response("`media`.`music`"),
        "CHECK TABLE": check_response(("media.music", "error", "crashed")),
        "REPAIR TABLE": check_response(("media.music", "status", "OK")),
    })

    code = db_maint.main(["repair", "--options", "extended"], context=_context(tmp_path, conn))

    assert code == db_maint.EXIT_OK
    statements = conn.statements()
    assert statements.index("LOCK TABLE `SCHEMALOCK` WRITE") < statements.index("REPAIR TABLE `MEDIA`.`MUSIC`")
    assert statements[-1] == "UNLOCK TABLES"


def test_check_reports_crash(tmp_path):
    conn = FakeConnection({
        "SELECT CONCAT(": tables_response("`media`.`music`"),
        "CHECK TABLE": check_response(("media.music", "error", "crashed")),
    })
    assert db_maint.main(["check"], context=_context(tmp_path, conn)) == db_maint.EXIT_FAILED


def test_backup_of_empty_database(tmp_path, capsys):
    conn = FakeConnection({"SELECT CONCAT(": tables_response()})

    code = db_maint.main(["backup"], context=_context(tmp_path, conn))

    assert code == db_maint.EXIT_OK
    assert json.loads(capsys.readouterr().out)["outcome"] == "empty_database"


def test_version_rejects_bad_comparison(tmp_path):
    with pytest.raises(SystemExit):
        db_maint.main(["version", "--compare", "a.b"], context=_context(tmp_path, FakeConnection()))


def test_repeated_runs_keep_a_single_console_handler(tmp_path):
    ctx = _context(tmp_path, FakeConnection({"SHOW PROCESSLIST": (("db",), [("media",)])}))

    db_maint.main(["clients"], context=ctx)
    db_maint.main(["clients"], context=ctx)

    handlers = logging.getLogger("dbkeeper").handlers
    assert len([handler for handler in handlers if getattr(handler, "_dbkeeper_console", False)]) == 1
