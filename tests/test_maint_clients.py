import mysql.connector

from maint.clients import count_clients
from fakes import FakeConnection, FakeProvider

COLUMNS = ("Id", "User", "Host", "db", "Command", "Time", "State", "Info")


def _processlist(*dbs):
    rows = [(index, "app", "host", db, "Sleep", 0, "", None) for index, db in enumerate(dbs)]
    return (COLUMNS, rows)


def test_count_clients_rounds_up_per_four_connections():
    conn = FakeConnection({"SHOW PROCESSLIST": _processlist("media", "media", "media", "media", "media", "other", None)})
    assert count_clients(FakeProvider(conn), "media") == 2


def test_count_clients_zero_without_connections():
    conn = FakeConnection({"SHOW PROCESSLIST": _processlist("other")})
    assert count_clients(FakeProvider(conn), "media") == 0


def test_count_clients_zero_on_failure():
    provider = FakeProvider(error=mysql.connector.Error(msg="no route", errno=2003))
    assert count_clients(provider, "media") == 0
