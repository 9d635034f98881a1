"""In-memory stand-ins for the database and process collaborators."""
from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from core.process import ProcessResult

CHECK_COLUMNS = ("Table", "Op", "Msg_type", "Msg_text")

Response = Union[Tuple[Sequence[str], Sequence[Tuple[Any, ...]]], BaseException, Callable[[str, Any], Any]]


def _normalize(sql: str) -> str:
    return " ".join(sql.split()).upper()


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self.description = None
        self._rows: List[Tuple[Any, ...]] = []

    def execute(self, sql: str, params: Any = None) -> None:
        self._conn.executed.append((sql, params))
        response = self._conn.respond(sql, params)
        if isinstance(response, BaseException):
            raise response
        columns, rows = response
        self.description = [(name, None) for name in columns] if columns else None
        self._rows = [tuple(row) for row in rows]

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return list(self._rows)

    def close(self) -> None:
        pass


class FakeConnection:
    """Answers statements by prefix; unmatched statements return no rows."""

    def __init__(self, responses: Optional[Dict[str, Response]] = None) -> None:
        self.responses: Dict[str, Response] = dict(responses or {})
        self.executed: List[Tuple[str, Any]] = []
        self.commits = 0

    def respond(self, sql: str, params: Any) -> Any:
        normalized = _normalize(sql)
        for prefix, response in self.responses.items():
            if normalized.startswith(_normalize(prefix)):
                if callable(response) and not isinstance(response, BaseException):
                    response = response(sql, params)
                return response
        return ((), ())

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def statements(self) -> List[str]:
        return [_normalize(sql) for sql, _ in self.executed]


class FakeProvider:
    def __init__(self, conn: Optional[FakeConnection] = None, *, error: Optional[BaseException] = None) -> None:
        self.conn = conn or FakeConnection()
        self.error = error
        self.acquired = 0

    @contextlib.contextmanager
    def connection(self) -> Iterator[FakeConnection]:
        if self.error is not None:
            raise self.error
        self.acquired += 1
        yield self.conn


def tables_response(*names: str) -> Tuple[Sequence[str], Sequence[Tuple[Any, ...]]]:
    return (("TABLE_NAME",), [(name,) for name in names])


def check_response(*rows: Tuple[str, str, str]) -> Tuple[Sequence[str], Sequence[Tuple[Any, ...]]]:
    return (CHECK_COLUMNS, [(table, "check", msg_type, text) for table, msg_type, text in rows])


@dataclass
class RunCall:
    command: str
    args: List[str]
    stdout: Optional[Path]
    credential_path: Optional[Path] = None
    credential_text: Optional[str] = None


@dataclass
class FakeRunner:
    """Records invocations and snapshots any credential file handed over."""

    exit_codes: Dict[str, int] = field(default_factory=dict)
    on_run: Optional[Callable[[RunCall], None]] = None
    calls: List[RunCall] = field(default_factory=list)

    def run(self, command, args, *, env=None, stdout=None) -> ProcessResult:
        call = RunCall(command=command, args=list(args), stdout=stdout)
        for arg in call.args:
            candidate = arg.split("=", 1)[1] if arg.startswith("--defaults-extra-file=") else arg
            path = Path(candidate)
            if path.name.startswith("dbkeeper_db_backup_conf_") and path.is_file():
                call.credential_path = path
                call.credential_text = path.read_text(encoding="utf-8")
        self.calls.append(call)
        if self.on_run is not None:
            self.on_run(call)
        code = self.exit_codes.get(Path(command).name, 0)
        if stdout is not None:
            Path(stdout).write_text("-- dump\n", encoding="utf-8")
        return ProcessResult(exit_code=code, duration_s=0.0)

    def commands(self) -> List[str]:
        return [Path(call.command).name for call in self.calls]
