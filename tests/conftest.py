import logging

import pytest

from pgsql_plugin.core.config import Settings
from pgsql_plugin.plugin import execution


class FakeCursor:
    def __init__(self, db):
        self.db = db
        self.description = None
        self.rowcount = -1
        self._rows = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def execute(self, sql, params=None):
        self.db.executed.append((sql, params))
        outcome = self.db.outcomes.pop(0) if self.db.outcomes else {"rowcount": 0}
        if isinstance(outcome, BaseException):
            raise outcome
        self._rows = outcome.get("rows")
        if self._rows is not None:
            columns = list(self._rows[0].keys()) if self._rows else outcome.get("columns", [])
            self.description = [(name,) for name in columns]
            self.rowcount = len(self._rows)
        else:
            self.description = None
            self.rowcount = outcome.get("rowcount", 0)

    async def fetchall(self):
        return list(self._rows or [])


class FakeTransaction:
    def __init__(self, db):
        self.db = db

    async def __aenter__(self):
        self.db.transactions.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.db.transactions.append("rollback" if exc_type else "commit")
        return False


class FakeConnection:
    def __init__(self, db):
        self.db = db
        self.closed = False

    def cursor(self):
        return FakeCursor(self.db)

    def transaction(self):
        return FakeTransaction(self.db)

    async def close(self):
        self.closed = True
        self.db.closed += 1


class FakeDatabase:
    """Scripted stand-in for psycopg.AsyncConnection; one outcome per execute()."""

    def __init__(self):
        self.outcomes = []
        self.executed = []
        self.transactions = []
        self.connects = []
        self.connect_error = None
        self.closed = 0

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)
        return self

    async def connect(self, conninfo, **kwargs):
        self.connects.append((conninfo, kwargs))
        if self.connect_error is not None:
            raise self.connect_error
        return FakeConnection(self)


class RecordingLogger:
    """Host logger double that keeps (level, message) pairs."""

    def __init__(self):
        self.records = []

    def debug(self, message, *args, **kwargs):
        self.records.append(("debug", message))

    def info(self, message, *args, **kwargs):
        self.records.append(("info", message))

    def error(self, message, *args, **kwargs):
        self.records.append(("error", message))

    def messages(self, level):
        return [message for lvl, message in self.records if lvl == level]


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDatabase()

    class _FakeAsyncConnection:
        connect = staticmethod(db.connect)

    monkeypatch.setattr(execution, "AsyncConnection", _FakeAsyncConnection)
    return db


@pytest.fixture
def settings():
    return Settings(connect_timeout=5, application_name="pgsql-plugin-tests")


@pytest.fixture
def plugin_logger():
    return RecordingLogger()


@pytest.fixture(autouse=True)
def _quiet_package_loggers():
    for name in ("pgsql_plugin.plugin.execution", "pgsql_plugin.plugin.plugin"):
        logging.getLogger(name).setLevel(logging.CRITICAL)
    yield
