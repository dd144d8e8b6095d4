import asyncio

import psycopg
import pytest

from pgsql_plugin.core.errors import DatabaseError, ErrorKind
from pgsql_plugin.plugin import execution
from pgsql_plugin.plugin.execution import (
    _connect_kwargs,
    _sql_summary,
    open_connection,
    raise_if_cancelled,
    run_non_query,
    run_query,
)

CONNINFO = "host=localhost port=5432 dbname=test user=test password=test"


def test_sql_summary():
    assert _sql_summary("  select * from t ") == "SELECT len=15"
    assert _sql_summary("") == "UNKNOWN len=0"
    assert _sql_summary(None) == "UNKNOWN len=0"


def test_connect_kwargs_prefers_connection_string_values(settings):
    kwargs = _connect_kwargs(CONNINFO + " connect_timeout=30", settings)
    assert kwargs == {"application_name": "pgsql-plugin-tests"}


def test_raise_if_cancelled():
    raise_if_cancelled(None)
    event = asyncio.Event()
    raise_if_cancelled(event)
    event.set()
    with pytest.raises(asyncio.CancelledError):
        raise_if_cancelled(event)


@pytest.mark.asyncio
async def test_open_connection_closes_on_error(fake_db, settings):
    with pytest.raises(RuntimeError):
        async with open_connection(CONNINFO, settings):
            raise RuntimeError("boom")
    assert fake_db.closed == 1


@pytest.mark.asyncio
async def test_open_connection_wraps_os_errors(fake_db, settings):
    fake_db.connect_error = OSError("Name or service not known")
    with pytest.raises(DatabaseError):
        async with open_connection(CONNINFO, settings):
            pass
    assert fake_db.closed == 0


@pytest.mark.asyncio
async def test_run_query_returns_dict_rows(fake_db, settings):
    fake_db.queue({"rows": [{"id": 1, "name": "a"}]})
    rows = await run_query(CONNINFO, "SELECT id, name FROM t WHERE id = %(id)s", {"id": 1}, settings)
    assert rows == [{"id": 1, "name": "a"}]
    assert fake_db.executed == [("SELECT id, name FROM t WHERE id = %(id)s", {"id": 1})]


@pytest.mark.asyncio
async def test_run_query_without_result_set(fake_db, settings):
    fake_db.queue({"rowcount": 4})
    rows = await run_query(CONNINFO, "UPDATE t SET x = 1", None, settings)
    assert rows == []
    assert fake_db.transactions == ["begin", "commit"]


@pytest.mark.asyncio
async def test_run_query_deadlock_is_retryable(fake_db, settings):
    fake_db.queue(psycopg.errors.DeadlockDetected("deadlock detected"))
    with pytest.raises(DatabaseError) as exc_info:
        await run_query(CONNINFO, "SELECT 1", None, settings)
    info = exc_info.value.to_error_info()
    assert info.kind is ErrorKind.DB_DEADLOCK
    assert info.retryable is True
    assert info.pg_code == "40P01"


@pytest.mark.asyncio
async def test_run_non_query_sums_positive_rowcounts(fake_db, settings):
    fake_db.queue({"rowcount": 2}, {"rowcount": -1}, {"rowcount": 5})
    total = await run_non_query(
        CONNINFO,
        [("INSERT INTO t VALUES (1)", None), ("CREATE INDEX i ON t (x)", None), ("DELETE FROM t", None)],
        settings,
    )
    assert total == 7
    assert fake_db.transactions == ["begin", "commit"]


@pytest.mark.asyncio
async def test_run_non_query_empty_statement_list(fake_db, settings):
    assert await run_non_query(CONNINFO, [], settings) == 0
    assert fake_db.connects == []


@pytest.mark.asyncio
async def test_run_non_query_stops_when_cancelled_midway(fake_db, settings, monkeypatch):
    cancel = asyncio.Event()

    async def connect(conninfo, **kwargs):
        conn = await fake_db.connect(conninfo, **kwargs)
        original_cursor = conn.cursor

        def cursor():
            cur = original_cursor()
            original_execute = cur.execute

            async def execute(sql, params=None):
                await original_execute(sql, params)
                cancel.set()

            cur.execute = execute
            return cur

        conn.cursor = cursor
        return conn

    class _Connection:
        pass

    _Connection.connect = staticmethod(connect)
    monkeypatch.setattr(execution, "AsyncConnection", _Connection)

    fake_db.queue({"rowcount": 1}, {"rowcount": 1})
    with pytest.raises(asyncio.CancelledError):
        await run_non_query(CONNINFO, [("DELETE FROM a", None), ("DELETE FROM b", None)], settings, cancel)
    assert len(fake_db.executed) == 1
    assert fake_db.transactions == ["begin", "rollback"]
    assert fake_db.closed == 1
