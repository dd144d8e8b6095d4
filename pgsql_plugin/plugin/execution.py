"""
PostgreSQL statement execution over a per-call async connection.

Each call opens one psycopg AsyncConnection, runs its statement (or batch)
inside a single transaction, and closes the connection on the way out.
Driver failures are wrapped in DatabaseError with the SQLSTATE attached;
nothing is retried here.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import psycopg
from psycopg import AsyncConnection
from psycopg.conninfo import conninfo_to_dict
from psycopg.rows import dict_row

from pgsql_plugin.core.config import Settings, get_settings
from pgsql_plugin.core.errors import DatabaseError
from pgsql_plugin.core.logger import setup_logger
from pgsql_plugin.plugin.connection import describe_target

logger = setup_logger(__name__, include_location=True)

# (sql, params) pairs ready for cursor.execute
Statement = Tuple[str, Optional[Dict[str, Any]]]


def raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError("PostgreSQL plugin call was cancelled.")


def _sql_summary(command: str) -> str:
    trimmed = (command or "").strip()
    if not trimmed:
        return "UNKNOWN len=0"
    operation = trimmed.split(None, 1)[0].upper()
    return f"{operation} len={len(trimmed)}"


def _connect_kwargs(conninfo: str, settings: Settings) -> Dict[str, Any]:
    # Values already present in the connection string win over settings
    present = conninfo_to_dict(conninfo)
    return {k: v for k, v in settings.connect_kwargs().items() if k not in present}


@asynccontextmanager
async def open_connection(
    conninfo: str,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[AsyncConnection]:
    """
    Open a dict_row AsyncConnection for the duration of the block.

    Usage:
        async with open_connection(conninfo) as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
    """
    settings = settings or get_settings()
    raise_if_cancelled(cancel_event)

    target = describe_target(conninfo)
    connect_start = time.time()
    try:
        conn = await AsyncConnection.connect(
            conninfo, row_factory=dict_row, **_connect_kwargs(conninfo, settings)
        )
    except (psycopg.Error, OSError) as e:
        logger.error(f"Failed to connect to PostgreSQL at {target}: {e}")
        raise DatabaseError.from_exception(e) from e

    logger.debug(f"Connected to {target} in {(time.time() - connect_start) * 1000:.1f}ms")
    try:
        yield conn
    finally:
        await conn.close()
        logger.debug(f"Connection to {target} closed")


async def fetch_rows(
    conn: AsyncConnection,
    sql: str,
    params: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """Execute a row-returning statement and materialize every row as a dict."""
    async with conn.cursor() as cursor:
        await cursor.execute(sql, params)
        if cursor.description is None:
            return []
        rows = await cursor.fetchall()
    logger.debug(f"Fetched {len(rows)} rows ({_sql_summary(sql)})")
    return [dict(row) for row in rows]


async def execute_statement(
    conn: AsyncConnection,
    sql: str,
    params: Optional[Dict[str, Any]] = None,
) -> int:
    """Execute a row-affecting statement and return the driver's row count."""
    async with conn.cursor() as cursor:
        await cursor.execute(sql, params)
        return cursor.rowcount


async def run_query(
    conninfo: str,
    sql: str,
    params: Optional[Dict[str, Any]] = None,
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> List[Dict[str, Any]]:
    """Open a connection, run one query, return its rows in column order."""
    try:
        async with open_connection(conninfo, settings, cancel_event) as conn:
            raise_if_cancelled(cancel_event)
            async with conn.transaction():
                return await fetch_rows(conn, sql, params)
    except (psycopg.Error, OSError) as e:
        logger.error(f"SQL query failed ({_sql_summary(sql)}): {e}")
        raise DatabaseError.from_exception(e) from e


async def run_non_query(
    conninfo: str,
    statements: Sequence[Statement],
    settings: Optional[Settings] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> int:
    """
    Run statements in order inside one transaction and sum affected rows.

    The first failing statement rolls the transaction back and aborts the
    remaining ones. Statements that report no row count (DDL) add nothing.
    """
    if not statements:
        return 0

    total = 0
    index = 0
    try:
        async with open_connection(conninfo, settings, cancel_event) as conn:
            async with conn.transaction():
                for index, (sql, params) in enumerate(statements):
                    raise_if_cancelled(cancel_event)
                    affected = await execute_statement(conn, sql, params)
                    logger.debug(
                        f"Statement {index + 1}/{len(statements)} ({_sql_summary(sql)}) affected {affected} rows"
                    )
                    if affected > 0:
                        total += affected
    except (psycopg.Error, OSError) as e:
        logger.error(
            f"SQL statement {index + 1}/{len(statements)} failed ({_sql_summary(statements[index][0])}): {e}"
        )
        raise DatabaseError.from_exception(e) from e
    return total
