"""Database connection management.

Provides async database operations using aiosqlite for non-blocking
database access throughout the application.

Connection Patterns
-------------------
1. **Persistent Connection** (ingestion service)
   - Call init_db() once at startup to open a long-lived connection and
     create the schema
   - All subsequent get_db() calls reuse this connection
   - Call close_db() on shutdown to close the connection

2. **Short-lived Connection** (one-shot archiver CLI, tests)
   - If init_db() was NOT called, get_db() opens a connection for the
     duration of the context and closes it afterwards

The pattern is transparent to calling code - just use get_db().
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, cast

import aiosqlite

from soilmon.lib.config import get_settings
from soilmon.lib.db.types import SQLParams
from soilmon.lib.exceptions import DatabaseNotConnectedError
from soilmon.logging import get_logger

_logger = get_logger("lib.db")

INIT_MOISTURE_TABLE = """
CREATE TABLE IF NOT EXISTS moisture_data (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sensor_id TEXT NOT NULL,
    moisture_level INTEGER NOT NULL,
    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""

IDX_MOISTURE_SENSOR = """
CREATE INDEX IF NOT EXISTS idx_moisture_data_sensor_id
    ON moisture_data (sensor_id)
"""


def _dict_factory(
    cursor: aiosqlite.Cursor, row: tuple[Any, ...]
) -> dict[str, Any]:
    """Convert a row to a dictionary using column names."""
    desc: tuple[Any, ...] = cursor.description or ()
    return {col[0]: row[idx] for idx, col in enumerate(desc)}


class Database:
    """Async database connection wrapper."""

    def __init__(self, db_path: str | None = None):
        self._db_path = db_path or get_settings().db_path
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(
                self._db_path,
                timeout=get_settings().db_timeout_sec,
            )
            self._connection.row_factory = _dict_factory  # type: ignore[assignment]

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def execute(self, sql: str, params: SQLParams = ()) -> int:
        """Execute a SQL statement.

        Returns:
            Number of rows affected by the statement.
        """
        if self._connection is None:
            raise DatabaseNotConnectedError()
        cursor = await self._connection.execute(sql, params)
        await self._connection.commit()
        return cursor.rowcount

    async def insert(self, sql: str, params: SQLParams = ()) -> int:
        """Execute an INSERT statement and return the new row id."""
        if self._connection is None:
            raise DatabaseNotConnectedError()
        cursor = await self._connection.execute(sql, params)
        await self._connection.commit()
        return cast(int, cursor.lastrowid)

    async def fetchone(
        self, sql: str, params: SQLParams = ()
    ) -> dict[str, Any] | None:
        """Fetch a single row."""
        if self._connection is None:
            raise DatabaseNotConnectedError()
        async with self._connection.execute(sql, params) as cursor:
            row = await cursor.fetchone()
            return cast(dict[str, Any] | None, row)

    async def fetchall(
        self, sql: str, params: SQLParams = ()
    ) -> list[dict[str, Any]]:
        """Fetch all rows."""
        if self._connection is None:
            raise DatabaseNotConnectedError()
        async with self._connection.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
            return cast(list[dict[str, Any]], rows)

    async def execute_pragma(self, pragma: str) -> None:
        """Execute a PRAGMA statement directly on the connection."""
        if self._connection is None:
            raise DatabaseNotConnectedError()
        await self._connection.execute(pragma)


# Module singleton, set by init_db()
_persistent: Database | None = None


@asynccontextmanager
async def get_db() -> AsyncIterator[Database]:
    """Get a database connection.

    Uses the persistent connection if init_db() was called, otherwise opens
    a connection for the duration of the context.

    Usage:
        async with get_db() as db:
            await db.execute("INSERT INTO ...")
    """
    if _persistent is not None:
        yield _persistent
    else:
        async with Database() as db:
            yield db


async def create_schema(db: Database) -> None:
    """Create the reading table and its indexes if missing."""
    await db.execute(INIT_MOISTURE_TABLE)
    await db.execute(IDX_MOISTURE_SENSOR)


async def init_db() -> None:
    """Initialize database with persistent connection and schema.

    Call this once at startup. Any failure here is fatal to the service.
    """
    global _persistent
    if _persistent is None:
        _persistent = Database()
        await _persistent.connect()
        _logger.info(
            "Opened persistent database connection: %s", get_settings().db_path
        )

    await _persistent.execute_pragma("PRAGMA journal_mode=WAL")
    await create_schema(_persistent)


async def close_db() -> None:
    """Close the persistent connection."""
    global _persistent
    if _persistent is not None:
        await _persistent.close()
        _logger.info("Closed persistent database connection")
        _persistent = None
