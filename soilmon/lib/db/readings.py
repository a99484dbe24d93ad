"""Moisture reading store.

Append-only local log of accepted readings, snapshotted and truncated by
the archiver. Truncation is by row identity: only rows included in a
snapshot are removed, so readings appended while an upload is in flight
stay for the next cycle.
"""

from __future__ import annotations

from typing import cast

import aiosqlite

from soilmon.lib.db.connection import get_db
from soilmon.lib.db.types import MoistureRow
from soilmon.lib.exceptions import StoreError
from soilmon.lib.reading import Reading
from soilmon.lib.utils import format_timestamp
from soilmon.logging import get_logger

_logger = get_logger("lib.db.readings")


async def append_reading(reading: Reading) -> int:
    """Durably record a reading.

    Returns:
        The id of the new row.

    Raises:
        StoreError: If the underlying write fails.
    """
    try:
        async with get_db() as db:
            row_id = await db.insert(
                "INSERT INTO moisture_data (sensor_id, moisture_level, timestamp) "
                "VALUES (?, ?, ?)",
                (
                    reading.sensor_id,
                    reading.moisture_level,
                    format_timestamp(reading.observed_at),
                ),
            )
    except (aiosqlite.Error, OSError) as e:
        raise StoreError(f"Failed to store reading {reading}: {e}") from e
    _logger.debug("Stored reading %s as row %d", reading, row_id)
    return row_id


async def snapshot_all() -> list[MoistureRow]:
    """Return every stored reading in insertion order.

    Raises:
        StoreError: If the read fails.
    """
    try:
        async with get_db() as db:
            rows = await db.fetchall(
                "SELECT id, sensor_id, moisture_level, timestamp "
                "FROM moisture_data ORDER BY id"
            )
    except (aiosqlite.Error, OSError) as e:
        raise StoreError(f"Failed to snapshot readings: {e}") from e
    return cast(list[MoistureRow], rows)


async def clear(up_to_id: int | None = None) -> int:
    """Remove stored readings.

    Args:
        up_to_id: If given, only rows with an id up to and including this
            one are removed. Otherwise the whole table is cleared.

    Returns:
        Number of rows removed.

    Raises:
        StoreError: If the delete fails.
    """
    try:
        async with get_db() as db:
            if up_to_id is None:
                deleted = await db.execute("DELETE FROM moisture_data")
            else:
                deleted = await db.execute(
                    "DELETE FROM moisture_data WHERE id <= ?", (up_to_id,)
                )
    except (aiosqlite.Error, OSError) as e:
        raise StoreError(f"Failed to clear readings: {e}") from e
    _logger.info("Cleared %d stored readings", deleted)
    return deleted


async def count_readings() -> int:
    """Return the number of stored readings."""
    async with get_db() as db:
        row = await db.fetchone("SELECT COUNT(*) AS count FROM moisture_data")
    return row["count"] if row else 0
