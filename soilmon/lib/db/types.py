"""Type definitions for database operations."""

from typing import Any, TypedDict

type SQLParams = tuple[Any, ...] | dict[str, Any]
"""SQL parameter types: positional tuple or named dict for query binding."""


class MoistureRow(TypedDict):
    """Moisture reading row as stored in the database."""

    id: int
    sensor_id: str
    moisture_level: int
    timestamp: str
