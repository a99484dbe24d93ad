"""Domain model and validation for soil moisture readings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from soilmon.lib.config import MOISTURE_BOUNDS, get_settings
from soilmon.lib.exceptions import MalformedPayload, OutOfRange
from soilmon.lib.utils import epoch_ms, format_timestamp, utcnow


@dataclass(frozen=True, slots=True)
class Reading:
    """A validated moisture sample from a single field sensor."""

    sensor_id: str
    moisture_level: int
    observed_at: datetime

    @classmethod
    def from_payload(
        cls, data: Any, observed_at: datetime
    ) -> Reading:
        """Create a validated reading from a decoded telemetry payload.

        Raises:
            MalformedPayload: If the payload does not match the schema.
            OutOfRange: If the moisture level is outside [0, 100].
        """
        if not isinstance(data, dict):
            raise MalformedPayload(
                f"expected a JSON object, got {type(data).__name__}"
            )
        sensor_id = cls._validate_sensor_id(data.get("sensor_id"))
        moisture_level = cls._validate_moisture(data.get("moisture_level"))
        return cls(sensor_id, moisture_level, observed_at)

    @staticmethod
    def _validate_sensor_id(value: Any) -> str:
        if value is None:
            raise MalformedPayload("sensor_id is missing")
        if not isinstance(value, str):
            raise MalformedPayload(
                f"sensor_id must be a string, got {type(value).__name__}"
            )
        # Sensor ids are opaque, so "S1 " and "S1" are distinct sensors
        if not value.strip():
            raise MalformedPayload("sensor_id must not be empty")
        max_length = get_settings().ingest.sensor_id_max_length
        if len(value) > max_length:
            raise MalformedPayload(
                f"sensor_id longer than {max_length} characters"
            )
        return value

    @staticmethod
    def _validate_moisture(value: Any) -> int:
        if value is None:
            raise MalformedPayload("moisture_level is missing")
        # bool is an int subclass, but true/false is not a percentage
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedPayload(
                f"moisture_level must be an integer, got {type(value).__name__}"
            )
        low, high = MOISTURE_BOUNDS
        if not low <= value <= high:
            raise OutOfRange(
                f"moisture_level must be between {low} and {high}, got {value}"
            )
        return value

    def to_dict(self) -> dict[str, Any]:
        """Convert reading to a dictionary for JSON serialization."""
        return {
            "sensor_id": self.sensor_id,
            "moisture_level": self.moisture_level,
            "timestamp": format_timestamp(self.observed_at),
            "epoch": epoch_ms(self.observed_at),
        }

    def __str__(self) -> str:
        return f"{self.sensor_id}: {self.moisture_level}%"


def validate(raw: bytes | str, *, now: datetime | None = None) -> Reading:
    """Parse and validate an inbound telemetry payload.

    The payload carries no trustworthy timestamp, so the reading is stamped
    with its arrival time (``now`` or the current UTC time).

    Raises:
        MalformedPayload: If the bytes are not a JSON object matching the
            reading schema.
        OutOfRange: If the moisture level is outside [0, 100].
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise MalformedPayload(f"invalid JSON: {e}") from e
    return Reading.from_payload(data, now if now is not None else utcnow())
