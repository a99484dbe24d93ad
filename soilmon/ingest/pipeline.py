"""Telemetry ingestion pipeline.

Each inbound payload is validated, persisted, broadcast to live observers
and evaluated for low moisture alerts, in that order. Messages are
processed one at a time in arrival order because the per-sensor alert state
depends on it. Broadcasting runs as a detached task so a slow observer never
delays the next message.
"""

import asyncio
from typing import Protocol

from soilmon.lib.alerts import AlertDebouncer
from soilmon.lib.db import append_reading
from soilmon.lib.exceptions import StoreError, ValidationError
from soilmon.lib.reading import Reading, validate
from soilmon.logging import get_logger

logger = get_logger("ingest.pipeline")


class Broadcaster(Protocol):
    async def broadcast(self, data: object) -> int: ...


class IngestionPipeline:
    """Validate -> persist -> broadcast -> alert, once per message."""

    def __init__(
        self,
        debouncer: AlertDebouncer,
        broadcaster: Broadcaster,
    ) -> None:
        self._debouncer = debouncer
        self._broadcaster = broadcaster
        self._tasks: set[asyncio.Task[None]] = set()

    async def process(self, payload: bytes | str) -> Reading | None:
        """Process a single inbound payload.

        Returns:
            The accepted reading, or None if the payload was rejected.
        """
        try:
            reading = validate(payload)
        except ValidationError as e:
            logger.warning("Dropping invalid message: %s", e)
            return None

        logger.info(
            "Received: sensor %s - %d%%",
            reading.sensor_id,
            reading.moisture_level,
        )

        try:
            await append_reading(reading)
        except StoreError as e:
            # Keep alerting on transient disk errors, the reading only
            # misses the next archive
            logger.error("Failed to persist reading, continuing: %s", e)

        self._schedule_broadcast(reading)
        self._debouncer.check(reading)
        return reading

    def _schedule_broadcast(self, reading: Reading) -> None:
        task = asyncio.create_task(self._broadcast(reading))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _broadcast(self, reading: Reading) -> None:
        try:
            count = await self._broadcaster.broadcast(reading.to_dict())
        except Exception:
            logger.exception("Broadcast of %s failed", reading)
            return
        logger.debug("Broadcast %s to %d observers", reading, count)

    async def run(self, queue: asyncio.Queue[bytes]) -> None:
        """Consume payloads from the queue forever."""
        logger.info("Ingestion worker started")
        while True:
            payload = await queue.get()
            try:
                await self.process(payload)
            except Exception:
                logger.exception("Unexpected error processing message")
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait for pending broadcasts to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
