"""Soil moisture ingestion service.

Wires the MQTT subscriber, the ingestion pipeline, the live feed server
and the periodic archiver into one event loop:

    MQTT -> queue -> pipeline -> store / live feed / alerts -> Telegram
    timer -> archiver -> S3 -> store truncation

Failing to open the database or to reach the broker at startup is fatal;
nothing after that stops the service.
"""

import asyncio
from contextlib import suppress

from soilmon.archiver import Archiver
from soilmon.ingest.mqtt import MqttSubscriber
from soilmon.ingest.pipeline import IngestionPipeline
from soilmon.lib.alerts import from_settings
from soilmon.lib.config import get_settings
from soilmon.lib.db import close_db, init_db
from soilmon.lib.notifications import get_dispatcher
from soilmon.lib.service import run_service
from soilmon.lib.storage import get_storage
from soilmon.logging import get_logger
from soilmon.server.entrypoint import create_app, create_server
from soilmon.server.websockets import connection_manager

logger = get_logger("ingest.service")


async def run() -> None:
    """Run the ingestion service until cancelled."""
    settings = get_settings()

    await init_db()

    debouncer = from_settings()
    dispatcher = get_dispatcher()
    debouncer.register_callback(dispatcher)
    logger.info(
        "Alerting with %s policy, threshold %d%%",
        debouncer.policy,
        debouncer.threshold,
    )

    queue: asyncio.Queue[bytes] = asyncio.Queue()
    subscriber = MqttSubscriber(queue)
    try:
        await subscriber.connect()
    except ConnectionError:
        await close_db()
        raise

    pipeline = IngestionPipeline(debouncer, connection_manager)
    server = create_server(create_app(subscriber))
    archiver = Archiver(get_storage())

    tasks = [
        asyncio.create_task(pipeline.run(queue), name="ingest"),
        asyncio.create_task(archiver.run(), name="archiver"),
        asyncio.create_task(server.serve(), name="live-feed"),
    ]
    logger.info(
        "Live feed listening on ws://%s:%d/readings",
        settings.server.host,
        settings.server.port,
    )

    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            logger.warning("Task %s exited, shutting down", task.get_name())
    finally:
        server.should_exit = True
        for task in tasks:
            task.cancel()
        with suppress(asyncio.CancelledError):
            await asyncio.gather(*tasks, return_exceptions=True)
        await pipeline.drain()
        await dispatcher.drain()
        subscriber.disconnect()
        await close_db()
        logger.info("Ingestion service shutdown complete")


def main() -> int:
    """Entry point for the ingestion service."""
    return run_service(run, name="ingest")
