"""Periodic archival of stored readings to cold storage.

Each cycle snapshots the reading store, uploads the snapshot as a single
JSON object named after the cycle's timestamp, and only then removes the
archived rows from the local store. A failed cycle leaves the store
untouched, so its readings are included again in the next successful
upload (at-least-once archival).

Runs as a task of the ingestion service, or once from cron:
    python -m soilmon.archiver
"""

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from soilmon.lib.config import get_settings
from soilmon.lib.db import clear, snapshot_all
from soilmon.lib.exceptions import ArchivalError, StoreError
from soilmon.lib.retry import with_retry
from soilmon.lib.storage import ColdStorage, get_storage
from soilmon.lib.utils import epoch_ms, utcnow
from soilmon.logging import configure, get_logger

logger = get_logger("archiver")


def archive_key(now: datetime, prefix: str = "moisture-data") -> str:
    """Return the object key for an archival cycle started at ``now``."""
    return f"{prefix}-{epoch_ms(now)}.json"


class Archiver:
    """Snapshot, upload and truncate the reading store on a schedule."""

    def __init__(
        self,
        storage: ColdStorage,
        period_sec: float | None = None,
    ) -> None:
        cfg = get_settings().archive
        self._storage = storage
        self.period_sec = period_sec if period_sec is not None else cfg.period_sec
        self._key_prefix = cfg.key_prefix
        self._max_retries = cfg.max_retries
        self._initial_backoff_sec = cfg.initial_backoff_sec

    async def run_cycle(self, now: datetime | None = None) -> str | None:
        """Run one archival cycle.

        Returns:
            The uploaded object key, or None when there was nothing to archive.

        Raises:
            ArchivalError: If serialization or upload failed. The store is
                left untouched.
            StoreError: If the store could not be read, or the upload
                succeeded but the store could not be truncated; the rows
                will be archived again next cycle.
        """
        rows = await snapshot_all()
        if not rows:
            logger.info("No readings to archive")
            return None

        key = archive_key(now or utcnow(), self._key_prefix)
        try:
            body = json.dumps(rows).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ArchivalError(f"Failed to serialize snapshot: {e}") from e

        location = await with_retry(
            lambda: self._storage.put_object(key, body, "application/json"),
            name=f"Archive upload {key}",
            logger=logger,
            max_retries=self._max_retries,
            initial_backoff_sec=self._initial_backoff_sec,
            retryable_exceptions=(ArchivalError,),
            run_in_thread=True,
        )
        logger.info("Uploaded %d readings to %s", len(rows), location)

        await clear(up_to_id=rows[-1]["id"])
        return key

    async def run(self) -> None:
        """Run archival cycles forever, one every ``period_sec``."""
        logger.info(
            "Archiver started (every %ss to %s)",
            self.period_sec,
            self._storage.name,
        )
        while True:
            await asyncio.sleep(self.period_sec)
            try:
                await self.run_cycle()
            except ArchivalError as e:
                logger.error("Archival cycle aborted, store kept: %s", e)
            except StoreError as e:
                logger.error("Store unavailable, retrying next period: %s", e)
            except Exception:
                logger.exception("Unexpected error in archival cycle")


async def archive_once() -> str | None:
    """Run a single archival cycle with the configured storage."""
    if not Path(get_settings().db_path).exists():
        logger.info("Database does not exist, skipping archival")
        return None
    return await Archiver(get_storage()).run_cycle()


def main() -> int:
    """Entry point for the one-shot archival script."""
    configure()
    try:
        asyncio.run(archive_once())
        return 0
    except Exception as e:
        logger.error("Archival failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
