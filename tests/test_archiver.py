"""Tests for periodic archival to cold storage."""

import asyncio
import json
import sqlite3
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import aiosqlite
import pytest

from soilmon.archiver import Archiver, archive_key, archive_once, main
from soilmon.lib.config.testing import use_settings
from soilmon.lib.db import append_reading, count_readings, snapshot_all
from soilmon.lib.exceptions import ArchivalError, StoreError
from soilmon.lib.reading import Reading
from soilmon.lib.storage import LocalBucket


@pytest.fixture
def bucket(archive_dir):
    return LocalBucket(archive_dir)


@pytest.fixture
def archiver(bucket):
    return Archiver(bucket)


async def store_readings(frozen_time, count=3):
    for i in range(count):
        await append_reading(
            Reading(f"S{i}", 10 * i, frozen_time + timedelta(seconds=i))
        )


def test_archive_key(frozen_time):
    assert archive_key(frozen_time) == "moisture-data-1718452800000.json"
    assert archive_key(frozen_time, "field-a") == "field-a-1718452800000.json"


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_uploads_snapshot_and_clears_store(
        self, archiver, bucket, frozen_time
    ):
        await store_readings(frozen_time)
        expected = await snapshot_all()

        key = await archiver.run_cycle(now=frozen_time)

        assert key == "moisture-data-1718452800000.json"
        assert bucket.list_objects() == [key]
        assert json.loads(bucket.get_object(key)) == expected
        assert await count_readings() == 0

    @pytest.mark.asyncio
    async def test_archived_rows_format(self, archiver, bucket, frozen_time):
        await store_readings(frozen_time, count=1)

        key = await archiver.run_cycle(now=frozen_time)

        [row] = json.loads(bucket.get_object(key))
        assert row["sensor_id"] == "S0"
        assert row["moisture_level"] == 0
        assert row["timestamp"] == "2024-06-15 12:00:00"
        assert isinstance(row["id"], int)

    @pytest.mark.asyncio
    async def test_empty_store_uploads_nothing(self, archiver, bucket):
        assert await archiver.run_cycle() is None
        assert bucket.list_objects() == []

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_store(self, frozen_time, caplog):
        storage = MagicMock()
        storage.put_object.side_effect = ArchivalError("connection reset")
        archiver = Archiver(storage)
        await store_readings(frozen_time)

        with pytest.raises(ArchivalError):
            await archiver.run_cycle(now=frozen_time)

        assert storage.put_object.call_count == 3
        assert await count_readings() == 3
        assert "failed after 3 attempts" in caplog.text

    @pytest.mark.asyncio
    async def test_retry_then_success(self, frozen_time):
        storage = MagicMock()
        storage.put_object.side_effect = [
            ArchivalError("timeout"),
            "mem://moisture-data.json",
        ]
        archiver = Archiver(storage)
        await store_readings(frozen_time)

        key = await archiver.run_cycle(now=frozen_time)

        assert key is not None
        assert storage.put_object.call_count == 2
        assert await count_readings() == 0

    @pytest.mark.asyncio
    async def test_next_upload_is_superset_after_failure(
        self, bucket, frozen_time
    ):
        failing = MagicMock()
        failing.put_object.side_effect = ArchivalError("down")
        await store_readings(frozen_time, count=2)
        first_attempt = await snapshot_all()

        with pytest.raises(ArchivalError):
            await Archiver(failing).run_cycle(now=frozen_time)

        await append_reading(Reading("late", 50, frozen_time))
        key = await Archiver(bucket).run_cycle(
            now=frozen_time + timedelta(hours=1)
        )

        uploaded = json.loads(bucket.get_object(key))
        assert first_attempt == uploaded[:2]
        assert uploaded[2]["sensor_id"] == "late"

    @pytest.mark.asyncio
    async def test_reading_appended_during_upload_is_retained(
        self, db_file, frozen_time
    ):
        def put_object(key, body, content_type="application/json"):
            # Simulates the pipeline appending while the upload is in flight
            conn = sqlite3.connect(str(db_file))
            conn.execute(
                "INSERT INTO moisture_data (sensor_id, moisture_level) "
                "VALUES ('during', 33)"
            )
            conn.commit()
            conn.close()
            return f"mem://{key}"

        storage = MagicMock()
        storage.put_object.side_effect = put_object
        await store_readings(frozen_time, count=2)

        await Archiver(storage).run_cycle(now=frozen_time)

        remaining = await snapshot_all()
        assert [r["sensor_id"] for r in remaining] == ["during"]

    @pytest.mark.asyncio
    async def test_clear_failure_raises_store_error(
        self, archiver, bucket, frozen_time
    ):
        await store_readings(frozen_time, count=1)

        with patch(
            "soilmon.archiver.clear", side_effect=StoreError("locked")
        ):
            with pytest.raises(StoreError):
                await archiver.run_cycle(now=frozen_time)

        assert len(bucket.list_objects()) == 1
        assert await count_readings() == 1


class TestRun:
    @pytest.mark.asyncio
    async def test_loop_survives_failed_cycles(self, caplog):
        archiver = Archiver(MagicMock(), period_sec=0)
        calls = 0

        async def run_cycle():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ArchivalError("down")
            if calls == 2:
                raise StoreError("locked")
            raise asyncio.CancelledError

        with patch.object(archiver, "run_cycle", side_effect=run_cycle):
            with pytest.raises(asyncio.CancelledError):
                await archiver.run()

        assert calls == 3
        assert "Archival cycle aborted" in caplog.text
        assert "Store unavailable, retrying next period" in caplog.text

    @pytest.mark.asyncio
    async def test_loop_survives_database_errors(self, caplog):
        archiver = Archiver(MagicMock(), period_sec=0)

        with patch(
            "soilmon.archiver.snapshot_all",
            side_effect=[
                aiosqlite.OperationalError("database is locked"),
                [],
                asyncio.CancelledError(),
            ],
        ) as mock_snapshot:
            with pytest.raises(asyncio.CancelledError):
                await archiver.run()

        assert mock_snapshot.await_count == 3
        assert "Unexpected error in archival cycle" in caplog.text
        assert "No readings to archive" in caplog.text

    @pytest.mark.asyncio
    async def test_locked_store_is_retried_next_period(self, db_file, caplog):
        archiver = Archiver(MagicMock(), period_sec=0)
        conn = sqlite3.connect(str(db_file))
        conn.execute("DROP TABLE moisture_data")
        conn.commit()
        conn.close()
        calls = 0
        real_cycle = archiver.run_cycle

        async def run_cycle():
            nonlocal calls
            calls += 1
            if calls == 2:
                raise asyncio.CancelledError
            await real_cycle()

        with patch.object(archiver, "run_cycle", side_effect=run_cycle):
            with pytest.raises(asyncio.CancelledError):
                await archiver.run()

        assert calls == 2
        assert "Store unavailable, retrying next period" in caplog.text

    def test_period_from_settings(self):
        assert Archiver(MagicMock()).period_sec == 3600


class TestArchiveOnce:
    @pytest.mark.asyncio
    async def test_uploads_with_configured_storage(
        self, archive_dir, frozen_time
    ):
        await store_readings(frozen_time, count=2)

        key = await archive_once()

        assert key is not None
        assert LocalBucket(archive_dir).list_objects() == [key]

    @pytest.mark.asyncio
    async def test_missing_database_is_skipped(self, tmp_path, caplog):
        use_settings(
            db_path=str(tmp_path / "absent.sqlite3"),
        )

        assert await archive_once() is None
        assert not Path(tmp_path / "absent.sqlite3").exists()
        assert "skipping archival" in caplog.text


class TestMain:
    def test_success(self):
        with patch("soilmon.archiver.configure"):
            assert main() == 0

    def test_failure(self, caplog):
        with (
            patch("soilmon.archiver.configure"),
            patch(
                "soilmon.archiver.archive_once",
                side_effect=ArchivalError("down"),
            ),
        ):
            assert main() == 1
        assert "Archival failed: down" in caplog.text
