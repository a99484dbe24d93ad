"""Cold storage backends for archived readings.

Archives are written as named JSON blobs, either to an AWS S3 bucket or to
a directory on local disk laid out like a bucket (key = relative path).
Both backends are synchronous; callers run them in a worker thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, override

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from soilmon.lib.config import ArchiveBackend, get_settings
from soilmon.lib.exceptions import ArchivalError
from soilmon.logging import get_logger

logger = get_logger("lib.storage")


class ColdStorage(ABC):
    """A bucket accepting named blob uploads."""

    name: str

    @abstractmethod
    def put_object(
        self, key: str, body: bytes, content_type: str = "application/json"
    ) -> str:
        """Upload a blob under ``key``.

        Returns:
            The location of the stored object.

        Raises:
            ArchivalError: If the upload was not confirmed.
        """


class S3Bucket(ColdStorage):
    """AWS S3 bucket backend."""

    def __init__(self, name: str, client: Any) -> None:
        self.name = name
        self._client = client

    @classmethod
    def from_settings(cls) -> S3Bucket:
        """Create an S3 client from the configured credentials."""
        s3 = get_settings().archive.s3
        kwargs: dict[str, Any] = {}
        if s3.region:
            kwargs["region_name"] = s3.region
        # Fall back to boto3's credential chain when no explicit keys are set
        if s3.access_key_id:
            kwargs["aws_access_key_id"] = s3.access_key_id
            kwargs["aws_secret_access_key"] = (
                s3.secret_access_key.get_secret_value()
            )
        return cls(s3.bucket, boto3.client("s3", **kwargs))

    @override
    def put_object(
        self, key: str, body: bytes, content_type: str = "application/json"
    ) -> str:
        try:
            self._client.put_object(
                Bucket=self.name,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise ArchivalError(f"S3 upload of {key} failed: {e}") from e
        return f"s3://{self.name}/{key}"


class LocalBucket(ColdStorage):
    """Directory on local disk used as a bucket."""

    def __init__(self, root_path: Path, name: str = "local") -> None:
        self.name = name
        self.root_path = root_path
        self._lock = Lock()

    @override
    def put_object(
        self, key: str, body: bytes, content_type: str = "application/json"
    ) -> str:
        path = self.root_path / key
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(body)
        except OSError as e:
            raise ArchivalError(f"Writing {path} failed: {e}") from e
        return str(path)

    def get_object(self, key: str) -> bytes:
        """Read back a stored blob."""
        path = self.root_path / key
        if not path.exists():
            raise KeyError(
                f"Object with key {key!r} not found in bucket {self.name!r}."
            )
        return path.read_bytes()

    def list_objects(self) -> list[str]:
        """List every stored key, sorted."""
        if not self.root_path.exists():
            return []
        return sorted(
            p.relative_to(self.root_path).as_posix()
            for p in self.root_path.rglob("*")
            if p.is_file()
        )


def get_storage() -> ColdStorage:
    """Factory function to get the configured cold storage backend."""
    cfg = get_settings().archive
    if cfg.backend == ArchiveBackend.LOCAL:
        return LocalBucket(Path(cfg.local_path))
    return S3Bucket.from_settings()
