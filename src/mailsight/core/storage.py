from __future__ import annotations

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from mailsight.core.config import settings
from mailsight.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int


class ObjectStorage:
    """Blob store for uploaded attachments, addressed by slash-separated keys."""

    backend = "base"

    def put(self, *, key: str, body: bytes) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def exists(self, *, key: str) -> bool:  # pragma: no cover
        raise NotImplementedError

    def check(self) -> dict[str, Any]:  # pragma: no cover
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    backend = "local"

    def __init__(self, root: Path):
        self.root = root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            log_exception(
                logger, "storage.put.failure", backend=self.backend, storage_key=key
            )
            raise StorageError(f"Could not write {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            log_event(logger, "storage.get.missing", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}")
        return path.read_bytes()

    def delete(self, *, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        log_event(logger, "storage.delete", backend=self.backend, storage_key=key)

    def exists(self, *, key: str) -> bool:
        return self._path(key).is_file()

    def check(self) -> dict[str, Any]:
        key = f"diagnostics/healthz-{time.time_ns()}.txt"
        self.put(key=key, body=b"ok")
        ok = self.get(key=key) == b"ok"
        self.delete(key=key)
        return {"ok": ok, "root": str(self.root)}


class S3ObjectStorage(ObjectStorage):
    backend = "s3"

    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        config = Config(
            retries={"max_attempts": 4, "mode": "adaptive"},
            connect_timeout=10,
            read_timeout=30,
        )
        self._client = session.client(
            "s3", endpoint_url=settings.s3_endpoint_url or None, config=config
        )
        self.bucket = settings.s3_bucket

    def put(self, *, key: str, body: bytes) -> StoredObject:
        start = time.monotonic()
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=key, Body=body, ContentType="application/pdf"
            )
        except (BotoCoreError, ClientError) as e:
            log_exception(
                logger, "storage.put.failure", backend=self.backend, storage_key=key
            )
            raise StorageError(f"Could not write {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except (BotoCoreError, ClientError) as e:
            log_exception(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}") from e

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not delete {key}") from e
        log_event(logger, "storage.delete", backend=self.backend, storage_key=key)

    def exists(self, *, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if (e.response.get("Error") or {}).get("Code") in _MISSING_CODES:
                return False
            raise StorageError(f"Could not stat {key}") from e
        return True

    def check(self) -> dict[str, Any]:
        self._client.head_bucket(Bucket=self.bucket)
        return {"ok": True, "bucket": self.bucket}


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is None:
        if settings.storage_backend == "s3":
            _storage = S3ObjectStorage()
        else:
            root = settings.local_storage_path
            if not root.is_absolute():
                root = Path(os.getcwd()) / root
            _storage = LocalObjectStorage(root)
    return _storage


def diagnose_storage() -> dict[str, Any]:
    """Connectivity check for the configured backend. Never returns credentials."""
    start = time.monotonic()
    result: dict[str, Any] = {"backend": settings.storage_backend}
    try:
        result.update(get_storage().check())
    except Exception as e:  # noqa: BLE001
        result.update(ok=False, error_type=type(e).__name__, error=str(e))
    result["duration_ms"] = monotonic_ms(start)
    return result
