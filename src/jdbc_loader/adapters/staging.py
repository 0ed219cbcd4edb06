from __future__ import annotations

import asyncio
import io
import logging
import shutil
from pathlib import Path

from minio import Minio
from minio.error import S3Error

from src.config import Settings, get_settings
from src.jdbc_loader.core.constants import S3_STAGING_PREFIX
from src.jdbc_loader.ports.staging import StagingStorage

logger = logging.getLogger("jdbc_loader")


def _clean_key(key: str) -> str:
    k = (key or "").strip().strip("/")
    if not k or ".." in k.split("/"):
        raise ValueError(f"Invalid staging key: {key!r}")
    return k


class LocalStagingStorage:
    """Staging на локальной/примонтированной файловой системе."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.location = str(self.root)

    def _path(self, key: str) -> Path:
        return self.root / _clean_key(key)

    def _write_new_sync(self, key: str, data: bytes) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # "x": refuse to overwrite an existing object
        with open(path, "xb") as f:
            f.write(data)
        return str(path)

    def _delete_prefix_sync(self, prefix: str) -> int:
        path = self._path(prefix)
        if not path.exists():
            return 0
        if path.is_file():
            path.unlink()
            return 1
        deleted = sum(1 for p in path.rglob("*") if p.is_file())
        shutil.rmtree(path)
        return deleted

    async def write_new(self, key: str, data: bytes) -> str:
        return await asyncio.to_thread(self._write_new_sync, key, data)

    async def read(self, key: str) -> bytes:
        return await asyncio.to_thread(self._path(key).read_bytes)

    async def delete_prefix(self, prefix: str) -> int:
        return await asyncio.to_thread(self._delete_prefix_sync, prefix)


class MinioStagingStorage:
    """Staging в MinIO / S3-совместимом хранилище (s3://bucket/prefix)."""

    def __init__(self, location: str, settings: Settings | None = None, client: Minio | None = None) -> None:
        if not location.startswith(S3_STAGING_PREFIX):
            raise ValueError(f"MinIO staging expects s3://bucket/prefix, got {location!r}")
        bucket, _, base = location.removeprefix(S3_STAGING_PREFIX).partition("/")
        if not bucket:
            raise ValueError(f"Staging location {location!r} has no bucket")

        s = settings or get_settings()
        self.client = client or Minio(
            endpoint=s.minio_endpoint,
            access_key=s.minio_access_key,
            secret_key=s.minio_secret_key,
            secure=s.minio_secure,
        )
        self.bucket = bucket
        self.base = base.strip("/")
        self.location = location.rstrip("/")

    def _object_name(self, key: str) -> str:
        k = _clean_key(key)
        return f"{self.base}/{k}" if self.base else k

    def _exists(self, object_name: str) -> bool:
        try:
            self.client.stat_object(self.bucket, object_name)
            return True
        except S3Error as exc:
            if exc.code in ("NoSuchKey", "NoSuchObject", "ResourceNotFound"):
                return False
            raise

    def _write_new_sync(self, key: str, data: bytes) -> str:
        object_name = self._object_name(key)
        if self._exists(object_name):
            raise FileExistsError(f"s3://{self.bucket}/{object_name} already exists")
        self.client.put_object(
            bucket_name=self.bucket,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type="application/x-ndjson",
        )
        return f"s3://{self.bucket}/{object_name}"

    def _read_sync(self, key: str) -> bytes:
        response = self.client.get_object(self.bucket, self._object_name(key))
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def _delete_prefix_sync(self, prefix: str) -> int:
        object_prefix = self._object_name(prefix) + "/"
        names = [
            obj.object_name
            for obj in self.client.list_objects(self.bucket, prefix=object_prefix, recursive=True)
        ]
        for name in names:
            self.client.remove_object(self.bucket, name)
        logger.info("Deleted %d staging object(s) under s3://%s/%s", len(names), self.bucket, object_prefix)
        return len(names)

    async def write_new(self, key: str, data: bytes) -> str:
        return await asyncio.to_thread(self._write_new_sync, key, data)

    async def read(self, key: str) -> bytes:
        return await asyncio.to_thread(self._read_sync, key)

    async def delete_prefix(self, prefix: str) -> int:
        return await asyncio.to_thread(self._delete_prefix_sync, prefix)


def resolve_staging(staging_dir: str, settings: Settings | None = None) -> StagingStorage:
    if staging_dir.startswith(S3_STAGING_PREFIX):
        return MinioStagingStorage(staging_dir, settings=settings)
    return LocalStagingStorage(staging_dir)
