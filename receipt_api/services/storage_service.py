"""Storage service abstraction.

Supports two backends selected via ``settings.STORAGE_BACKEND``:

1. **filesystem** (default): Stores files under ``settings.STORAGE_DIRECTORY``
   on disk. The directory is also served read-only at ``/uploads``.
2. **minio**: Uses the MinIO S3-compatible object storage.

All saved objects return a *key* (``<epoch-ms>-<hex>-<safe name>``) that is
persisted on the ``receipt_file`` and ``receipts`` rows. Retrieval resolves
the key according to the active backend.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from io import BytesIO
from pathlib import Path

from minio import Minio
from minio.error import S3Error

from receipt_api.core.config import settings, storage_root
from receipt_api.core.errors import AppError
from receipt_api.models.enums import StorageBackend
from receipt_api.utils.sanitization import sanitize_filename

logger = logging.getLogger(__name__)


class StorageService:
    """Unified storage service (filesystem or MinIO)."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self.backend = StorageBackend((settings.STORAGE_BACKEND or "filesystem").lower())
        if self.backend == StorageBackend.MINIO:
            self._client = Minio(
                settings.MINIO_ENDPOINT,
                access_key=settings.MINIO_ACCESS_KEY,
                secret_key=settings.MINIO_SECRET_KEY,
                secure=bool(settings.MINIO_USE_SSL),
            )
            self.bucket = settings.MINIO_BUCKET_NAME
            if not self._client.bucket_exists(self.bucket):
                self._client.make_bucket(self.bucket)
        else:
            self.base_dir = Path(base_dir) if base_dir else storage_root()
            self.base_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def build_key(filename: str | None) -> str:
        """Generate a unique storage key for an uploaded file name."""
        timestamp = int(time.time() * 1000)
        return f"{timestamp}-{uuid.uuid4().hex[:8]}-{sanitize_filename(filename)}"

    def _path_for(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        # Keys never contain separators; refuse anything escaping the base dir
        if path.parent != self.base_dir.resolve():
            raise AppError.file_error(f"Invalid storage key: {key}")
        return path

    async def save(self, data: bytes, filename: str | None, content_type: str | None = None) -> str:
        """Persist ``data`` and return its storage key."""
        if not data:
            raise AppError.file_error("Empty upload payload")
        key = self.build_key(filename)
        await asyncio.to_thread(self._write, key, data, content_type)
        return key

    def _write(self, key: str, data: bytes, content_type: str | None) -> None:
        if self.backend == StorageBackend.MINIO:
            try:
                self._client.put_object(
                    self.bucket,
                    key,
                    BytesIO(data),
                    len(data),
                    content_type=content_type or "application/octet-stream",
                )
            except S3Error as exc:
                raise AppError.file_error(f"Failed to save file: {exc}") from exc
            logger.info("[storage] MinIO object put: %s size=%d", key, len(data))
            return

        path = self._path_for(key)
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise AppError.file_error(f"Failed to save file: {exc}") from exc
        logger.info("[storage] FS saved: %s bytes=%d", path, len(data))

    async def read(self, key: str) -> bytes:
        """Load a stored file without blocking the event loop."""
        return await asyncio.to_thread(self.load, key)

    def load(self, key: str) -> bytes:
        """Load raw bytes for a stored file by key."""
        if self.backend == StorageBackend.MINIO:
            try:
                resp = self._client.get_object(self.bucket, key)
            except S3Error as exc:
                raise AppError.file_error(f"File not found at path: {key}") from exc
            try:
                return resp.read()
            finally:
                resp.close()
                resp.release_conn()

        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise AppError.file_error(f"File not found at path: {key}") from exc

    def exists(self, key: str) -> bool:
        if self.backend == StorageBackend.MINIO:
            try:
                self._client.stat_object(self.bucket, key)
            except S3Error:
                return False
            return True
        return self._path_for(key).exists()

    def delete(self, key: str) -> None:
        """Remove a stored file; a missing file is not an error."""
        if self.backend == StorageBackend.MINIO:
            try:
                self._client.remove_object(self.bucket, key)
            except S3Error as exc:
                raise AppError.file_error("Failed to delete file") from exc
            return
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise AppError.file_error("Failed to delete file") from exc
        logger.info("[storage] FS deleted: %s", key)

    async def discard(self, key: str) -> bool:
        """Delete a stored file after its rows are gone; failures are only logged."""
        try:
            await asyncio.to_thread(self.delete, key)
        except AppError as exc:
            logger.warning("[storage] could not delete %s: %s", key, exc.message)
            return False
        return True


def get_storage() -> StorageService:
    """Dependency returning a storage service for the configured backend."""
    return StorageService()
