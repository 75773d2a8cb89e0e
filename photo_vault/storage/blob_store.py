"""Filesystem blob store with year/month sharding for originals.

Layout under ``root``::

    original/{year}/{month}/{id}{ext}
    thumbnail/{id}.jpg
    preview/{id}.jpg

Originals are sharded so no directory holds more than about a month of
uploads. Derivatives stay flat because their names are fixed-size ids.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path, PurePosixPath

from photo_vault.core.errors import NotFoundError, StorageError
from photo_vault.core.models import BlobVariant

logger = logging.getLogger(__name__)

DERIVATIVE_EXTENSION = ".jpg"
DERIVATIVE_MIME_TYPE = "image/jpeg"


class ShardedBlobStore:
    def __init__(self, root: str | Path, *, space_multiplier: int = 3) -> None:
        self.root = Path(root)
        self.space_multiplier = space_multiplier
        try:
            for variant in BlobVariant:
                self.namespace(variant).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to initialize storage under {self.root}: {exc}") from exc
        logger.info("Storage: blob root %s", self.root.resolve())

    def namespace(self, variant: BlobVariant) -> Path:
        return self.root / variant.value

    @staticmethod
    def original_key(photo_id: str, captured_at: datetime, extension: str) -> str:
        ext = extension if extension.startswith(".") else f".{extension}"
        return f"{captured_at.year:04d}/{captured_at.month:02d}/{photo_id}{ext.lower()}"

    @staticmethod
    def derivative_key(photo_id: str) -> str:
        return f"{photo_id}{DERIVATIVE_EXTENSION}"

    def path_for(self, variant: BlobVariant, key: str) -> Path:
        """Resolve a key inside its namespace, rejecting anything that escapes it."""
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or any(part in ("", ".", "..") for part in relative.parts):
            raise StorageError(f"Invalid blob key {key!r}")
        if variant is not BlobVariant.ORIGINAL and len(relative.parts) != 1:
            raise StorageError(f"Derivative keys are flat, got {key!r}")
        return self.namespace(variant).joinpath(*relative.parts)

    def free_bytes(self) -> int:
        return shutil.disk_usage(self.root).free

    def ensure_capacity(self, size: int) -> None:
        """Fail unless free space covers the original plus both derivatives."""
        required = size * self.space_multiplier
        try:
            available = self.free_bytes()
        except OSError as exc:
            logger.warning("Storage: unable to check free space under %s: %s", self.root, exc)
            return
        if available < required:
            raise StorageError(
                f"Insufficient disk space. Required: {required} bytes, Available: {available} bytes"
            )

    def put_original(
        self, photo_id: str, captured_at: datetime, extension: str, data: bytes
    ) -> str:
        self.ensure_capacity(len(data))
        key = self.original_key(photo_id, captured_at, extension)
        self.put(BlobVariant.ORIGINAL, key, data)
        return key

    def put(self, variant: BlobVariant, key: str, data: bytes) -> Path:
        target = self.path_for(variant, key)
        tmp_name: str | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".", suffix=".part")
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to store {variant.value} {key}: {exc}") from exc
        logger.debug("Storage: wrote %s %s (%d bytes)", variant.value, key, len(data))
        return target

    def get(self, variant: BlobVariant, key: str) -> bytes:
        path = self.path_for(variant, key)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"No {variant.value} blob at {key}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {variant.value} {key}: {exc}") from exc

    def exists(self, variant: BlobVariant, key: str) -> bool:
        return self.path_for(variant, key).is_file()

    def delete(self, variant: BlobVariant, key: str) -> bool:
        """Remove a blob; returns False when it was already absent."""
        path = self.path_for(variant, key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete {variant.value} {key}: {exc}") from exc
        logger.debug("Storage: deleted %s %s", variant.value, key)
        return True

    def delete_quietly(self, variant: BlobVariant, key: str) -> bool:
        """Best-effort delete for cleanup paths; failures are logged, never raised."""
        try:
            return self.delete(variant, key)
        except StorageError:
            logger.error("Storage: cleanup failed for %s %s", variant.value, key, exc_info=True)
            return False

    def delete_photo(self, photo_id: str, storage_key: str) -> list[str]:
        """Delete the original and both derivatives; returns the variants that failed."""
        failures: list[str] = []
        for variant in BlobVariant:
            key = storage_key if variant is BlobVariant.ORIGINAL else self.derivative_key(photo_id)
            try:
                self.delete(variant, key)
            except StorageError:
                logger.error(
                    "Storage: failed to delete %s for photo %s", variant.value, photo_id, exc_info=True
                )
                failures.append(variant.value)
        return failures
