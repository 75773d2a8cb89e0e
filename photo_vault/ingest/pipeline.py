from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Collection, Iterable, Optional
from uuid import uuid4

from photo_vault.core.config import DEFAULT_ALLOWED_MIME_TYPES, DEFAULT_MAX_UPLOAD_BYTES, VaultConfig
from photo_vault.core.errors import DuplicateError, PhotoVaultError, ProcessingError
from photo_vault.core.models import BlobVariant, PhotoRecord, normalize_tags
from photo_vault.index.catalog import CatalogIndex
from photo_vault.storage.blob_store import ShardedBlobStore

from .exif_reader import read_metadata
from .hasher import compute_fingerprint
from .thumbnailer import DerivativeGenerator
from .validation import validate_upload

logger = logging.getLogger(__name__)

DERIVATIVE_VARIANTS = (BlobVariant.THUMBNAIL, BlobVariant.PREVIEW)


class IngestStage(str, Enum):
    VALIDATING = "validating"
    HASHING = "hashing"
    DUPLICATE_CHECK = "duplicate_check"
    EXTRACTING_METADATA = "extracting_metadata"
    STORING_ORIGINAL = "storing_original"
    GENERATING_DERIVATIVES = "generating_derivatives"
    PERSISTING_RECORD = "persisting_record"
    STORING_DERIVATIVES = "storing_derivatives"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


# Failures in these stages have side effects that must be undone.
_ROLLBACK_STAGES = {
    IngestStage.GENERATING_DERIVATIVES,
    IngestStage.PERSISTING_RECORD,
    IngestStage.STORING_DERIVATIVES,
}


class IngestStatus(str, Enum):
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one upload: a committed record, a duplicate, or an error."""

    status: IngestStatus
    stage: IngestStage
    record: Optional[PhotoRecord] = None
    duplicate_of: Optional[str] = None
    error: Optional[PhotoVaultError] = None
    failed_stage: Optional[IngestStage] = None

    @classmethod
    def committed(cls, record: PhotoRecord) -> "IngestResult":
        return cls(status=IngestStatus.COMMITTED, stage=IngestStage.COMMITTED, record=record)

    @classmethod
    def duplicate(cls, existing_id: str, stage: IngestStage) -> "IngestResult":
        return cls(status=IngestStatus.DUPLICATE, stage=stage, duplicate_of=existing_id)

    @classmethod
    def failed(cls, error: PhotoVaultError, stage: IngestStage) -> "IngestResult":
        final = IngestStage.ROLLED_BACK if stage in _ROLLBACK_STAGES else stage
        return cls(status=IngestStatus.FAILED, stage=final, error=error, failed_stage=stage)

    @property
    def ok(self) -> bool:
        return self.status is IngestStatus.COMMITTED

    def unwrap(self) -> PhotoRecord:
        """Return the record, or raise the duplicate/error this result carries."""
        if self.record is not None:
            return self.record
        if self.duplicate_of is not None:
            raise DuplicateError(self.duplicate_of)
        assert self.error is not None
        raise self.error


def _display_name(filename: Optional[str]) -> str:
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "upload"


class IngestCoordinator:
    """Run one upload through validation, dedup, storage and derivative generation.

    Derivatives are encoded right after the original is stored, before the
    catalog write lock is taken. The record is then inserted inside an open
    catalog transaction and committed only after both derivatives are on disk.
    Every blob is registered for cleanup as soon as it is written; the cleanup
    is released once the commit succeeds.
    """

    def __init__(
        self,
        catalog: CatalogIndex,
        blob_store: ShardedBlobStore,
        derivatives: DerivativeGenerator | None = None,
        *,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        allowed_mime_types: Collection[str] = DEFAULT_ALLOWED_MIME_TYPES,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self.catalog = catalog
        self.blob_store = blob_store
        self.derivatives = derivatives or DerivativeGenerator()
        self.max_upload_bytes = max_upload_bytes
        self.allowed_mime_types = frozenset(allowed_mime_types)
        self._clock = clock
        self._id_factory = id_factory

    @classmethod
    def from_config(
        cls, config: VaultConfig, catalog: CatalogIndex, blob_store: ShardedBlobStore
    ) -> "IngestCoordinator":
        return cls(
            catalog,
            blob_store,
            DerivativeGenerator(
                thumbnail_max=config.thumbnail_size,
                preview_max=config.preview_size,
                quality=config.jpeg_quality,
            ),
            max_upload_bytes=config.max_upload_bytes,
            allowed_mime_types=config.allowed_mime_types,
        )

    def _discard(self, variant: BlobVariant, key: str) -> None:
        if self.blob_store.delete_quietly(variant, key):
            logger.info("Ingest: rollback removed %s %s", variant.value, key)

    def run(
        self,
        data: bytes,
        filename: Optional[str],
        tags: Iterable[str] | str | None = None,
        content_type: Optional[str] = None,
    ) -> IngestResult:
        name = _display_name(filename)
        stage = IngestStage.VALIDATING
        logger.info("Ingest: received %s (%d bytes)", name, len(data or b""))
        try:
            upload = validate_upload(
                data,
                max_bytes=self.max_upload_bytes,
                allowed_mime_types=self.allowed_mime_types,
                content_type=content_type,
            )

            stage = IngestStage.HASHING
            fingerprint = compute_fingerprint(data)

            stage = IngestStage.DUPLICATE_CHECK
            existing_id = self.catalog.find_by_fingerprint(fingerprint)
            if existing_id is not None:
                logger.info("Ingest: %s duplicates photo %s", name, existing_id)
                return IngestResult.duplicate(existing_id, stage)

            stage = IngestStage.EXTRACTING_METADATA
            metadata = read_metadata(data)
            captured_at = metadata.capture_timestamp or self._clock()
            photo_id = self._id_factory()

            with ExitStack() as cleanup:
                stage = IngestStage.STORING_ORIGINAL
                storage_key = self.blob_store.put_original(
                    photo_id, captured_at, upload.extension, data
                )
                cleanup.callback(self._discard, BlobVariant.ORIGINAL, storage_key)

                # Encoding is the slow part; keep it outside the catalog write lock.
                stage = IngestStage.GENERATING_DERIVATIVES
                derivatives = {
                    variant: self.derivatives.build(data, variant) for variant in DERIVATIVE_VARIANTS
                }

                stage = IngestStage.PERSISTING_RECORD
                record = PhotoRecord(
                    id=photo_id,
                    original_name=name,
                    storage_key=storage_key,
                    byte_size=len(data),
                    mime_type=upload.mime_type,
                    content_fingerprint=fingerprint,
                    capture_timestamp=captured_at,
                    pixel_width=metadata.pixel_width,
                    pixel_height=metadata.pixel_height,
                    camera_model=metadata.camera_model,
                    iso=metadata.iso,
                    aperture=metadata.aperture,
                    shutter_speed=metadata.shutter_speed,
                    focal_length=metadata.focal_length,
                    tags=normalize_tags(tags),
                )
                with self.catalog.pending(record) as persisted:
                    stage = IngestStage.STORING_DERIVATIVES
                    derivative_key = self.blob_store.derivative_key(photo_id)
                    for variant, payload in derivatives.items():
                        cleanup.callback(self._discard, variant, derivative_key)
                        self.blob_store.put(variant, derivative_key, payload)
                cleanup.pop_all()
        except DuplicateError as exc:
            # Lost a race on the fingerprint index; blobs were already discarded.
            logger.info("Ingest: %s duplicates photo %s (detected at %s)", name, exc.existing_id, stage.value)
            return IngestResult.duplicate(exc.existing_id, stage)
        except PhotoVaultError as exc:
            log = logger.warning if stage in _ROLLBACK_STAGES else logger.info
            log("Ingest: %s failed during %s: %s", name, stage.value, exc)
            return IngestResult.failed(exc, stage)
        except Exception as exc:
            logger.exception("Ingest: unexpected failure for %s during %s", name, stage.value)
            error = ProcessingError(f"Failed to process photo: {exc}")
            error.__cause__ = exc
            return IngestResult.failed(error, stage)

        logger.info("Ingest: stored %s as photo %s (%s)", name, persisted.id, persisted.storage_key)
        return IngestResult.committed(persisted)
