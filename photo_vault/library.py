"""Entry point for callers (HTTP handlers, CLI scripts) into the vault core."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.engine import Engine

from photo_vault.core.config import VaultConfig
from photo_vault.core.errors import NotFoundError, ValidationError
from photo_vault.core.models import (
    BlobPayload,
    BlobVariant,
    Page,
    PhotoRecord,
    SearchQuery,
    SortDirection,
    SortField,
)
from photo_vault.index import CatalogIndex, init_db, session_factory
from photo_vault.ingest import IngestCoordinator, IngestResult, is_fingerprint
from photo_vault.storage import DERIVATIVE_MIME_TYPE, ShardedBlobStore

logger = logging.getLogger(__name__)

UploadItem = tuple[bytes, str, Optional[Iterable[str]]]


class PhotoLibrary:
    def __init__(
        self,
        catalog: CatalogIndex,
        blob_store: ShardedBlobStore,
        coordinator: IngestCoordinator,
        *,
        default_page_size: int = 50,
    ) -> None:
        self.catalog = catalog
        self.blob_store = blob_store
        self.coordinator = coordinator
        self.default_page_size = default_page_size

    @classmethod
    def from_config(cls, config: VaultConfig, engine: Engine | None = None) -> "PhotoLibrary":
        engine = init_db(engine if engine is not None else config.database_url)
        catalog = CatalogIndex(session_factory(engine), max_page_size=config.max_page_size)
        blob_store = ShardedBlobStore(config.storage_root, space_multiplier=config.space_multiplier)
        coordinator = IngestCoordinator.from_config(config, catalog, blob_store)
        return cls(catalog, blob_store, coordinator, default_page_size=config.page_size)

    def ingest(
        self,
        data: bytes,
        filename: str,
        tags: Iterable[str] | str | None = None,
        content_type: str | None = None,
    ) -> IngestResult:
        return self.coordinator.run(data, filename, tags=tags, content_type=content_type)

    def ingest_file(self, path: str | Path, tags: Iterable[str] | str | None = None) -> IngestResult:
        path = Path(path)
        return self.ingest(path.read_bytes(), path.name, tags=tags)

    def ingest_many(
        self, uploads: Sequence[UploadItem], *, max_workers: int = 4
    ) -> list[IngestResult]:
        """Ingest several uploads concurrently; results keep the input order."""
        if not uploads:
            return []
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            return list(pool.map(lambda item: self.ingest(item[0], item[1], tags=item[2]), uploads))

    def get_record(self, photo_id: str) -> PhotoRecord:
        record = self.catalog.get(photo_id)
        if record is None:
            raise NotFoundError(f"Photo {photo_id} not found")
        return record

    def get_blob(self, photo_id: str, variant: BlobVariant | str) -> BlobPayload:
        try:
            variant = BlobVariant(variant)
        except ValueError as exc:
            raise ValidationError(f"Invalid image type: {variant}") from exc
        record = self.get_record(photo_id)
        if variant is BlobVariant.ORIGINAL:
            data = self.blob_store.get(variant, record.storage_key)
            mime_type = record.mime_type
        else:
            data = self.blob_store.get(variant, self.blob_store.derivative_key(photo_id))
            mime_type = DERIVATIVE_MIME_TYPE
        return BlobPayload(photo_id=photo_id, variant=variant, mime_type=mime_type, data=data)

    def add_tags(self, photo_id: str, tags: Iterable[str] | str) -> PhotoRecord:
        record = self.catalog.add_tags(photo_id, tags)
        if record is None:
            raise NotFoundError(f"Photo {photo_id} not found")
        return record

    def delete(self, photo_id: str) -> None:
        """Remove the record, then its blobs; blob failures are logged only."""
        record = self.catalog.delete(photo_id)
        if record is None:
            raise NotFoundError(f"Photo {photo_id} not found")
        failures = self.blob_store.delete_photo(record.id, record.storage_key)
        if failures:
            logger.warning(
                "Delete: photo %s removed from catalog but %s blobs remain on disk",
                photo_id,
                ", ".join(failures),
            )
        else:
            logger.info("Delete: removed photo %s", photo_id)

    def check_duplicate(self, fingerprint: str) -> str | None:
        fingerprint = fingerprint.strip().lower()
        if not is_fingerprint(fingerprint):
            raise ValidationError("Fingerprint must be a 64 character SHA-256 hex digest")
        return self.catalog.find_by_fingerprint(fingerprint)

    def search(self, query: SearchQuery | None = None, **criteria: Any) -> Page[PhotoRecord]:
        if query is None:
            query = SearchQuery(**{"page_size": self.default_page_size, **criteria})
        return self.catalog.search(query)

    def list_photos(
        self,
        *,
        page: int = 0,
        page_size: int | None = None,
        sort_field: SortField = SortField.CAPTURE_TIMESTAMP,
        sort_dir: SortDirection = SortDirection.DESC,
    ) -> Page[PhotoRecord]:
        return self.catalog.list_all(
            page=page,
            page_size=page_size or self.default_page_size,
            sort_field=sort_field,
            sort_dir=sort_dir,
        )
