from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from photo_vault.core.errors import DuplicateError, StorageError
from photo_vault.core.models import (
    Page,
    PhotoRecord,
    SearchQuery,
    SortDirection,
    SortField,
    normalize_tags,
)

from .records import build_photo_record, build_photo_row
from .schema import PhotoRow, PhotoTagRow

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    SortField.CAPTURE_TIMESTAMP: PhotoRow.capture_timestamp,
    SortField.CREATED_AT: PhotoRow.created_at,
    SortField.ORIGINAL_NAME: PhotoRow.original_name,
    SortField.BYTE_SIZE: PhotoRow.byte_size,
    SortField.CAMERA_MODEL: PhotoRow.camera_model,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(f"Catalog {action} failed: {exc}") from exc


def build_search_conditions(query: SearchQuery) -> list[ColumnElement[bool]]:
    """Translate a query into WHERE clauses; each supplied dimension is AND-ed."""
    conditions: list[ColumnElement[bool]] = []
    if query.tags:
        # Any matching tag is enough (OR within the tag dimension).
        conditions.append(
            select(PhotoTagRow.photo_id)
            .where(PhotoTagRow.photo_id == PhotoRow.id, PhotoTagRow.tag.in_(query.tags))
            .exists()
        )
    if query.start_date is not None:
        conditions.append(PhotoRow.capture_timestamp >= query.start_date)
    if query.end_date is not None:
        conditions.append(PhotoRow.capture_timestamp <= query.end_date)
    if query.camera_model:
        conditions.append(PhotoRow.camera_model.ilike(_like_pattern(query.camera_model), escape="\\"))
    if query.filename:
        conditions.append(PhotoRow.original_name.ilike(_like_pattern(query.filename), escape="\\"))
    return conditions


def build_order_by(sort_field: SortField, sort_dir: SortDirection) -> list[ColumnElement]:
    column = _SORT_COLUMNS[sort_field]
    if sort_dir is SortDirection.ASC:
        return [column.asc().nulls_last(), PhotoRow.id.asc()]
    return [column.desc().nulls_last(), PhotoRow.id.desc()]


class CatalogIndex:
    """Photo record store with a unique fingerprint index and composite search.

    Writes are serialized in-process: the deployment model is a single writer,
    and SQLite cannot upgrade two overlapping write transactions safely.
    """

    def __init__(self, sessions: sessionmaker[Session], *, max_page_size: int = 200) -> None:
        self._sessions = sessions
        self.max_page_size = max_page_size
        self._write_lock = threading.RLock()

    def get(self, photo_id: str) -> PhotoRecord | None:
        with _storage_errors("lookup"), self._sessions() as session:
            row = session.get(PhotoRow, photo_id)
            return build_photo_record(row) if row is not None else None

    def find_by_fingerprint(self, fingerprint: str) -> str | None:
        """Return the id holding this fingerprint; served by the unique index."""
        with _storage_errors("fingerprint lookup"), self._sessions() as session:
            return session.scalar(
                select(PhotoRow.id).where(PhotoRow.content_fingerprint == fingerprint)
            )

    def count(self) -> int:
        with _storage_errors("count"), self._sessions() as session:
            return int(session.scalar(select(func.count()).select_from(PhotoRow)) or 0)

    @contextmanager
    def pending(self, record: PhotoRecord) -> Iterator[PhotoRecord]:
        """Insert a record inside an open transaction.

        The row is flushed on entry, so uniqueness is enforced immediately,
        and committed only when the block exits cleanly. Any exception in the
        block rolls the insert back.
        """
        now = _utcnow()
        record = record.model_copy(
            update={"created_at": record.created_at or now, "updated_at": record.updated_at or now}
        )
        self._write_lock.acquire()
        session = self._sessions()
        try:
            row = build_photo_row(record)
            session.add(row)
            try:
                session.flush()
            except IntegrityError as exc:
                session.rollback()
                existing_id = self.find_by_fingerprint(record.content_fingerprint)
                if existing_id is not None:
                    raise DuplicateError(existing_id) from exc
                raise StorageError(f"Catalog rejected photo {record.id}: {exc.orig}") from exc
            except SQLAlchemyError as exc:
                raise StorageError(f"Catalog insert failed for {record.id}: {exc}") from exc
            yield build_photo_record(row)
            try:
                session.commit()
            except SQLAlchemyError as exc:
                raise StorageError(f"Catalog commit failed for {record.id}: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
            self._write_lock.release()

    def create(self, record: PhotoRecord) -> PhotoRecord:
        with self.pending(record) as stored:
            return stored

    def add_tags(self, photo_id: str, tags: Iterable[str] | str) -> PhotoRecord | None:
        with self._write_lock, _storage_errors("tag update"), self._sessions() as session:
            row = session.get(PhotoRow, photo_id)
            if row is None:
                return None
            existing = {tag_row.tag for tag_row in row.tags}
            added = [tag for tag in normalize_tags(tags) if tag not in existing]
            if added:
                row.tags.extend(PhotoTagRow(tag=tag) for tag in added)
                row.updated_at = _utcnow()
                session.commit()
                logger.info("Catalog: added tags %s to photo %s", added, photo_id)
            return build_photo_record(row)

    def delete(self, photo_id: str) -> PhotoRecord | None:
        """Remove a record and its tags; returns the removed snapshot."""
        with self._write_lock, _storage_errors("delete"), self._sessions() as session:
            row = session.get(PhotoRow, photo_id)
            if row is None:
                return None
            snapshot = build_photo_record(row)
            session.delete(row)
            session.commit()
            return snapshot

    def search(self, query: SearchQuery) -> Page[PhotoRecord]:
        page_size = min(query.page_size, self.max_page_size)
        conditions = build_search_conditions(query)

        count_stmt = select(func.count()).select_from(PhotoRow).where(*conditions)
        stmt = (
            select(PhotoRow)
            .where(*conditions)
            .order_by(*build_order_by(query.sort_field, query.sort_dir))
            .offset(query.page * page_size)
            .limit(page_size)
        )

        with _storage_errors("search"), self._sessions() as session:
            total = int(session.scalar(count_stmt) or 0)
            rows = session.scalars(stmt).all() if total else []
            items = [build_photo_record(row) for row in rows]
        return Page[PhotoRecord](items=items, total=total, page=query.page, page_size=page_size)

    def list_all(
        self,
        *,
        page: int = 0,
        page_size: int = 50,
        sort_field: SortField = SortField.CAPTURE_TIMESTAMP,
        sort_dir: SortDirection = SortDirection.DESC,
    ) -> Page[PhotoRecord]:
        return self.search(
            SearchQuery(page=page, page_size=page_size, sort_field=sort_field, sort_dir=sort_dir)
        )
