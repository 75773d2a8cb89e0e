from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from photo_vault.core.models import PhotoRecord

from .schema import PhotoRow, PhotoTagRow


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset on read; audit columns are always written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_photo_record(row: PhotoRow) -> PhotoRecord:
    return PhotoRecord(
        id=row.id,
        original_name=row.original_name,
        storage_key=row.storage_key,
        byte_size=row.byte_size,
        mime_type=row.mime_type,
        content_fingerprint=row.content_fingerprint,
        capture_timestamp=row.capture_timestamp,
        pixel_width=row.pixel_width,
        pixel_height=row.pixel_height,
        camera_model=row.camera_model,
        iso=row.iso,
        aperture=row.aperture,
        shutter_speed=row.shutter_speed,
        focal_length=row.focal_length,
        tags=[tag_row.tag for tag_row in row.tags],
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def build_photo_row(record: PhotoRecord) -> PhotoRow:
    row = PhotoRow(
        id=record.id,
        original_name=record.original_name,
        storage_key=record.storage_key,
        byte_size=record.byte_size,
        mime_type=record.mime_type,
        content_fingerprint=record.content_fingerprint,
        capture_timestamp=record.capture_timestamp,
        pixel_width=record.pixel_width,
        pixel_height=record.pixel_height,
        camera_model=record.camera_model,
        iso=record.iso,
        aperture=record.aperture,
        shutter_speed=record.shutter_speed,
        focal_length=record.focal_length,
    )
    if record.created_at is not None:
        row.created_at = record.created_at
    if record.updated_at is not None:
        row.updated_at = record.updated_at
    row.tags = [PhotoTagRow(tag=tag) for tag in record.tags]
    return row
