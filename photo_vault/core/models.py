from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")


def normalize_tags(tags: Iterable[str] | str | None) -> list[str]:
    """Lowercase, trim and deduplicate tags; blank entries are dropped.

    A plain string is read as a comma-separated list, never as characters.
    """
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    cleaned = {tag.strip().lower() for tag in tags if tag is not None}
    cleaned.discard("")
    return sorted(cleaned)


class BlobVariant(str, Enum):
    ORIGINAL = "original"
    THUMBNAIL = "thumbnail"
    PREVIEW = "preview"


class SortField(str, Enum):
    CAPTURE_TIMESTAMP = "capture_timestamp"
    CREATED_AT = "created_at"
    ORIGINAL_NAME = "original_name"
    BYTE_SIZE = "byte_size"
    CAMERA_MODEL = "camera_model"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CaptureMetadata(BaseModel):
    """Best-effort metadata read from the image bytes; every field is optional."""

    capture_timestamp: Optional[datetime] = None
    pixel_width: Optional[int] = None
    pixel_height: Optional[int] = None
    camera_model: Optional[str] = None
    iso: Optional[int] = None
    aperture: Optional[str] = None
    shutter_speed: Optional[str] = None
    focal_length: Optional[int] = None


class PhotoRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    original_name: str
    storage_key: str
    byte_size: int
    mime_type: str
    content_fingerprint: str
    capture_timestamp: Optional[datetime] = None
    pixel_width: Optional[int] = None
    pixel_height: Optional[int] = None
    camera_model: Optional[str] = None
    iso: Optional[int] = None
    aperture: Optional[str] = None
    shutter_speed: Optional[str] = None
    focal_length: Optional[int] = None
    tags: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: object) -> list[str]:
        if value is None:
            return []
        return normalize_tags(value)  # type: ignore[arg-type]


class BlobPayload(BaseModel):
    photo_id: str
    variant: BlobVariant
    mime_type: str
    data: bytes


class SearchQuery(BaseModel):
    tags: list[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    camera_model: Optional[str] = None
    filename: Optional[str] = None
    page: int = Field(default=0, ge=0)
    page_size: int = Field(default=50, ge=1)
    sort_field: SortField = SortField.CAPTURE_TIMESTAMP
    sort_dir: SortDirection = SortDirection.DESC

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: object) -> list[str]:
        return normalize_tags(value)  # type: ignore[arg-type]

    @field_validator("camera_model", "filename")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @model_validator(mode="after")
    def _check_date_range(self) -> "SearchQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages
