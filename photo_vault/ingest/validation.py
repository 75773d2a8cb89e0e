from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Collection, Optional

from PIL import Image

from photo_vault.core.errors import ValidationError

FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "GIF": ".gif",
    "WEBP": ".webp",
    "BMP": ".bmp",
}

# Non-standard spellings browsers and clients still send.
MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg", "image/x-ms-bmp": "image/bmp"}


@dataclass(frozen=True)
class ValidatedUpload:
    image_format: str
    mime_type: str
    extension: str


def normalize_mime_type(content_type: str) -> str:
    mime = content_type.split(";", 1)[0].strip().lower()
    return MIME_ALIASES.get(mime, mime)


def _detect_format(data: bytes) -> str:
    try:
        with Image.open(BytesIO(data)) as img:
            image_format = img.format
            img.verify()
        # verify() leaves the image unusable; decode a fresh handle to catch truncation.
        with Image.open(BytesIO(data)) as img:
            img.load()
    except Exception as exc:
        raise ValidationError("File is not a valid image or is corrupted") from exc
    if not image_format:
        raise ValidationError("Unable to determine image format")
    return image_format


def validate_upload(
    data: bytes,
    *,
    max_bytes: int,
    allowed_mime_types: Collection[str],
    content_type: Optional[str] = None,
) -> ValidatedUpload:
    """Reject empty, oversized, disallowed or undecodable uploads."""
    if not data:
        raise ValidationError("File is empty")
    if len(data) > max_bytes:
        raise ValidationError(
            f"File size {len(data)} exceeds maximum allowed size of {max_bytes} bytes"
        )
    if content_type is not None and normalize_mime_type(content_type) not in allowed_mime_types:
        raise ValidationError(f"Invalid file type {content_type!r}")

    image_format = _detect_format(data)
    mime_type = Image.MIME.get(image_format)
    extension = FORMAT_EXTENSIONS.get(image_format)
    if mime_type is None or extension is None or mime_type not in allowed_mime_types:
        raise ValidationError(f"Unsupported image format {image_format}")
    return ValidatedUpload(image_format=image_format, mime_type=mime_type, extension=extension)
