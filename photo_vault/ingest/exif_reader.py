from __future__ import annotations

import logging
import numbers
import re
from datetime import datetime
from io import BytesIO
from typing import Callable, Optional

from PIL import Image

from photo_vault.core.models import CaptureMetadata

logger = logging.getLogger(__name__)

EXIF_IFD_TAG = 34665  # pointer to the Exif sub-IFD
DATETIME_ORIGINAL_TAG = 36867
MAKE_TAG = 271
MODEL_TAG = 272
EXPOSURE_TIME_TAG = 33434
FNUMBER_TAG = 33437
ISO_TAG = 34855  # PhotographicSensitivity
FOCAL_LENGTH_TAG = 37386
EXIF_IMAGE_WIDTH_TAG = 40962
EXIF_IMAGE_HEIGHT_TAG = 40963

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

_LEADING_NUMBER = re.compile(r"^\s*([-+]?\d+(?:\.\d+)?)")

Dimensions = tuple[int, int]


def _to_float(value: object) -> Optional[float]:
    if isinstance(value, tuple) and len(value) == 2 and value[1]:
        return float(value[0]) / float(value[1])
    if isinstance(value, numbers.Real):
        try:
            result = float(value)
        except (ZeroDivisionError, ValueError):
            return None
        # IFDRational with a zero denominator comes back as nan
        return None if result != result else result
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if isinstance(value, str):
        return parse_leading_number(value)
    return None


def parse_leading_number(text: str) -> Optional[float]:
    """Parse values such as ``"50 mm"`` or ``"200"``; None when no number leads."""
    match = _LEADING_NUMBER.match(text)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def _clean_text(value: object) -> Optional[str]:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if value is None:
        return None
    text = str(value).replace("\x00", "").strip()
    return text or None


def _parse_capture_timestamp(value: object) -> Optional[datetime]:
    text = _clean_text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text, EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.debug("Metadata: unparseable DateTimeOriginal %r", text)
        return None


def format_camera_model(make: Optional[str], model: Optional[str]) -> Optional[str]:
    if not model:
        return make
    if not make or model.lower().startswith(make.lower()):
        return model
    return f"{make} {model}"


def format_aperture(f_number: Optional[float]) -> Optional[str]:
    if f_number is None or f_number <= 0:
        return None
    return f"f/{round(f_number, 1):g}"


def format_shutter_speed(exposure: Optional[float]) -> Optional[str]:
    if exposure is None or exposure <= 0:
        return None
    if exposure < 1:
        return f"1/{round(1 / exposure)}s"
    return f"{round(exposure, 1):g}s"


def _read_tags(img: Image.Image) -> dict[int, object]:
    """Merge IFD0 with the Exif sub-IFD, where cameras keep most capture fields."""
    exif = img.getexif()
    if not exif:
        return {}
    tags: dict[int, object] = dict(exif)
    try:
        tags.update(exif.get_ifd(EXIF_IFD_TAG))
    except Exception as exc:
        logger.debug("Metadata: unreadable Exif sub-IFD: %s", exc)
    return tags


def _valid_dimensions(width: object, height: object) -> Optional[Dimensions]:
    if isinstance(width, int) and isinstance(height, int) and width > 0 and height > 0:
        return width, height
    return None


def _container_dimensions(data: bytes, tags: dict[int, object]) -> Optional[Dimensions]:
    # Image.open parses the format header (e.g. the JPEG SOF frame) without decoding pixels.
    with Image.open(BytesIO(data)) as img:
        return _valid_dimensions(*img.size)


def _exif_dimensions(data: bytes, tags: dict[int, object]) -> Optional[Dimensions]:
    return _valid_dimensions(tags.get(EXIF_IMAGE_WIDTH_TAG), tags.get(EXIF_IMAGE_HEIGHT_TAG))


def _decoded_dimensions(data: bytes, tags: dict[int, object]) -> Optional[Dimensions]:
    with Image.open(BytesIO(data)) as img:
        img.load()
        return _valid_dimensions(img.width, img.height)


DIMENSION_PROBES: tuple[Callable[[bytes, dict[int, object]], Optional[Dimensions]], ...] = (
    _container_dimensions,
    _exif_dimensions,
    _decoded_dimensions,
)


def resolve_dimensions(data: bytes, tags: dict[int, object]) -> Optional[Dimensions]:
    """Return the first dimensions reported by the container, EXIF or a full decode."""
    for probe in DIMENSION_PROBES:
        try:
            dimensions = probe(data, tags)
        except Exception as exc:
            logger.debug("Metadata: dimension probe %s failed: %s", probe.__name__, exc)
            continue
        if dimensions is not None:
            return dimensions
    return None


def read_metadata(data: bytes) -> CaptureMetadata:
    """Extract capture metadata from image bytes. Never raises."""
    tags: dict[int, object] = {}
    try:
        with Image.open(BytesIO(data)) as img:
            tags = _read_tags(img)
    except Exception as exc:
        # Ingest should never fail because of malformed EXIF.
        logger.debug("Metadata: unable to read EXIF: %s", exc)

    fields: dict[str, object] = {}
    try:
        fields["capture_timestamp"] = _parse_capture_timestamp(tags.get(DATETIME_ORIGINAL_TAG))
        fields["camera_model"] = format_camera_model(
            _clean_text(tags.get(MAKE_TAG)), _clean_text(tags.get(MODEL_TAG))
        )

        iso_value = tags.get(ISO_TAG)
        if isinstance(iso_value, tuple) and iso_value:
            iso_value = iso_value[0]
        iso = _to_float(iso_value)
        if iso is not None and iso > 0:
            fields["iso"] = int(iso)

        fields["aperture"] = format_aperture(_to_float(tags.get(FNUMBER_TAG)))
        fields["shutter_speed"] = format_shutter_speed(_to_float(tags.get(EXPOSURE_TIME_TAG)))

        focal_length = _to_float(tags.get(FOCAL_LENGTH_TAG))
        if focal_length is not None and focal_length > 0:
            fields["focal_length"] = int(focal_length)
    except Exception as exc:
        logger.debug("Metadata: unable to interpret EXIF fields: %s", exc)

    dimensions = resolve_dimensions(data, tags)
    if dimensions is not None:
        fields["pixel_width"], fields["pixel_height"] = dimensions

    return CaptureMetadata(**{key: value for key, value in fields.items() if value is not None})
