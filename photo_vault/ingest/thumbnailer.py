from __future__ import annotations

import logging
from io import BytesIO

from PIL import Image, ImageOps
from PIL.Image import Resampling

from photo_vault.core.errors import ProcessingError
from photo_vault.core.models import BlobVariant

logger = logging.getLogger(__name__)

DERIVATIVE_FORMAT = "JPEG"


class DerivativeGenerator:
    """Build bounded JPEG copies of an original: a small thumbnail and a larger preview."""

    def __init__(self, thumbnail_max: int = 300, preview_max: int = 1280, quality: int = 85):
        self.thumbnail_max = max(1, int(thumbnail_max))
        self.preview_max = max(1, int(preview_max))
        self.quality = quality

    def max_side(self, variant: BlobVariant) -> int:
        if variant is BlobVariant.THUMBNAIL:
            return self.thumbnail_max
        if variant is BlobVariant.PREVIEW:
            return self.preview_max
        raise ValueError(f"No derivative size for variant {variant.value!r}")

    def build(self, data: bytes, variant: BlobVariant) -> bytes:
        """Return JPEG bytes whose long edge is at most the variant's bound."""
        max_side = self.max_side(variant)
        try:
            with Image.open(BytesIO(data)) as img:
                img = ImageOps.exif_transpose(img)
                img = img.convert("RGB")
                # thumbnail() keeps the aspect ratio and never enlarges.
                img.thumbnail((max_side, max_side), resample=Resampling.LANCZOS)
                buf = BytesIO()
                img.save(buf, format=DERIVATIVE_FORMAT, quality=self.quality, optimize=True)
        except Exception as exc:
            raise ProcessingError(f"Failed to generate {variant.value}: {exc}") from exc

        payload = buf.getvalue()
        if not payload:
            raise ProcessingError(f"Failed to generate {variant.value}: empty output")
        logger.debug("Derivative: generated %s (%d bytes)", variant.value, len(payload))
        return payload

    def thumbnail(self, data: bytes) -> bytes:
        return self.build(data, BlobVariant.THUMBNAIL)

    def preview(self, data: bytes) -> bytes:
        return self.build(data, BlobVariant.PREVIEW)
