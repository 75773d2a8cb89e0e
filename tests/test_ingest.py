from datetime import datetime
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from conftest import exif_for, make_image_bytes
from photo_vault.core.errors import ProcessingError, ValidationError
from photo_vault.core.models import BlobVariant
from photo_vault.ingest import (
    DerivativeGenerator,
    compute_fingerprint,
    hash_file,
    hash_stream,
    is_fingerprint,
    read_metadata,
    validate_upload,
)
from photo_vault.ingest import exif_reader
from photo_vault.ingest.exif_reader import (
    format_aperture,
    format_camera_model,
    format_shutter_speed,
    parse_leading_number,
)


def test_fingerprint_is_stable_and_name_independent(tmp_path: Path) -> None:
    data = make_image_bytes()
    first = tmp_path / "a.jpg"
    second = tmp_path / "renamed-copy.jpeg"
    first.write_bytes(data)
    second.write_bytes(data)

    fingerprint = compute_fingerprint(data)
    assert fingerprint == compute_fingerprint(data)
    assert hash_file(first) == hash_file(second) == fingerprint
    assert hash_stream(BytesIO(data), chunk_size=7) == fingerprint
    assert len(fingerprint) == 64
    assert is_fingerprint(fingerprint)
    assert compute_fingerprint(make_image_bytes(color="blue")) != fingerprint


def test_is_fingerprint_rejects_malformed_values() -> None:
    assert not is_fingerprint("abc")
    assert not is_fingerprint("z" * 64)
    assert not is_fingerprint("-" + "a" * 63)


def test_read_metadata_parses_exif() -> None:
    exif = exif_for(datetime(2024, 6, 15, 18, 30), make="Canon", model="Canon EOS R5", iso=200)
    exif[33434] = (1, 250)  # ExposureTime
    exif[33437] = (28, 10)  # FNumber f/2.8
    exif[37386] = (50, 1)  # FocalLength
    data = make_image_bytes((40, 30), exif=exif)

    meta = read_metadata(data)
    assert meta.capture_timestamp == datetime(2024, 6, 15, 18, 30)
    assert meta.camera_model == "Canon EOS R5"
    assert meta.iso == 200
    assert meta.aperture == "f/2.8"
    assert meta.shutter_speed == "1/250s"
    assert meta.focal_length == 50
    assert (meta.pixel_width, meta.pixel_height) == (40, 30)


def test_read_metadata_without_exif_keeps_fields_absent() -> None:
    meta = read_metadata(make_image_bytes((12, 8), fmt="PNG"))
    assert meta.capture_timestamp is None
    assert meta.camera_model is None
    assert meta.iso is None
    assert (meta.pixel_width, meta.pixel_height) == (12, 8)


def test_read_metadata_ignores_malformed_capture_date() -> None:
    data = make_image_bytes(exif={36867: "not a date", 272: "Pixel 8"})
    meta = read_metadata(data)
    assert meta.capture_timestamp is None
    assert meta.camera_model == "Pixel 8"


def test_read_metadata_never_raises_on_garbage() -> None:
    meta = read_metadata(b"definitely not an image")
    assert meta.model_dump(exclude_none=True) == {}


def test_dimensions_fall_back_to_exif_tags(monkeypatch) -> None:
    data = make_image_bytes((20, 10), exif={40962: 4000, 40963: 3000})
    monkeypatch.setattr(
        exif_reader,
        "DIMENSION_PROBES",
        (lambda data, tags: None, exif_reader._exif_dimensions, exif_reader._decoded_dimensions),
    )
    meta = read_metadata(data)
    assert (meta.pixel_width, meta.pixel_height) == (4000, 3000)


def test_dimensions_fall_back_to_raster_decode(monkeypatch) -> None:
    data = make_image_bytes((33, 21))
    calls: list[str] = []

    def no_container(data, tags):
        calls.append("container")
        return None

    monkeypatch.setattr(
        exif_reader,
        "DIMENSION_PROBES",
        (no_container, exif_reader._exif_dimensions, exif_reader._decoded_dimensions),
    )
    meta = read_metadata(data)
    assert calls == ["container"]
    assert (meta.pixel_width, meta.pixel_height) == (33, 21)


def test_numeric_parsing_tolerates_units() -> None:
    assert parse_leading_number("50 mm") == 50.0
    assert parse_leading_number("  3.5mm") == 3.5
    assert parse_leading_number("mm 50") is None
    assert exif_reader._to_float("200") == 200.0
    assert exif_reader._to_float((1, 0)) is None
    assert exif_reader._to_float(None) is None


def test_formatters() -> None:
    assert format_camera_model("NIKON CORPORATION", "NIKON Z 6") == "NIKON CORPORATION NIKON Z 6"
    assert format_camera_model("Canon", "Canon EOS R5") == "Canon EOS R5"
    assert format_camera_model("Apple", None) == "Apple"
    assert format_camera_model(None, "X100V") == "X100V"
    assert format_aperture(1.8) == "f/1.8"
    assert format_aperture(0) is None
    assert format_shutter_speed(0.004) == "1/250s"
    assert format_shutter_speed(2.0) == "2s"
    assert format_shutter_speed(None) is None


@pytest.mark.parametrize(
    ("variant", "expected"),
    [(BlobVariant.THUMBNAIL, (300, 225)), (BlobVariant.PREVIEW, (1280, 960))],
)
def test_derivatives_bound_long_edge(variant: BlobVariant, expected: tuple[int, int]) -> None:
    generator = DerivativeGenerator()
    payload = generator.build(make_image_bytes((4000, 3000)), variant)
    with Image.open(BytesIO(payload)) as img:
        assert img.format == "JPEG"
        assert img.size == expected


def test_derivatives_never_upscale_and_normalize_format() -> None:
    generator = DerivativeGenerator()
    source = make_image_bytes((120, 200), fmt="PNG", mode="RGBA", color=(0, 128, 255, 100))
    for payload in (generator.thumbnail(source), generator.preview(source)):
        with Image.open(BytesIO(payload)) as img:
            assert img.format == "JPEG"
            assert img.mode == "RGB"
            assert img.size == (120, 200)


def test_derivatives_portrait_clamps_height() -> None:
    payload = DerivativeGenerator(thumbnail_max=100).thumbnail(make_image_bytes((300, 600)))
    with Image.open(BytesIO(payload)) as img:
        assert img.size == (50, 100)


def test_derivative_of_corrupt_image_raises_processing_error() -> None:
    with pytest.raises(ProcessingError):
        DerivativeGenerator().thumbnail(b"\xff\xd8\xff\xe0 broken jpeg")
    with pytest.raises(ValueError):
        DerivativeGenerator().max_side(BlobVariant.ORIGINAL)


def test_validate_upload_detects_format() -> None:
    upload = validate_upload(
        make_image_bytes(fmt="PNG"),
        max_bytes=1024 * 1024,
        allowed_mime_types={"image/png"},
        content_type="image/png; charset=binary",
    )
    assert upload.mime_type == "image/png"
    assert upload.extension == ".png"


@pytest.mark.parametrize(
    ("data", "content_type", "message"),
    [
        (b"", None, "empty"),
        (b"x" * 2048, None, "exceeds"),
        (make_image_bytes(), "application/pdf", "Invalid file type"),
        (b"GIF89a not really", None, "not a valid image"),
        (make_image_bytes(fmt="TIFF"), None, "Unsupported image format"),
    ],
)
def test_validate_upload_rejections(data: bytes, content_type, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        validate_upload(
            data,
            max_bytes=1024 if message == "exceeds" else 10 * 1024 * 1024,
            allowed_mime_types={"image/jpeg", "image/png"},
            content_type=content_type,
        )


def test_validate_upload_rejects_truncated_jpeg() -> None:
    data = make_image_bytes((200, 200), color=(10, 200, 30))
    with pytest.raises(ValidationError):
        validate_upload(
            data[: len(data) // 2],
            max_bytes=10 * 1024 * 1024,
            allowed_mime_types={"image/jpeg"},
        )


def test_validate_upload_accepts_jpg_alias() -> None:
    upload = validate_upload(
        make_image_bytes(),
        max_bytes=10 * 1024 * 1024,
        allowed_mime_types={"image/jpeg"},
        content_type="image/jpg",
    )
    assert upload.extension == ".jpg"
