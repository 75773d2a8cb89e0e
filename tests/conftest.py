from __future__ import annotations

from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Optional

import pytest
from PIL import Image

from photo_vault.core.config import VaultConfig
from photo_vault.index import CatalogIndex, init_db, session_factory
from photo_vault.library import PhotoLibrary
from photo_vault.storage import ShardedBlobStore


def make_image_bytes(
    size: tuple[int, int] = (64, 48),
    *,
    color: str | tuple[int, int, int] = "red",
    fmt: str = "JPEG",
    exif: Optional[dict[int, object]] = None,
    mode: str = "RGB",
) -> bytes:
    img = Image.new(mode, size, color=color)
    buf = BytesIO()
    if exif:
        exif_block = Image.Exif()
        for tag, value in exif.items():
            exif_block[tag] = value
        img.save(buf, format=fmt, exif=exif_block)
    else:
        img.save(buf, format=fmt)
    return buf.getvalue()


def exif_for(
    captured: datetime | None = None,
    *,
    make: str | None = None,
    model: str | None = None,
    iso: int | None = None,
) -> dict[int, object]:
    tags: dict[int, object] = {}
    if captured is not None:
        tags[36867] = captured.strftime("%Y:%m:%d %H:%M:%S")
    if make:
        tags[271] = make
    if model:
        tags[272] = model
    if iso is not None:
        tags[34855] = iso
    return tags


@pytest.fixture
def catalog(tmp_path: Path) -> CatalogIndex:
    engine = init_db(f"sqlite+pysqlite:///{tmp_path / 'catalog.db'}")
    return CatalogIndex(session_factory(engine))


@pytest.fixture
def blob_store(tmp_path: Path) -> ShardedBlobStore:
    return ShardedBlobStore(tmp_path / "blobs")


@pytest.fixture
def vault_config(tmp_path: Path) -> VaultConfig:
    return VaultConfig(
        database_url=f"sqlite+pysqlite:///{tmp_path / 'vault.db'}",
        storage_root=tmp_path / "uploads",
    )


@pytest.fixture
def library(vault_config: VaultConfig) -> PhotoLibrary:
    return PhotoLibrary.from_config(vault_config)


def stored_files(root: Path) -> list[Path]:
    """All blob files under a storage root, ignoring the namespace directories."""
    return sorted(path for path in root.rglob("*") if path.is_file())
