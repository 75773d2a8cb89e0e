from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./photo_vault.db"
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
DEFAULT_ALLOWED_MIME_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/gif", "image/webp", "image/bmp"}
)
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class VaultConfig:
    """Settings handed to each component at construction time."""

    database_url: str = DEFAULT_DATABASE_URL
    storage_root: Path = Path("./uploads")
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_mime_types: frozenset[str] = field(default=DEFAULT_ALLOWED_MIME_TYPES)
    thumbnail_size: int = 300
    preview_size: int = 1280
    jpeg_quality: int = 85
    space_multiplier: int = 3
    page_size: int = 50
    max_page_size: int = 200

    @classmethod
    def from_env(cls) -> "VaultConfig":
        return cls(
            database_url=os.getenv("PHOTO_VAULT_DATABASE_URL", DEFAULT_DATABASE_URL),
            storage_root=Path(os.getenv("PHOTO_VAULT_STORAGE_ROOT", "./uploads")),
            max_upload_bytes=int(
                os.getenv("PHOTO_VAULT_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))
            ),
            thumbnail_size=int(os.getenv("PHOTO_VAULT_THUMBNAIL_SIZE", "300")),
            preview_size=int(os.getenv("PHOTO_VAULT_PREVIEW_SIZE", "1280")),
            jpeg_quality=int(os.getenv("PHOTO_VAULT_JPEG_QUALITY", "85")),
            space_multiplier=int(os.getenv("PHOTO_VAULT_SPACE_MULTIPLIER", "3")),
            page_size=int(os.getenv("PHOTO_VAULT_PAGE_SIZE", "50")),
            max_page_size=int(os.getenv("PHOTO_VAULT_MAX_PAGE_SIZE", "200")),
        )


def load_dotenv_if_present(path: str | Path = ".env") -> None:
    """Pull PHOTO_VAULT_* settings from a .env file without overriding the environment."""
    dotenv_path = Path(path)
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)


def configure_logging(default_level: str = "INFO") -> None:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", default_level).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Pillow logs every chunk it parses at DEBUG.
    logging.getLogger("PIL").setLevel(max(level, logging.INFO))
