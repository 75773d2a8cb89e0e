#!/usr/bin/env python
"""
Ingest photo files (or every supported image under a directory) into the vault.

Usage:
  python scripts/ingest.py /absolute/path/to/photos --tags holiday,beach
  PHOTO_VAULT_STORAGE_ROOT=./uploads python scripts/ingest.py ~/Pictures/IMG_0001.jpg
"""
from __future__ import annotations

import argparse
from pathlib import Path

from photo_vault.core.config import VaultConfig, configure_logging, load_dotenv_if_present
from photo_vault.ingest import IngestStatus
from photo_vault.ingest.validation import FORMAT_EXTENSIONS
from photo_vault.library import PhotoLibrary

SUPPORTED_SUFFIXES = set(FORMAT_EXTENSIONS.values()) | {".jpeg"}


def collect_files(target: Path) -> list[Path]:
    if target.is_file():
        return [target]
    return sorted(
        path for path in target.rglob("*") if path.is_file() and path.suffix.lower() in SUPPORTED_SUFFIXES
    )


def parse_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [tag for tag in raw.split(",") if tag.strip()]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest photos into the vault.")
    parser.add_argument("target", type=Path, help="Photo file or directory (recursed)")
    parser.add_argument("--tags", help="Comma-separated tags applied to every photo")
    args = parser.parse_args(argv)

    load_dotenv_if_present()
    configure_logging()
    target = args.target
    if not target.exists():
        raise FileNotFoundError(f"Path not found: {target}")

    library = PhotoLibrary.from_config(VaultConfig.from_env())
    tags = parse_tags(args.tags)
    counts = {status: 0 for status in IngestStatus}
    for path in collect_files(target):
        result = library.ingest_file(path, tags=tags)
        counts[result.status] += 1
        if result.status is IngestStatus.COMMITTED:
            print(f"stored     {path} -> {result.record.id}")
        elif result.status is IngestStatus.DUPLICATE:
            print(f"duplicate  {path} -> {result.duplicate_of}")
        else:
            print(f"failed     {path}: {result.error}")

    print(
        f"Ingest complete: {counts[IngestStatus.COMMITTED]} stored, "
        f"{counts[IngestStatus.DUPLICATE]} duplicates, {counts[IngestStatus.FAILED]} failed"
    )
    return 1 if counts[IngestStatus.FAILED] else 0


if __name__ == "__main__":
    raise SystemExit(main())
