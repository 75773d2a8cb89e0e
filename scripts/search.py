#!/usr/bin/env python
"""
Search the vault catalog from the command line.

Usage:
  python scripts/search.py --tags sunset,beach --camera canon --from 2024-01-01 --to 2024-12-31
"""
from __future__ import annotations

import argparse
from datetime import date, datetime, time

from photo_vault.core.config import VaultConfig, configure_logging, load_dotenv_if_present
from photo_vault.core.models import SearchQuery, SortDirection, SortField
from photo_vault.library import PhotoLibrary


def parse_bound(text: str | None, *, end: bool = False) -> datetime | None:
    """Parse an ISO date or date-time; a bare date covers the whole day."""
    if not text:
        return None
    try:
        day = date.fromisoformat(text)
    except ValueError:
        return datetime.fromisoformat(text)
    return datetime.combine(day, time.max if end else time.min)


def build_query(args: argparse.Namespace) -> SearchQuery:
    return SearchQuery(
        tags=args.tags or [],
        start_date=parse_bound(args.start),
        end_date=parse_bound(args.end, end=True),
        camera_model=args.camera,
        filename=args.filename,
        page=args.page,
        page_size=args.size,
        sort_field=SortField(args.sort),
        sort_dir=SortDirection(args.direction),
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Search catalogued photos.")
    parser.add_argument("--tags", help="Comma-separated tags (any may match)")
    parser.add_argument("--from", dest="start", help="Earliest capture date (ISO format)")
    parser.add_argument("--to", dest="end", help="Latest capture date (ISO format, a bare date includes the whole day)")
    parser.add_argument("--camera", help="Camera model substring")
    parser.add_argument("--filename", help="Original filename substring")
    parser.add_argument("--page", type=int, default=0)
    parser.add_argument("--size", type=int, default=50)
    parser.add_argument("--sort", choices=[field.value for field in SortField], default="capture_timestamp")
    parser.add_argument("--direction", choices=[d.value for d in SortDirection], default="desc")
    args = parser.parse_args(argv)

    load_dotenv_if_present()
    configure_logging("WARNING")
    library = PhotoLibrary.from_config(VaultConfig.from_env())
    page = library.search(build_query(args))
    for record in page.items:
        captured = record.capture_timestamp.isoformat() if record.capture_timestamp else "-"
        tags = ",".join(record.tags)
        print(f"{record.id}  {captured}  {record.original_name}  {record.camera_model or '-'}  [{tags}]")
    print(f"Page {page.page + 1}/{max(page.total_pages, 1)} ({page.total} matches)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
