"""Catalog layer: schema, record mapping and the searchable index."""

from .catalog import CatalogIndex, build_order_by, build_search_conditions
from .records import build_photo_record, build_photo_row
from .schema import (
    Base,
    PhotoRow,
    PhotoTagRow,
    create_engine_from_url,
    init_db,
    session_factory,
)

__all__ = [
    "Base",
    "CatalogIndex",
    "PhotoRow",
    "PhotoTagRow",
    "build_order_by",
    "build_photo_record",
    "build_photo_row",
    "build_search_conditions",
    "create_engine_from_url",
    "init_db",
    "session_factory",
]
