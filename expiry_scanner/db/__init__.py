"""SQLite stores for the reference catalog and the scanned inventory."""

from .catalog import CatalogDB, CatalogStore, read_catalog_csv
from .inventory import InventoryDB, InventoryGateway
from .schema import ensure_schema

__all__ = [
    "CatalogDB",
    "CatalogStore",
    "InventoryDB",
    "InventoryGateway",
    "ensure_schema",
    "read_catalog_csv",
]
