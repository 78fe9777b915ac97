"""Catalog store interface and implementations."""
from catalog_sync.stores.catalog_store import CatalogStore
from catalog_sync.stores.sql_catalog_store import SqlCatalogStore

__all__ = [
    "CatalogStore",
    "SqlCatalogStore",
]
