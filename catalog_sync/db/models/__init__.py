"""Database models for the catalog and the sync audit trail."""
from catalog_sync.db.models.catalog_product import CatalogProduct, CatalogProductMeta
from catalog_sync.db.models.catalog_user import CatalogUser
from catalog_sync.db.models.sync_run import SyncRun
from catalog_sync.db.models.product_history import ProductHistory

__all__ = [
    # Catalog (external collaborator tables)
    "CatalogProduct",
    "CatalogProductMeta",
    "CatalogUser",
    # Sync bookkeeping
    "SyncRun",
    "ProductHistory",
]
