"""Catalog-side records and the per-batch attribute snapshot."""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class RecordStatus(str, Enum):
    """Catalog record lifecycle status."""
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    PUBLISH = "publish"


class StockStatus(str, Enum):
    """Catalog record availability."""
    INSTOCK = "instock"
    OUTOFSTOCK = "outofstock"
    ONBACKORDER = "onbackorder"


# Attribute keys understood by CatalogStore.bulk_read_attributes
EXTERNAL_ID_KEY = "supplier_sku"
SUPPLIER_PRICE_KEY = "supplier_price"

# Ordered: the first active lock wins
LOCK_KEYS: Tuple[Tuple[str, str], ...] = (
    ("block_xml_update", "XML update block"),
    ("channel_block_xml_update", "Channel XML update block"),
    ("block_custom_update", "Custom update block"),
)

STATUS_KEY = "status"
STOCK_STATUS_KEY = "stock_status"
BACKORDERS_KEY = "backorders"
MANAGE_STOCK_KEY = "manage_stock"
STOCK_QUANTITY_KEY = "stock_quantity"

STATE_KEYS: Tuple[str, ...] = (
    STATUS_KEY,
    STOCK_STATUS_KEY,
    BACKORDERS_KEY,
    MANAGE_STOCK_KEY,
    STOCK_QUANTITY_KEY,
)

SNAPSHOT_KEYS: Tuple[str, ...] = (
    SUPPLIER_PRICE_KEY,
    *(key for key, _ in LOCK_KEYS),
    *STATE_KEYS,
)


@dataclass
class CatalogRecord:
    """Mutable view of a catalog record, saved back through CatalogStore.save."""
    id: int
    external_id: str
    status: str = RecordStatus.DRAFT.value
    stock_status: str = StockStatus.INSTOCK.value
    manage_stock: bool = False
    backorders: str = "no"
    stock_quantity: Optional[int] = None
    supplier_price: Optional[Decimal] = None


@dataclass(frozen=True)
class Actor:
    """Identity a sync runs under, used for audit attribution."""
    id: int
    login: str
    is_active: bool = True


@dataclass
class AttributeSnapshot:
    """Attributes of one record as they were before the current batch committed."""
    internal_id: int
    supplier_price: Any = None
    locks: Dict[str, Any] = field(default_factory=dict)
    stock_status: Any = None
    status: Any = None
    backorders: Any = None
    manage_stock: Any = None
    stock_quantity: Any = None

    @classmethod
    def from_attributes(cls, internal_id: int, values: Dict[str, Any]) -> "AttributeSnapshot":
        """Build a snapshot from a raw attribute map, missing keys read as None."""
        return cls(
            internal_id=internal_id,
            supplier_price=values.get(SUPPLIER_PRICE_KEY),
            locks={key: values.get(key) for key, _ in LOCK_KEYS},
            stock_status=values.get(STOCK_STATUS_KEY),
            status=values.get(STATUS_KEY),
            backorders=values.get(BACKORDERS_KEY),
            manage_stock=values.get(MANAGE_STOCK_KEY),
            stock_quantity=values.get(STOCK_QUANTITY_KEY),
        )
