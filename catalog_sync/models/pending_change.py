"""Decision outcomes, queued mutations and commit results."""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from catalog_sync.models.catalog_record import CatalogRecord
from catalog_sync.models.feed_record import FeedRecord


class RecordOutcome(str, Enum):
    """Classification of one feed record. Values match SyncCounters fields."""
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    SKIPPED_INSTOCK = "skipped_instock"
    LOCKED = "locked"
    NOT_FOUND = "not_found"
    ERROR = "errors"


@dataclass(frozen=True)
class LockReason:
    """Lock attribute that protects a record from automated updates."""
    key: str
    label: str


@dataclass
class AuditEntry:
    """One observed field change, persisted as a product history row."""
    field: str
    old_value: Any
    new_value: Any


@dataclass
class PendingChange:
    """Mutation queued for one record between the decide and commit passes."""
    internal_id: int
    external_id: str
    new_price: Decimal
    new_status: Optional[str] = None
    manage_stock: Optional[bool] = None
    backorders: Optional[str] = None
    stock_status: Optional[str] = None
    stock_quantity: Optional[int] = None
    audit: List[AuditEntry] = field(default_factory=list)

    def apply_to(self, record: CatalogRecord) -> None:
        """Copy the queued field values onto a catalog record."""
        record.supplier_price = self.new_price
        if self.new_status is not None:
            record.status = self.new_status
        if self.manage_stock is not None:
            record.manage_stock = self.manage_stock
        if self.backorders is not None:
            record.backorders = self.backorders
        if self.stock_status is not None:
            record.stock_status = self.stock_status
        if self.stock_quantity is not None:
            record.stock_quantity = self.stock_quantity


@dataclass
class RecordDecision:
    """Result of the decision pass for a single feed record."""
    record: FeedRecord
    outcome: RecordOutcome
    internal_id: Optional[int] = None
    change: Optional[PendingChange] = None
    lock_reason: Optional[LockReason] = None
    error: Optional[str] = None


@dataclass
class CommitResult:
    """Result of applying one PendingChange."""
    internal_id: int
    ok: bool
    error: Optional[str] = None
