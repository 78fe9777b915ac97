"""Per-record decision: classify a feed record and build its pending change.

Checks run in a fixed order and the first one that applies wins:

1. empty external id or unusable price -> skipped
2. identifier unknown to the catalog -> not found
3. in-stock record while in-stock records are ignored -> skipped (in stock)
4. active lock -> locked
5. price differs from the stored supplier price -> update
6. record not published -> update (published regardless of price)
7. otherwise -> unchanged
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, List, Optional
import structlog

from catalog_sync.config import StockPolicy, SyncSettings
from catalog_sync.models.catalog_record import (
    AttributeSnapshot,
    RecordStatus,
    StockStatus,
    SUPPLIER_PRICE_KEY,
)
from catalog_sync.models.feed_record import FeedRecord
from catalog_sync.models.pending_change import (
    AuditEntry,
    PendingChange,
    RecordDecision,
    RecordOutcome,
)
from catalog_sync.services.attribute_cache import AttributeCache
from catalog_sync.services.identity_cache import IdentityCache
from catalog_sync.services.lock_policy import LockPolicy

logger = structlog.get_logger(__name__)

BACKORDERS_ALLOWED = "yes"


def to_decimal(value: Any) -> Optional[Decimal]:
    """Decimal from a stored price value, None when missing or unparseable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return price if price.is_finite() else None


def price_changed(stored: Any, new_price: Decimal, precision: int = 2) -> bool:
    """Whether the feed price differs from the stored one at `precision` places.

    A missing or unparseable stored price always counts as changed.
    """
    old = to_decimal(stored)
    if old is None:
        return True
    quantum = Decimal(1).scaleb(-precision)
    with localcontext() as ctx:
        # Enough digits for the integer part plus the compared places
        digits = max(old.adjusted(), new_price.adjusted(), 0) + precision + 2
        ctx.prec = max(ctx.prec, digits)
        return (
            old.quantize(quantum, rounding=ROUND_HALF_UP)
            != new_price.quantize(quantum, rounding=ROUND_HALF_UP)
        )


def _is_on(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "yes", "true")
    return bool(value)


def build_change(
    record: FeedRecord,
    internal_id: int,
    snapshot: AttributeSnapshot,
    config: SyncSettings,
    changed_price: bool,
) -> PendingChange:
    """Pending change for an eligible record, auditing only differing fields."""
    audit: List[AuditEntry] = []
    change = PendingChange(
        internal_id=internal_id,
        external_id=record.external_id,
        new_price=record.price,
    )

    if changed_price:
        audit.append(AuditEntry(SUPPLIER_PRICE_KEY, snapshot.supplier_price, record.price))

    if snapshot.status != RecordStatus.PUBLISH.value:
        change.new_status = RecordStatus.PUBLISH.value
        audit.append(AuditEntry("status", snapshot.status, RecordStatus.PUBLISH.value))

    if config.stock_policy == StockPolicy.BACKORDER:
        change.manage_stock = False
        change.backorders = BACKORDERS_ALLOWED
        change.stock_status = StockStatus.ONBACKORDER.value
        if _is_on(snapshot.manage_stock):
            audit.append(AuditEntry("manage_stock", snapshot.manage_stock, False))
        if snapshot.backorders != BACKORDERS_ALLOWED:
            audit.append(AuditEntry("backorders", snapshot.backorders, BACKORDERS_ALLOWED))
        if snapshot.stock_status != StockStatus.ONBACKORDER.value:
            audit.append(
                AuditEntry("stock_status", snapshot.stock_status, StockStatus.ONBACKORDER.value)
            )
    elif record.quantity is not None:
        stock_status = (
            StockStatus.INSTOCK.value if record.quantity > 0 else StockStatus.OUTOFSTOCK.value
        )
        change.manage_stock = True
        change.stock_quantity = record.quantity
        change.stock_status = stock_status
        if not _is_on(snapshot.manage_stock):
            audit.append(AuditEntry("manage_stock", snapshot.manage_stock, True))
        if snapshot.stock_quantity != record.quantity:
            audit.append(AuditEntry("stock_quantity", snapshot.stock_quantity, record.quantity))
        if snapshot.stock_status != stock_status:
            audit.append(AuditEntry("stock_status", snapshot.stock_status, stock_status))

    change.audit = audit
    return change


async def decide_record(
    record: FeedRecord,
    identity: IdentityCache,
    attributes: AttributeCache,
    lock_policy: LockPolicy,
    config: SyncSettings,
) -> RecordDecision:
    """Classify one feed record against the pre-batch catalog state.

    Never raises: an unexpected failure becomes an ERROR decision so the
    rest of the batch carries on.
    """
    if not record.external_id or record.price is None:
        return RecordDecision(record=record, outcome=RecordOutcome.SKIPPED)

    internal_id = identity.resolve(record.external_id)
    if internal_id is None:
        return RecordDecision(record=record, outcome=RecordOutcome.NOT_FOUND)

    try:
        snapshot = await attributes.get(internal_id)

        if config.ignore_instock and snapshot.stock_status == StockStatus.INSTOCK.value:
            return RecordDecision(
                record=record,
                outcome=RecordOutcome.SKIPPED_INSTOCK,
                internal_id=internal_id,
            )

        lock = lock_policy.evaluate(snapshot)
        if lock is not None:
            return RecordDecision(
                record=record,
                outcome=RecordOutcome.LOCKED,
                internal_id=internal_id,
                lock_reason=lock,
            )

        changed_price = price_changed(snapshot.supplier_price, record.price, config.price_precision)
        needs_publish = snapshot.status != RecordStatus.PUBLISH.value
        if not changed_price and not needs_publish:
            return RecordDecision(
                record=record,
                outcome=RecordOutcome.UNCHANGED,
                internal_id=internal_id,
            )

        change = build_change(record, internal_id, snapshot, config, changed_price)
        return RecordDecision(
            record=record,
            outcome=RecordOutcome.UPDATED,
            internal_id=internal_id,
            change=change,
        )

    except Exception as e:
        logger.error(
            "record_decision_failed",
            internal_id=internal_id,
            external_id=record.external_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return RecordDecision(
            record=record,
            outcome=RecordOutcome.ERROR,
            internal_id=internal_id,
            error=str(e),
        )
