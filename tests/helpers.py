"""In-memory collaborators and feed builders shared by the test suite."""
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from xml.sax.saxutils import escape

from catalog_sync.errors.exceptions import AttributeLoadDegradation, RecordCommitError
from catalog_sync.models.catalog_record import (
    Actor,
    CatalogRecord,
    EXTERNAL_ID_KEY,
    LOCK_KEYS,
    STATE_KEYS,
    SUPPLIER_PRICE_KEY,
)
from catalog_sync.models.sync_messages import SyncRunStatus
from catalog_sync.models.sync_stats import SyncCounters
from catalog_sync.services.run_recorder import RunRecorder
from catalog_sync.stores.catalog_store import CatalogStore

LOCK_KEY_NAMES = [key for key, _ in LOCK_KEYS]


class InMemoryCatalogStore(CatalogStore):
    """Catalog kept in dicts, with switches to simulate failures."""

    def __init__(self):
        self.records: Dict[int, CatalogRecord] = {}
        self.meta: Dict[int, Dict[str, Any]] = {}
        self.actors: Dict[int, Actor] = {1: Actor(id=1, login="admin")}
        self.extra_published = 0

        self.fail_identity = False
        self.fail_bulk = False
        self.fail_save_ids: set = set()
        self.missing_ids: set = set()

        self.identity_loads = 0
        self.bulk_calls: List[List[int]] = []
        self.read_attribute_calls: List[tuple] = []
        self.saved: List[CatalogRecord] = []

    def add(
        self,
        internal_id: int,
        external_id: str,
        price: Optional[str] = "17.50",
        status: str = "publish",
        stock_status: str = "onbackorder",
        backorders: str = "yes",
        manage_stock: bool = False,
        stock_quantity: Optional[int] = None,
        **meta: Any,
    ) -> CatalogRecord:
        record = CatalogRecord(
            id=internal_id,
            external_id=external_id,
            status=status,
            stock_status=stock_status,
            manage_stock=manage_stock,
            backorders=backorders,
            stock_quantity=stock_quantity,
            supplier_price=Decimal(price) if price not in (None, "") else None,
        )
        self.records[internal_id] = record
        self.meta[internal_id] = {EXTERNAL_ID_KEY: external_id, SUPPLIER_PRICE_KEY: price, **meta}
        return record

    def _value(self, internal_id: int, key: str) -> Any:
        if key in STATE_KEYS:
            return getattr(self.records[internal_id], key)
        return self.meta.get(internal_id, {}).get(key)

    async def load_identity_index(self, limit: int) -> Dict[str, int]:
        self.identity_loads += 1
        if self.fail_identity:
            raise RuntimeError("catalog unavailable")
        index = {}
        for internal_id, record in self.records.items():
            if record.external_id:
                index[record.external_id] = internal_id
            if len(index) >= limit:
                break
        return index

    async def find_ids_by_external_ids(self, external_ids: Iterable[str]) -> Dict[str, int]:
        wanted = set(external_ids)
        return {r.external_id: i for i, r in self.records.items() if r.external_id in wanted}

    async def find_id_by_external_id(self, external_id: str) -> Optional[int]:
        return (await self.find_ids_by_external_ids([external_id])).get(external_id)

    async def bulk_read_attributes(self, ids: List[int], keys: Iterable[str]) -> Dict[int, Dict[str, Any]]:
        self.bulk_calls.append(list(ids))
        if self.fail_bulk:
            raise AttributeLoadDegradation("bulk read disabled")
        keys = list(keys)
        return {
            i: {k: self._value(i, k) for k in keys if self._value(i, k) is not None}
            for i in ids
            if i in self.records
        }

    async def read_attribute(self, internal_id: int, key: str) -> Any:
        self.read_attribute_calls.append((internal_id, key))
        return self._value(internal_id, key)

    async def get_record(self, internal_id: int) -> Optional[CatalogRecord]:
        if internal_id in self.missing_ids or internal_id not in self.records:
            return None
        return replace(self.records[internal_id])

    async def save(self, record: CatalogRecord) -> None:
        if record.id in self.fail_save_ids:
            raise RecordCommitError(f"save rejected for {record.id}", internal_id=record.id)
        self.records[record.id] = replace(record)
        price = None if record.supplier_price is None else format(record.supplier_price, "f")
        self.meta.setdefault(record.id, {})[SUPPLIER_PRICE_KEY] = price
        self.saved.append(replace(record))

    async def count_by_status(self, status: str) -> int:
        count = sum(1 for r in self.records.values() if r.status == status)
        return count + (self.extra_published if status == "publish" else 0)

    async def get_actor(self, actor_id: int) -> Optional[Actor]:
        return self.actors.get(actor_id)


class FakeRecorder(RunRecorder):
    """RunRecorder that keeps runs and history rows in memory."""

    def __init__(self, fail_flush: bool = False):
        super().__init__(session_maker=None)
        self.fail_flush = fail_flush
        self.rows: List[Dict[str, Any]] = []
        self.flush_calls = 0
        self.started: List[Dict[str, Any]] = []
        self.finished: List[Dict[str, Any]] = []
        self._next_id = 0

    async def start(self, feed_path, batch_size, offset_start=0, feed_record_count=0, actor_id=None) -> int:
        self._next_id += 1
        self.run_id = self._next_id
        self.started.append({
            "run_id": self.run_id,
            "feed_path": feed_path,
            "batch_size": batch_size,
            "offset_start": offset_start,
            "feed_record_count": feed_record_count,
            "actor_id": actor_id,
        })
        return self.run_id

    async def flush(self) -> int:
        self.flush_calls += 1
        rows, self._queue = self._queue, []
        if self.fail_flush:
            raise RuntimeError("history table unavailable")
        self.rows.extend(rows)
        return len(rows)

    async def finish(
        self,
        status: SyncRunStatus,
        counters: SyncCounters,
        execution_time: float,
        offset_end: int,
        error_message: Optional[str] = None,
    ) -> None:
        self.finished.append({
            "run_id": self.run_id,
            "status": status,
            "counters": counters.model_copy(),
            "offset_end": offset_end,
            "error_message": error_message,
        })

    def fields_for(self, product_id: int) -> List[str]:
        return [r["field_changed"] for r in self.rows if r["product_id"] == product_id]


class RecorderFactory:
    """Hands out FakeRecorders and remembers them."""

    def __init__(self, fail_flush: bool = False):
        self.fail_flush = fail_flush
        self.recorders: List[FakeRecorder] = []

    def __call__(self) -> FakeRecorder:
        recorder = FakeRecorder(fail_flush=self.fail_flush)
        recorder._next_id = len(self.recorders)
        self.recorders.append(recorder)
        return recorder

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return [row for recorder in self.recorders for row in recorder.rows]


FeedItem = Union[str, Sequence[Any]]


def feed_xml(items: Iterable[FeedItem], record_tag: str = "product") -> str:
    """Feed document from (sku, price[, quantity]) tuples or raw record XML."""
    parts = ['<?xml version="1.0" encoding="UTF-8"?>', "<products>"]
    for item in items:
        if isinstance(item, str):
            parts.append(item)
            continue
        sku, price, *rest = item
        body = f"<SKU>{escape(str(sku))}</SKU><supplier_price>{escape(str(price))}</supplier_price>"
        if rest and rest[0] is not None:
            body += f"<quantity>{rest[0]}</quantity>"
        parts.append(f"<{record_tag}>{body}</{record_tag}>")
    parts.append("</products>")
    return "\n".join(parts)


def write_feed(path: Path, items: Iterable[FeedItem]) -> Path:
    path.write_text(feed_xml(items), encoding="utf-8")
    return path


def numbered_items(count: int, price: str = "10.00", prefix: str = "SKU-") -> List[tuple]:
    return [(f"{prefix}{n}", price) for n in range(1, count + 1)]
