"""Per-batch cache of the attributes the decision pass needs."""
from typing import Any, Dict, Iterable, List, Sequence
import structlog

from catalog_sync.models.catalog_record import AttributeSnapshot, SNAPSHOT_KEYS
from catalog_sync.stores.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)


class AttributeCache:
    """Bulk-loaded attribute snapshots, valid for one batch only.

    load() reads the fixed key set with one store call per chunk of ids.
    When a chunk cannot be read in bulk its ids stay unloaded and get()
    falls back to one read_attribute call per key, memoizing the result
    until the next invalidate().

    Args:
        store: Catalog store to read from
        chunk_size: Maximum ids per bulk read
        keys: Attribute keys that make up a snapshot
    """

    def __init__(
        self,
        store: CatalogStore,
        chunk_size: int = 50,
        keys: Sequence[str] = SNAPSHOT_KEYS,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.store = store
        self.chunk_size = chunk_size
        self.keys = tuple(keys)
        self._snapshots: Dict[int, AttributeSnapshot] = {}
        self.bulk_reads = 0
        self.fallback_reads = 0
        self.degraded_chunks = 0

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, internal_id: int) -> bool:
        return internal_id in self._snapshots

    def _chunks(self, ids: List[int]) -> Iterable[List[int]]:
        for start in range(0, len(ids), self.chunk_size):
            yield ids[start:start + self.chunk_size]

    async def load(self, ids: Iterable[int]) -> int:
        """Bulk-read snapshots for the given ids.

        Returns:
            Number of ids loaded in bulk
        """
        wanted = list(dict.fromkeys(i for i in ids if i not in self._snapshots))
        loaded = 0
        for chunk in self._chunks(wanted):
            self.bulk_reads += 1
            try:
                values = await self.store.bulk_read_attributes(chunk, self.keys)
            except Exception as e:
                self.degraded_chunks += 1
                logger.warning(
                    "attribute_bulk_read_degraded",
                    chunk_size=len(chunk),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            for internal_id in chunk:
                self._snapshots[internal_id] = AttributeSnapshot.from_attributes(
                    internal_id, values.get(internal_id) or {}
                )
            loaded += len(chunk)
        return loaded

    async def get(self, internal_id: int) -> AttributeSnapshot:
        """Snapshot of a record, read key by key when it was not bulk-loaded."""
        snapshot = self._snapshots.get(internal_id)
        if snapshot is not None:
            return snapshot

        values: Dict[str, Any] = {}
        for key in self.keys:
            self.fallback_reads += 1
            values[key] = await self.store.read_attribute(internal_id, key)

        snapshot = AttributeSnapshot.from_attributes(internal_id, values)
        self._snapshots[internal_id] = snapshot
        return snapshot

    def invalidate(self) -> None:
        """Drop every snapshot; called at each batch boundary."""
        self._snapshots.clear()
