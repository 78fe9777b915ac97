"""External identifier -> catalog record id index, built once per session."""
from typing import Dict, Optional
import structlog
import time

from catalog_sync.stores.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)


class IdentityCache:
    """O(1) resolution of feed identifiers to catalog record ids.

    The index is loaded with one query before the first batch and is not
    rebuilt while the owning orchestrator lives. If loading fails the cache
    degrades to an empty index: every lookup misses and records are counted
    as not found, which shows up in the run counters instead of aborting.
    """

    def __init__(self) -> None:
        self._index: Dict[str, int] = {}
        self.built = False
        self.degraded = False
        self.build_count = 0

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, external_id: str) -> bool:
        return self.resolve(external_id) is not None

    async def build(self, store: CatalogStore, limit: int) -> int:
        """Load the index from the catalog store.

        Args:
            store: Catalog store to read identifiers from
            limit: Safety ceiling on the number of entries

        Returns:
            Number of cached identifiers
        """
        log = logger.bind(limit=limit)
        started = time.monotonic()
        self.build_count += 1
        try:
            raw = await store.load_identity_index(limit)
        except Exception as e:
            log.warning(
                "identity_cache_build_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            self._index = {}
            self.degraded = True
            self.built = True
            return 0

        self._index = {
            external_id.strip(): internal_id
            for external_id, internal_id in raw.items()
            if external_id and external_id.strip()
        }
        self.degraded = False
        self.built = True

        if len(raw) >= limit:
            log.warning("identity_cache_limit_reached", cached=len(self._index))
        log.info(
            "identity_cache_built",
            cached=len(self._index),
            seconds=round(time.monotonic() - started, 3),
        )
        return len(self._index)

    def resolve(self, external_id: str) -> Optional[int]:
        """Internal id for an external identifier, None when unknown."""
        if not external_id:
            return None
        return self._index.get(external_id.strip())
