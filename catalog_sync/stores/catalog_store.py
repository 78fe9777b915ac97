"""Abstract catalog store interface used by the sync engine."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from catalog_sync.models.catalog_record import Actor, CatalogRecord


class CatalogStore(ABC):
    """Abstract base class for the internal product catalog.

    The sync engine never touches catalog tables directly; it reads and
    writes through this interface so the same engine can run against the
    SQL catalog or an in-memory catalog in tests.

    Implementations must provide:
    - identity lookups by external identifier (bulk and singular)
    - bulk and single attribute reads
    - record load and save (save owns its own transaction)
    - record counts by lifecycle status
    - actor lookup for audit attribution
    """

    @abstractmethod
    async def load_identity_index(self, limit: int) -> Dict[str, int]:
        """Map every non-empty external identifier to its record id.

        Args:
            limit: Maximum number of entries to load

        Returns:
            Dict of external id -> internal id
        """
        pass

    @abstractmethod
    async def find_ids_by_external_ids(self, external_ids: Iterable[str]) -> Dict[str, int]:
        """Resolve several external identifiers; unknown ones are absent."""
        pass

    @abstractmethod
    async def find_id_by_external_id(self, external_id: str) -> Optional[int]:
        """Resolve one external identifier."""
        pass

    @abstractmethod
    async def bulk_read_attributes(
        self,
        ids: List[int],
        keys: Iterable[str],
    ) -> Dict[int, Dict[str, Any]]:
        """Read a fixed attribute set for many records in one round trip.

        Args:
            ids: Internal record ids
            keys: Attribute keys to read

        Returns:
            Dict of id -> {key: value}; ids or keys without a stored value
            may be missing from the result

        Raises:
            AttributeLoadDegradation: If the bulk read cannot be served
        """
        pass

    @abstractmethod
    async def read_attribute(self, internal_id: int, key: str) -> Any:
        """Read one attribute of one record (None when not stored)."""
        pass

    @abstractmethod
    async def get_record(self, internal_id: int) -> Optional[CatalogRecord]:
        """Load a record for mutation, None if it no longer exists."""
        pass

    @abstractmethod
    async def save(self, record: CatalogRecord) -> None:
        """Persist a mutated record in its own transaction.

        Raises:
            RecordCommitError: If the record cannot be saved
        """
        pass

    @abstractmethod
    async def count_by_status(self, status: str) -> int:
        """Number of records in the given lifecycle status."""
        pass

    @abstractmethod
    async def get_actor(self, actor_id: int) -> Optional[Actor]:
        """Look up the actor a sync runs under."""
        pass
