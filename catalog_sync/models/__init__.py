"""Pydantic and dataclass models for the sync engine."""
from catalog_sync.models.feed_record import FeedRecord
from catalog_sync.models.catalog_record import (
    Actor,
    AttributeSnapshot,
    CatalogRecord,
    RecordStatus,
    StockStatus,
)
from catalog_sync.models.pending_change import (
    AuditEntry,
    CommitResult,
    LockReason,
    PendingChange,
    RecordDecision,
    RecordOutcome,
)
from catalog_sync.models.sync_stats import SyncCounters, CumulativeStats
from catalog_sync.models.sync_messages import (
    SyncState,
    SyncRunStatus,
    SyncRequest,
    SyncResult,
    SyncStatusMessage,
)

__all__ = [
    "FeedRecord",
    "Actor",
    "AttributeSnapshot",
    "CatalogRecord",
    "RecordStatus",
    "StockStatus",
    "AuditEntry",
    "CommitResult",
    "LockReason",
    "PendingChange",
    "RecordDecision",
    "RecordOutcome",
    "SyncCounters",
    "CumulativeStats",
    "SyncState",
    "SyncRunStatus",
    "SyncRequest",
    "SyncResult",
    "SyncStatusMessage",
]
