"""Error handling module."""
from catalog_sync.errors.exceptions import (
    CatalogSyncError,
    FeedOpenError,
    FeedValidationError,
    RecordResolutionMiss,
    AttributeLoadDegradation,
    RecordCommitError,
    ActorNotFoundError,
    DatabaseError,
)

__all__ = [
    "CatalogSyncError",
    "FeedOpenError",
    "FeedValidationError",
    "RecordResolutionMiss",
    "AttributeLoadDegradation",
    "RecordCommitError",
    "ActorNotFoundError",
    "DatabaseError",
]
