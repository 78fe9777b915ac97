"""Custom exception hierarchy for catalog synchronization errors."""


class CatalogSyncError(Exception):
    """Base exception for all catalog synchronization errors."""
    
    def __init__(self, message: str, *args, **kwargs):
        """Initialize error with message."""
        self.message = message
        super().__init__(message, *args, **kwargs)


class FeedOpenError(CatalogSyncError):
    """Raised when the feed file cannot be opened or read."""
    pass


class FeedValidationError(CatalogSyncError):
    """Raised when the feed still looks truncated after all count attempts."""
    
    def __init__(self, message: str, feed_count: int = 0, published_count: int = 0):
        super().__init__(message)
        self.feed_count = feed_count
        self.published_count = published_count


class RecordResolutionMiss(CatalogSyncError):
    """Raised when an external identifier has no catalog record."""
    pass


class AttributeLoadDegradation(CatalogSyncError):
    """Raised when a bulk attribute read fails and per-record reads must be used."""
    pass


class RecordCommitError(CatalogSyncError):
    """Raised when a single record cannot be saved."""
    
    def __init__(self, message: str, internal_id: int | None = None):
        super().__init__(message)
        self.internal_id = internal_id


class ActorNotFoundError(CatalogSyncError):
    """Raised when the sync actor does not exist or is inactive."""
    pass


class DatabaseError(CatalogSyncError):
    """Raised when database operations fail."""
    pass
