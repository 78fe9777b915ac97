"""Feed completeness gate run before a destructive sync."""
import asyncio
from typing import Awaitable, Callable, Optional
import structlog

from catalog_sync.config import SyncSettings, sync_settings
from catalog_sync.errors.exceptions import FeedOpenError, FeedValidationError
from catalog_sync.feed.reader import FeedReader
from catalog_sync.models.catalog_record import RecordStatus
from catalog_sync.stores.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)


def is_incomplete(
    feed_count: int,
    published_count: int,
    min_ratio: float = 0.5,
    min_published: int = 100,
) -> bool:
    """Whether a feed looks truncated compared to the published catalog.

    Examples:
        >>> is_incomplete(0, 10)
        True
        >>> is_incomplete(400, 1000)
        True
        >>> is_incomplete(600, 1000)
        False
        >>> is_incomplete(10, 100)
        False
    """
    if feed_count == 0:
        return True
    return published_count > min_published and feed_count < int(published_count * min_ratio)


class FeedValidator:
    """Counts feed and published catalog records, retrying while the feed looks short.

    Args:
        store: Catalog store used for the published count
        config: Retry and threshold settings
        sleep: Awaitable sleep between attempts, injectable for tests
    """

    def __init__(
        self,
        store: CatalogStore,
        config: SyncSettings = sync_settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.config = config
        self.sleep = sleep
        self.attempts = 0

    async def _count_feed(self, reader: FeedReader) -> int:
        try:
            return await asyncio.to_thread(reader.count_records)
        except FeedOpenError as e:
            logger.warning("feed_count_failed", feed_path=str(reader.path), error=e.message)
            return 0

    async def validate(self, reader: FeedReader) -> int:
        """Check the feed, waiting and recounting while it looks incomplete.

        Returns:
            Feed record count of the accepted attempt

        Raises:
            FeedValidationError: If the feed is still incomplete after the last attempt
        """
        log = logger.bind(feed_path=str(reader.path))
        max_retries = self.config.validation_max_retries
        feed_count: Optional[int] = None
        published = 0

        for attempt in range(1, max_retries + 1):
            self.attempts = attempt
            feed_count = await self._count_feed(reader)
            published = await self.store.count_by_status(RecordStatus.PUBLISH.value)

            if not is_incomplete(
                feed_count,
                published,
                self.config.validation_min_ratio,
                self.config.validation_min_published,
            ):
                log.info(
                    "feed_validated",
                    feed_count=feed_count,
                    published_count=published,
                    attempt=attempt,
                )
                return feed_count

            log.warning(
                "feed_incomplete",
                feed_count=feed_count,
                published_count=published,
                attempt=attempt,
                max_retries=max_retries,
            )
            if attempt < max_retries:
                await self.sleep(self.config.validation_retry_delay_seconds)

        raise FeedValidationError(
            f"Feed appears incomplete after {max_retries} attempts: "
            f"{feed_count} feed records vs {published} published",
            feed_count=feed_count or 0,
            published_count=published,
        )
