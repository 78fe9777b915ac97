"""Supplier feed reading."""
from catalog_sync.feed.reader import FeedReader

__all__ = [
    "FeedReader",
]
