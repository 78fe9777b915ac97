"""Cumulative statistics across the invocations of one sync session."""
import base64
import binascii
import json
from typing import Optional

from pydantic import ValidationError
import structlog

from catalog_sync.models.sync_stats import CumulativeStats, SyncCounters

logger = structlog.get_logger(__name__)

_COUNTER_FIELDS = tuple(SyncCounters.model_fields)


class StatsAggregator:
    """Folds per-invocation counters into session totals.

    The totals travel between processes as an opaque token (base64 encoded
    JSON), so a resumed invocation can continue counting where the previous
    one stopped.
    """

    def __init__(self, cumulative: Optional[CumulativeStats] = None):
        self.cumulative = cumulative or CumulativeStats()

    def merge(self, counters: SyncCounters, elapsed: float) -> CumulativeStats:
        """Add one invocation's counters; each invocation counts as one batch."""
        for name in _COUNTER_FIELDS:
            setattr(self.cumulative, name, getattr(self.cumulative, name) + getattr(counters, name))
        self.cumulative.batches += 1
        self.cumulative.total_time += max(elapsed, 0.0)
        return self.cumulative

    def reset(self) -> None:
        self.cumulative = CumulativeStats()

    def to_token(self) -> str:
        """Serialize the cumulative totals for a later invocation."""
        payload = self.cumulative.model_dump_json().encode("utf-8")
        return base64.urlsafe_b64encode(payload).decode("ascii")

    @classmethod
    def from_token(cls, token: Optional[str]) -> "StatsAggregator":
        """Restore totals from a token; an empty token starts from zero.

        Raises:
            ValueError: If the token cannot be decoded
        """
        if not token:
            return cls()
        try:
            payload = base64.urlsafe_b64decode(token.encode("ascii"))
            return cls(CumulativeStats.model_validate(json.loads(payload)))
        except (binascii.Error, UnicodeError, json.JSONDecodeError, ValidationError) as e:
            logger.error("stats_token_invalid", error=str(e))
            raise ValueError(f"Invalid cumulative stats token: {e}") from e
