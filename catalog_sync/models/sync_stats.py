"""Pydantic models for per-invocation and cumulative sync statistics."""
from pydantic import BaseModel, Field

from catalog_sync.models.pending_change import RecordOutcome


class SyncCounters(BaseModel):
    """Counters of one invocation.

    Every record read from the feed lands in exactly one outcome counter,
    so accounted() always equals processed.
    """
    processed: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    unchanged: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    skipped_instock: int = Field(default=0, ge=0)
    locked: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    not_found: int = Field(default=0, ge=0)

    def record(self, outcome: RecordOutcome) -> None:
        """Count one classified record."""
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    def accounted(self) -> int:
        """Sum of all outcome counters."""
        return (
            self.updated
            + self.unchanged
            + self.skipped
            + self.skipped_instock
            + self.locked
            + self.not_found
            + self.errors
        )


class CumulativeStats(SyncCounters):
    """Totals across all invocations of one logical sync session.

    Each invocation, including each resumption after a time-boxed stop,
    counts as one batch.
    """
    batches: int = Field(default=0, ge=0)
    total_time: float = Field(default=0.0, ge=0.0)

    @property
    def throughput(self) -> float:
        """Records per second over the whole session."""
        return self.processed / self.total_time if self.total_time > 0 else 0.0
