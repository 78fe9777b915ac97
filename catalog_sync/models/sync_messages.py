"""Pydantic models for sync requests, results and status tracking."""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, timezone
from enum import Enum

from catalog_sync.models.sync_stats import CumulativeStats, SyncCounters


class SyncState(str, Enum):
    """Orchestrator states, published for status tracking."""
    IDLE = "idle"
    VALIDATING = "validating"
    CACHE_BUILDING = "cache_building"
    STREAMING = "streaming"
    RESOLVING = "resolving"
    ATTRIBUTE_LOADING = "attribute_loading"
    DECIDING = "deciding"
    COMMITTING = "committing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class SyncRunStatus(str, Enum):
    """Persisted status of a sync_runs row."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class SyncRequest(BaseModel):
    """Parameters of one sync invocation.

    Attributes:
        feed_path: Path to the supplier XML feed
        batch_size: Records decided and committed together
        offset: Number of feed records to skip (resume point)
        limit: Maximum records to read, None for the whole feed
        dry_run: Decide and report without mutating anything
        skip_validation: Skip the feed completeness check
        actor_id: Actor the sync runs under (audit attribution)
        cumulative_token: Serialized cumulative stats of earlier invocations
    """
    feed_path: str = Field(..., min_length=1)
    batch_size: int = Field(default=25, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    limit: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False
    skip_validation: bool = False
    actor_id: Optional[int] = Field(default=None, ge=1)
    cumulative_token: Optional[str] = None

    @field_validator('feed_path')
    @classmethod
    def validate_feed_path(cls, v: str) -> str:
        """Strip whitespace from feed_path."""
        return v.strip()

    @property
    def is_resumed(self) -> bool:
        """Whether this invocation continues an earlier one."""
        return self.offset > 0

    def resumed(self, result: "SyncResult") -> Optional["SyncRequest"]:
        """Request continuing after a timed-out invocation, None when nothing is left."""
        if result.resume_offset is None:
            return None
        limit = self.limit
        if limit is not None:
            limit -= result.counters.processed
            if limit <= 0:
                return None
        return self.model_copy(update={
            "offset": result.resume_offset,
            "limit": limit,
            "cumulative_token": result.cumulative_token,
        })


class SyncResult(BaseModel):
    """Outcome of one sync invocation."""
    run_id: Optional[int] = None
    status: SyncRunStatus
    counters: SyncCounters = Field(default_factory=SyncCounters)
    cumulative: CumulativeStats = Field(default_factory=CumulativeStats)
    cumulative_token: str = ""
    offset_start: int = 0
    offset_end: int = 0
    resume_offset: Optional[int] = None
    elapsed: float = 0.0
    error_message: Optional[str] = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        """Whether the invocation ended without a failure."""
        return self.status != SyncRunStatus.FAILED


class SyncStatusMessage(BaseModel):
    """Current sync status stored in Redis for dashboards."""
    state: SyncState = Field(default=SyncState.IDLE)
    run_id: Optional[int] = None
    feed_path: Optional[str] = None
    processed: int = Field(default=0, ge=0)
    offset: int = Field(default=0, ge=0)
    updated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def is_syncing(self) -> bool:
        """Whether a sync is in progress."""
        return self.state not in (
            SyncState.IDLE,
            SyncState.COMPLETED,
            SyncState.FAILED,
            SyncState.TIMED_OUT,
        )
