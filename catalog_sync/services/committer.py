"""Applies a batch of pending changes with per-record isolation."""
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence
import structlog

from catalog_sync.errors.exceptions import CatalogSyncError, RecordCommitError
from catalog_sync.models.pending_change import CommitResult, PendingChange
from catalog_sync.services.run_recorder import RunRecorder
from catalog_sync.stores.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)


class Committer:
    """Saves each pending change on its own; a failure never blocks the rest.

    Audit entries of successful saves are queued on the recorder, and the
    recorder is flushed once per batch. A failed flush is logged and its rows
    counted in dropped_audit_rows; the saves it followed stand. A configurable
    pause follows every batch to keep pressure off the shared catalog
    database.

    Args:
        store: Catalog store that owns the per-record transaction
        recorder: Run recorder receiving audit rows (None for no audit)
        pause_seconds: Pause after each batch, 0 disables it
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        store: CatalogStore,
        recorder: Optional[RunRecorder] = None,
        pause_seconds: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.recorder = recorder
        self.pause_seconds = pause_seconds
        self.sleep = sleep
        self.dropped_audit_rows = 0

    async def _commit_one(self, change: PendingChange) -> None:
        record = await self.store.get_record(change.internal_id)
        if record is None:
            raise RecordCommitError(
                f"Catalog record {change.internal_id} no longer exists",
                internal_id=change.internal_id,
            )
        change.apply_to(record)
        await self.store.save(record)

    async def _flush_audit(self) -> None:
        """Write the queued audit rows; a failed write never undoes saved records."""
        pending = self.recorder.pending
        try:
            await self.recorder.flush()
        except Exception as e:
            self.dropped_audit_rows += pending
            logger.error(
                "audit_flush_failed",
                run_id=self.recorder.run_id,
                dropped_rows=pending,
                error=e.message if isinstance(e, CatalogSyncError) else str(e),
                error_type=type(e).__name__,
            )

    async def apply(self, changes: Sequence[PendingChange]) -> List[CommitResult]:
        """Commit every change, flush the audit trail, then pause.

        Returns:
            One CommitResult per change, in order
        """
        results: List[CommitResult] = []
        for change in changes:
            try:
                await self._commit_one(change)
            except Exception as e:
                message = e.message if isinstance(e, RecordCommitError) else str(e)
                logger.warning(
                    "record_commit_failed",
                    internal_id=change.internal_id,
                    external_id=change.external_id,
                    error=message,
                    error_type=type(e).__name__,
                )
                results.append(CommitResult(change.internal_id, ok=False, error=message))
                continue

            if self.recorder is not None:
                for entry in change.audit:
                    self.recorder.queue_change(change.internal_id, change.external_id, entry)
            results.append(CommitResult(change.internal_id, ok=True))

        if self.recorder is not None:
            await self._flush_audit()

        if self.pause_seconds > 0:
            await self.sleep(self.pause_seconds)

        return results
