"""Sync run bookkeeping and the batched product audit trail."""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import structlog

from sqlalchemy.orm import sessionmaker

from catalog_sync.db import operations
from catalog_sync.db.base import async_session_maker
from catalog_sync.models.pending_change import AuditEntry, LockReason
from catalog_sync.models.sync_messages import SyncRunStatus
from catalog_sync.models.sync_stats import SyncCounters

logger = structlog.get_logger(__name__)

LOCK_EVENT_FIELD = "product_locked"


def audit_value(value: Any) -> Optional[str]:
    """Text form of an audited value as stored in product_history."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


class RunRecorder:
    """Owns the sync_runs row of one invocation and its queued history rows.

    History rows are queued while a batch is decided and committed, then
    written with a single bulk insert by flush().

    Args:
        session_maker: Async session factory
    """

    def __init__(self, session_maker: sessionmaker = async_session_maker):
        self.session_maker = session_maker
        self.run_id: Optional[int] = None
        self._queue: List[Dict[str, Any]] = []
        self.flushed = 0

    @property
    def pending(self) -> int:
        """Number of queued history rows."""
        return len(self._queue)

    async def start(
        self,
        feed_path: str,
        batch_size: int,
        offset_start: int = 0,
        feed_record_count: int = 0,
        actor_id: Optional[int] = None,
    ) -> int:
        """Insert the running row for this invocation and remember its id."""
        async with self.session_maker() as session:
            self.run_id = await operations.insert_run(
                session,
                feed_path=feed_path,
                batch_size=batch_size,
                offset_start=offset_start,
                feed_record_count=feed_record_count,
                actor_id=actor_id,
            )
            await session.commit()
        return self.run_id

    def queue_change(self, internal_id: int, external_id: str, entry: AuditEntry) -> None:
        """Queue one field change of a committed record."""
        self._queue.append({
            "product_id": internal_id,
            "sync_run_id": self.run_id,
            "external_id": external_id,
            "field_changed": entry.field,
            "old_value": audit_value(entry.old_value),
            "new_value": audit_value(entry.new_value),
        })

    def queue_lock(
        self,
        internal_id: int,
        external_id: str,
        reason: LockReason,
        attempted_price: Any,
    ) -> None:
        """Queue a lock event: old value is the lock label, new value the price that was not applied."""
        self._queue.append({
            "product_id": internal_id,
            "sync_run_id": self.run_id,
            "external_id": external_id,
            "field_changed": LOCK_EVENT_FIELD,
            "old_value": reason.label,
            "new_value": audit_value(attempted_price),
        })

    async def flush(self) -> int:
        """Write every queued row with one bulk insert.

        Raises:
            DatabaseError: If the rows cannot be written
        """
        if not self._queue:
            return 0
        rows, self._queue = self._queue, []
        async with self.session_maker() as session:
            written = await operations.append_history_rows(session, rows)
            await session.commit()
        self.flushed += written
        logger.debug("audit_rows_flushed", run_id=self.run_id, count=written)
        return written

    async def finish(
        self,
        status: SyncRunStatus,
        counters: SyncCounters,
        execution_time: float,
        offset_end: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Write the final status and counters of the run."""
        if self.run_id is None:
            return
        async with self.session_maker() as session:
            await operations.update_run(
                session,
                self.run_id,
                status=status.value,
                processed=counters.processed,
                updated=counters.updated,
                unchanged=counters.unchanged,
                skipped=counters.skipped,
                skipped_instock=counters.skipped_instock,
                locked=counters.locked,
                not_found=counters.not_found,
                errors=counters.errors,
                execution_time=round(execution_time, 3),
                offset_end=offset_end,
                error_message=error_message,
            )
            await session.commit()
        logger.info(
            "sync_run_finished",
            run_id=self.run_id,
            status=status.value,
            processed=counters.processed,
            offset_end=offset_end,
        )
