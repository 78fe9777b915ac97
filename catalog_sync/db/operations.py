"""Database operations for sync run bookkeeping and the product audit trail.

Runs are inserted when an invocation starts and updated once when it ends;
history rows are appended in bulk, one insert per batch. Everything else here
serves administrative reads (recent runs, product history, summary stats)
and crash recovery of runs that never reached their final update.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, insert, func, case
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Sequence
import structlog

from catalog_sync.db.base import utcnow
from catalog_sync.db.models.sync_run import SyncRun
from catalog_sync.db.models.product_history import ProductHistory
from catalog_sync.errors.exceptions import DatabaseError

logger = structlog.get_logger(__name__)

STALE_RUN_MESSAGE = "Sync interrupted - timed out or terminated unexpectedly"


async def insert_run(
    session: AsyncSession,
    feed_path: str,
    batch_size: int,
    offset_start: int = 0,
    feed_record_count: int = 0,
    actor_id: Optional[int] = None,
) -> int:
    """Insert a "running" sync run row.

    Args:
        session: Async database session
        feed_path: Path of the feed being synchronized
        batch_size: Records per batch for this invocation
        offset_start: Feed offset the invocation starts at
        feed_record_count: Records counted in the feed (0 when not counted)
        actor_id: Actor the sync runs under

    Returns:
        ID of the new run

    Raises:
        DatabaseError: If database operation fails
    """
    try:
        run = SyncRun(
            feed_path=feed_path,
            batch_size=batch_size,
            offset_start=offset_start,
            offset_end=offset_start,
            feed_record_count=feed_record_count,
            actor_id=actor_id,
            status="running",
        )
        session.add(run)
        await session.flush()  # Flush to get the ID

        logger.info(
            "sync_run_inserted",
            run_id=run.id,
            feed_path=feed_path,
            offset_start=offset_start,
        )
        return run.id

    except Exception as e:
        logger.error(
            "insert_run_failed",
            feed_path=feed_path,
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError(f"Failed to insert sync run: {e}") from e


async def update_run(
    session: AsyncSession,
    run_id: int,
    **fields: Any,
) -> None:
    """Update columns of a sync run.

    Args:
        session: Async database session
        run_id: Run to update
        **fields: Column values to set

    Raises:
        DatabaseError: If database operation fails
    """
    try:
        await session.execute(
            update(SyncRun)
            .where(SyncRun.id == run_id)
            .values(**fields)
        )
        logger.debug("sync_run_updated", run_id=run_id, fields=sorted(fields))

    except Exception as e:
        logger.error(
            "update_run_failed",
            run_id=run_id,
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError(f"Failed to update sync run {run_id}: {e}") from e


async def append_history_rows(
    session: AsyncSession,
    rows: Sequence[Dict[str, Any]],
) -> int:
    """Append product history rows with a single bulk insert.

    Args:
        session: Async database session
        rows: Dicts with product_id, sync_run_id, external_id,
              field_changed, old_value, new_value

    Returns:
        Number of rows appended

    Raises:
        DatabaseError: If database operation fails
    """
    if not rows:
        return 0

    try:
        await session.execute(insert(ProductHistory), list(rows))
        logger.debug("history_rows_appended", count=len(rows))
        return len(rows)

    except Exception as e:
        logger.error(
            "append_history_rows_failed",
            count=len(rows),
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError(f"Failed to append history rows: {e}") from e


async def get_recent_runs(
    session: AsyncSession,
    limit: int = 20,
) -> List[SyncRun]:
    """Most recent sync runs, newest first."""
    result = await session.execute(
        select(SyncRun)
        .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_last_run(session: AsyncSession) -> Optional[SyncRun]:
    """The newest sync run, if any."""
    runs = await get_recent_runs(session, limit=1)
    return runs[0] if runs else None


async def get_product_history(
    session: AsyncSession,
    product_id: int,
    limit: int = 50,
) -> List[ProductHistory]:
    """History rows of one product, newest first."""
    result = await session.execute(
        select(ProductHistory)
        .where(ProductHistory.product_id == product_id)
        .order_by(ProductHistory.recorded_at.desc(), ProductHistory.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_sync_stats(
    session: AsyncSession,
    days: int = 30,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Summary of sync runs started within the last `days` days.

    Returns:
        Dict with total_syncs, total_updated, total_errors,
        avg_execution_time and failed_syncs
    """
    since = (now or utcnow()) - timedelta(days=days)
    result = await session.execute(
        select(
            func.count(SyncRun.id),
            func.coalesce(func.sum(SyncRun.updated), 0),
            func.coalesce(func.sum(SyncRun.errors), 0),
            func.coalesce(func.avg(SyncRun.execution_time), 0.0),
            func.coalesce(
                func.sum(case((SyncRun.status == "failed", 1), else_=0)),
                0,
            ),
        ).where(SyncRun.started_at >= since)
    )
    total, updated, errors, avg_time, failed = result.one()
    return {
        "total_syncs": int(total),
        "total_updated": int(updated),
        "total_errors": int(errors),
        "avg_execution_time": float(avg_time),
        "failed_syncs": int(failed),
    }


async def delete_run(session: AsyncSession, run_id: int) -> bool:
    """Delete a sync run (administrative action).

    History rows keep their data; their sync_run_id is cleared by the
    foreign key.

    Returns:
        True if a row was deleted

    Raises:
        DatabaseError: If database operation fails
    """
    try:
        result = await session.execute(delete(SyncRun).where(SyncRun.id == run_id))
        deleted = result.rowcount > 0
        logger.info("sync_run_deleted", run_id=run_id, deleted=deleted)
        return deleted

    except Exception as e:
        logger.error(
            "delete_run_failed",
            run_id=run_id,
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError(f"Failed to delete sync run {run_id}: {e}") from e


async def reclaim_stale_runs(
    session: AsyncSession,
    older_than_minutes: int = 5,
    now: Optional[datetime] = None,
) -> int:
    """Mark runs stuck in "running" beyond the window as failed.

    A process killed mid-run never writes its final status; this turns those
    rows into failed runs with an explanatory message.

    Args:
        session: Async database session
        older_than_minutes: Age after which a running row is considered stale
        now: Reference time (defaults to current UTC time)

    Returns:
        Number of reclaimed runs

    Raises:
        DatabaseError: If database operation fails
    """
    cutoff = (now or utcnow()) - timedelta(minutes=older_than_minutes)
    try:
        result = await session.execute(
            update(SyncRun)
            .where(SyncRun.status == "running")
            .where(SyncRun.started_at < cutoff)
            .values(status="failed", error_message=STALE_RUN_MESSAGE)
        )
        reclaimed = result.rowcount

        if reclaimed:
            logger.warning(
                "stale_runs_reclaimed",
                reclaimed=reclaimed,
                older_than_minutes=older_than_minutes,
            )
        return reclaimed

    except Exception as e:
        logger.error(
            "reclaim_stale_runs_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError(f"Failed to reclaim stale runs: {e}") from e
