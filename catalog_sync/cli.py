"""Command line entry point for the catalog sync engine.

Usage:
    catalog-sync sync /data/feed.xml
    catalog-sync sync /data/feed.xml --batch-size 50 --dry-run
    catalog-sync sync /data/feed.xml --offset 250 --resume-token <token>
    catalog-sync clear-cache
    catalog-sync reclaim-stale-runs --minutes 5
    catalog-sync init-db
"""
import asyncio
import argparse
import sys
from typing import List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from catalog_sync.config import settings, sync_settings
from catalog_sync.db import operations
from catalog_sync.db.base import async_session_maker, engine, init_db
from catalog_sync.errors.exceptions import (
    ActorNotFoundError,
    CatalogSyncError,
    FeedOpenError,
    FeedValidationError,
)
from catalog_sync.models.sync_messages import SyncRequest, SyncResult
from catalog_sync.models.sync_stats import CumulativeStats, SyncCounters
from catalog_sync.services.cache_invalidation import clear_derived_caches
from catalog_sync.services.orchestrator import SyncOrchestrator
from catalog_sync.services.sync_state import SyncStatusPublisher
from catalog_sync.stores.sql_catalog_store import SqlCatalogStore


def _redis_client() -> Redis:
    return Redis.from_url(settings.redis_url)


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def print_counters(title: str, counters: SyncCounters, elapsed: float) -> None:
    """Print the counter block of one invocation or of the whole session."""
    processed = counters.processed
    print("")
    print(f"=== {title} ===")
    print(f"Processed:       {processed} products")
    print(f"Updated:         {counters.updated} products ({_percent(counters.updated, processed):.1f}%)")
    print(f"Unchanged:       {counters.unchanged} products ({_percent(counters.unchanged, processed):.1f}%)")
    print(f"Locked:          {counters.locked} products")
    print(f"Skipped (empty): {counters.skipped} products")
    print(f"Skipped (stock): {counters.skipped_instock} products")
    print(f"Not Found:       {counters.not_found} products")
    print(f"Errors:          {counters.errors} products")
    rate = processed / elapsed if elapsed > 0 else 0.0
    print(f"Time:            {elapsed:.2f} seconds ({rate:.1f} products/sec)")


def print_summary(results: List[SyncResult]) -> None:
    """Per-invocation blocks, plus the cumulative block for resumed sessions."""
    for index, result in enumerate(results, start=1):
        print_counters(f"Invocation #{index} ({result.status.value})", result.counters, result.elapsed)
        print(f"Offsets:         {result.offset_start} -> {result.offset_end}")
        if result.error_message:
            print(f"Error:           {result.error_message}")

    if len(results) > 1:
        cumulative: CumulativeStats = results[-1].cumulative
        print_counters(
            f"Cumulative ({cumulative.batches} invocations)",
            cumulative,
            cumulative.total_time,
        )

    last = results[-1]
    if last.resume_offset is not None:
        print("")
        print(f"⏸️  Stopped at offset {last.resume_offset}. Resume with:")
        print(f"   --offset {last.resume_offset} --resume-token {last.cumulative_token}")


def build_orchestrator(redis: Optional[Redis]) -> SyncOrchestrator:
    """Orchestrator over the SQL catalog, publishing status to Redis."""

    def progress(counters: SyncCounters, offset: int) -> None:
        print(f"⏳ {counters.processed} processed, next offset {offset}")

    return SyncOrchestrator(
        SqlCatalogStore(),
        config=sync_settings,
        publisher=SyncStatusPublisher(redis) if redis is not None else None,
        cache_redis=redis,
        progress=progress,
    )


async def cmd_sync(args: argparse.Namespace) -> int:
    try:
        request = SyncRequest(
            feed_path=args.file,
            batch_size=args.batch_size,
            offset=args.offset,
            limit=args.limit,
            dry_run=args.dry_run,
            skip_validation=args.skip_validation,
            actor_id=args.actor,
            cumulative_token=args.resume_token,
        )
    except ValueError as e:
        print(f"❌ Invalid arguments: {e}")
        return 1

    if request.dry_run:
        print("🔍 DRY RUN - no changes will be written")
    print(f"📂 Feed:   {request.feed_path}")
    print(f"   Batch:  {request.batch_size}   Offset: {request.offset}   Limit: {request.limit or 'all'}")

    redis = _redis_client()
    try:
        orchestrator = build_orchestrator(redis)
        results = await orchestrator.run_session(request)
    except FeedOpenError as e:
        print(f"❌ Feed not found: {e.message}")
        return 1
    except ActorNotFoundError as e:
        print(f"❌ {e.message}")
        return 1
    except FeedValidationError as e:
        print(f"❌ Feed validation failed: {e.message}")
        return 1
    except CatalogSyncError as e:
        print(f"❌ Sync aborted: {e.message}")
        return 1
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    finally:
        await redis.aclose()

    print_summary(results)
    if not results[-1].succeeded:
        print("❌ Sync failed")
        return 1
    print("✅ Sync finished")
    return 0


async def cmd_clear_cache(args: argparse.Namespace) -> int:
    pattern = args.pattern or sync_settings.derived_cache_pattern
    redis = _redis_client()
    try:
        deleted = await clear_derived_caches(redis, pattern)
    except RedisError as e:
        print(f"❌ Could not clear caches: {e}")
        return 1
    finally:
        await redis.aclose()
    print(f"✅ Cleared {deleted} cached keys matching {pattern}")
    return 0


async def cmd_reclaim_stale_runs(args: argparse.Namespace) -> int:
    async with async_session_maker() as session:
        try:
            reclaimed = await operations.reclaim_stale_runs(
                session, older_than_minutes=args.minutes
            )
            await session.commit()
        except CatalogSyncError as e:
            await session.rollback()
            print(f"❌ {e.message}")
            return 1
    print(f"✅ Marked {reclaimed} stale runs as failed")
    return 0


async def cmd_init_db(args: argparse.Namespace) -> int:
    await init_db()
    print("✅ Database tables created")
    return 0


COMMANDS = {
    "sync": cmd_sync,
    "clear-cache": cmd_clear_cache,
    "reclaim-stale-runs": cmd_reclaim_stale_runs,
    "init-db": cmd_init_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-sync",
        description="Synchronize the product catalog with a supplier XML feed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run a feed synchronization")
    sync.add_argument("file", help="Path to the supplier XML feed")
    sync.add_argument(
        "--batch-size",
        type=int,
        default=sync_settings.batch_size,
        help=f"Records per batch (default: {sync_settings.batch_size})",
    )
    sync.add_argument("--offset", type=int, default=0, help="Feed records to skip")
    sync.add_argument("--limit", type=int, default=None, help="Maximum records to process")
    sync.add_argument("--dry-run", action="store_true", help="Report decisions without writing")
    sync.add_argument(
        "--skip-validation",
        action="store_true",
        help="Skip the feed completeness check",
    )
    sync.add_argument(
        "--actor",
        type=int,
        default=None,
        help=f"Actor id for audit attribution (default: {sync_settings.default_actor_id})",
    )
    sync.add_argument(
        "--resume-token",
        default=None,
        help="Cumulative stats token printed by a timed-out invocation",
    )

    clear = subparsers.add_parser("clear-cache", help="Invalidate derived catalog caches")
    clear.add_argument("--pattern", default=None, help="Redis key pattern to delete")

    reclaim = subparsers.add_parser(
        "reclaim-stale-runs",
        help="Mark runs stuck in 'running' as failed",
    )
    reclaim.add_argument(
        "--minutes",
        type=int,
        default=sync_settings.stale_run_minutes,
        help=f"Age in minutes (default: {sync_settings.stale_run_minutes})",
    )

    subparsers.add_parser("init-db", help="Create missing database tables")
    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    try:
        return await COMMANDS[args.command](args)
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_dispatch(args))


if __name__ == "__main__":
    sys.exit(main())
