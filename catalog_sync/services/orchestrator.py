"""Sync orchestrator: drives one feed synchronization end to end.

One invocation (run) walks the state machine

    idle -> validating -> cache_building -> streaming
         -> (resolving -> attribute_loading -> deciding -> committing)*
         -> finalizing -> completed | failed | timed_out

Batches are strictly sequential: every record of a batch is resolved and
its attributes loaded before any record of that batch is committed, and
the next batch starts only after the previous one's commits and audit
flush. A time-boxed invocation that runs out of budget stops between
records, finishes the partial batch it already read and reports where to
resume. run_session() keeps resuming until the feed is consumed.
"""
import asyncio
import time
from typing import Awaitable, Callable, Iterator, List, Optional, Tuple
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from catalog_sync.config import SyncSettings, sync_settings
from catalog_sync.errors.exceptions import ActorNotFoundError, FeedOpenError
from catalog_sync.feed.reader import FeedReader
from catalog_sync.models.feed_record import FeedRecord
from catalog_sync.models.pending_change import PendingChange, RecordOutcome
from catalog_sync.models.sync_messages import (
    SyncRequest,
    SyncResult,
    SyncRunStatus,
    SyncState,
)
from catalog_sync.models.sync_stats import SyncCounters
from catalog_sync.services.attribute_cache import AttributeCache
from catalog_sync.services.cache_invalidation import clear_derived_caches
from catalog_sync.services.committer import Committer
from catalog_sync.services.decision import decide_record
from catalog_sync.services.execution_budget import ExecutionBudget
from catalog_sync.services.feed_validator import FeedValidator
from catalog_sync.services.identity_cache import IdentityCache
from catalog_sync.services.lock_policy import LockPolicy
from catalog_sync.services.run_recorder import RunRecorder
from catalog_sync.services.stats import StatsAggregator
from catalog_sync.services.sync_state import SyncStatusPublisher
from catalog_sync.stores.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)

_TERMINAL_STATES = {
    SyncRunStatus.COMPLETED: SyncState.COMPLETED,
    SyncRunStatus.TIMEOUT: SyncState.TIMED_OUT,
    SyncRunStatus.FAILED: SyncState.FAILED,
}

ProgressCallback = Callable[[SyncCounters, int], None]


class SyncOrchestrator:
    """Owns the caches of a sync session and runs invocations against them.

    The identity cache is built on the first invocation and reused by every
    later invocation of the same orchestrator, including resumptions.

    Args:
        store: Catalog store
        config: Sync settings
        recorder_factory: Builds the RunRecorder of each non-dry invocation
        publisher: Optional Redis status publisher
        cache_redis: Optional Redis holding derived caches to clear after
            a completed run
        sleep: Awaitable sleep (commit pause, validation retry)
        clock: Monotonic clock for elapsed time and the execution budget
        progress: Called after every batch with the invocation counters
            and the next feed offset
    """

    def __init__(
        self,
        store: CatalogStore,
        config: SyncSettings = sync_settings,
        recorder_factory: Callable[[], RunRecorder] = RunRecorder,
        publisher: Optional[SyncStatusPublisher] = None,
        cache_redis: Optional[Redis] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        progress: Optional[ProgressCallback] = None,
    ):
        self.store = store
        self.config = config
        self.recorder_factory = recorder_factory
        self.publisher = publisher
        self.cache_redis = cache_redis
        self.sleep = sleep
        self.clock = clock
        self.progress = progress

        self.identity = IdentityCache()
        self.attributes = AttributeCache(store, chunk_size=config.attribute_chunk_size)
        self.lock_policy = LockPolicy()
        self.validator = FeedValidator(store, config, sleep=sleep)
        self.state = SyncState.IDLE
        self._run_id: Optional[int] = None
        self._feed_path: Optional[str] = None

    async def _enter(
        self,
        state: SyncState,
        processed: int = 0,
        offset: int = 0,
        publish: bool = True,
    ) -> None:
        self.state = state
        if publish and self.publisher is not None:
            await self.publisher.publish(
                state,
                run_id=self._run_id,
                feed_path=self._feed_path,
                processed=processed,
                offset=offset,
            )

    async def _preflight(self, request: SyncRequest, reader: FeedReader) -> int:
        if not reader.exists():
            raise FeedOpenError(f"Feed file not found: {request.feed_path}")

        actor_id = request.actor_id or self.config.default_actor_id
        actor = await self.store.get_actor(actor_id)
        if actor is None or not actor.is_active:
            raise ActorNotFoundError(f"Actor {actor_id} not found or inactive")
        return actor.id

    def _read_batch(
        self,
        records: Iterator[FeedRecord],
        size: int,
        budget: ExecutionBudget,
        processed: int,
    ) -> Tuple[List[FeedRecord], bool, bool]:
        """Pull up to `size` records, checking the budget before each one.

        Returns:
            (batch, timed_out, exhausted)
        """
        batch: List[FeedRecord] = []
        while len(batch) < size:
            # Always make progress: the budget is honoured after the first record
            if (processed or batch) and budget.exhausted():
                return batch, True, False
            record = next(records, None)
            if record is None:
                return batch, False, True
            batch.append(record)
        return batch, False, False

    async def _process_batch(
        self,
        batch: List[FeedRecord],
        counters: SyncCounters,
        committer: Committer,
        recorder: Optional[RunRecorder],
        dry_run: bool,
        offset: int,
    ) -> None:
        # One status write per batch; the inner steps only move self.state
        await self._enter(SyncState.RESOLVING, counters.processed, offset)
        ids = [
            internal_id
            for internal_id in (self.identity.resolve(r.external_id) for r in batch)
            if internal_id is not None
        ]

        await self._enter(SyncState.ATTRIBUTE_LOADING, counters.processed, offset, publish=False)
        self.attributes.invalidate()
        await self.attributes.load(ids)

        await self._enter(SyncState.DECIDING, counters.processed, offset, publish=False)
        pending: List[PendingChange] = []
        for record in batch:
            decision = await decide_record(
                record,
                self.identity,
                self.attributes,
                self.lock_policy,
                self.config,
            )
            counters.processed += 1

            if decision.outcome == RecordOutcome.UPDATED and not dry_run:
                pending.append(decision.change)
                continue

            counters.record(decision.outcome)
            if decision.outcome == RecordOutcome.LOCKED:
                if recorder is not None:
                    recorder.queue_lock(
                        decision.internal_id,
                        record.external_id,
                        decision.lock_reason,
                        record.price,
                    )
                elif dry_run:
                    logger.info(
                        "dry_run_record_locked",
                        internal_id=decision.internal_id,
                        external_id=record.external_id,
                        reason=decision.lock_reason.label,
                    )
            elif decision.outcome == RecordOutcome.UPDATED:
                logger.info(
                    "dry_run_record_would_update",
                    internal_id=decision.internal_id,
                    external_id=record.external_id,
                    fields=[entry.field for entry in decision.change.audit],
                )

        if dry_run:
            self.attributes.invalidate()
            return

        await self._enter(SyncState.COMMITTING, counters.processed, offset, publish=False)
        results = await committer.apply(pending)
        for result in results:
            counters.record(RecordOutcome.UPDATED if result.ok else RecordOutcome.ERROR)
        self.attributes.invalidate()

    async def _clear_derived_caches(self) -> None:
        if self.cache_redis is None:
            return
        try:
            await clear_derived_caches(self.cache_redis, self.config.derived_cache_pattern)
        except RedisError as e:
            logger.warning("derived_cache_clear_skipped", error=str(e))

    async def run(self, request: SyncRequest) -> SyncResult:
        """Run one invocation of the sync.

        Raises:
            FeedOpenError: If the feed file does not exist
            ActorNotFoundError: If the actor is unknown or inactive
            FeedValidationError: If the feed looks truncated after all retries
        """
        reader = FeedReader.from_settings(request.feed_path, self.config)
        log = logger.bind(
            feed_path=request.feed_path,
            offset=request.offset,
            dry_run=request.dry_run,
        )
        self._feed_path = request.feed_path
        self._run_id = None

        actor_id = await self._preflight(request, reader)
        stats = StatsAggregator.from_token(request.cumulative_token)

        feed_record_count = 0
        if not (request.dry_run or request.is_resumed or request.skip_validation):
            await self._enter(SyncState.VALIDATING, offset=request.offset)
            feed_record_count = await self.validator.validate(reader)

        if not self.identity.built:
            await self._enter(SyncState.CACHE_BUILDING, offset=request.offset)
            await self.identity.build(self.store, self.config.identity_cache_limit)

        recorder: Optional[RunRecorder] = None
        if not request.dry_run:
            recorder = self.recorder_factory()
            self._run_id = await recorder.start(
                feed_path=request.feed_path,
                batch_size=request.batch_size,
                offset_start=request.offset,
                feed_record_count=feed_record_count,
                actor_id=actor_id,
            )
            log = log.bind(run_id=self._run_id)

        committer = Committer(
            self.store,
            recorder,
            pause_seconds=self.config.commit_pause_seconds,
            sleep=self.sleep,
        )
        budget = ExecutionBudget.from_settings(self.config, clock=self.clock)
        budget.start()
        counters = SyncCounters()
        position = request.offset
        timed_out = False
        error_message: Optional[str] = None
        records: Optional[Iterator[FeedRecord]] = None
        log.info("sync_started", batch_size=request.batch_size, limit=request.limit)

        try:
            await self._enter(SyncState.STREAMING, offset=position)
            records = reader.iter_records(offset=request.offset, limit=request.limit)
            while True:
                batch, timed_out, exhausted = self._read_batch(
                    records, request.batch_size, budget, counters.processed
                )
                if batch:
                    await self._process_batch(
                        batch, counters, committer, recorder, request.dry_run, position
                    )
                    position = batch[-1].position + 1
                    budget.record_done(len(batch))
                    if self.progress is not None:
                        self.progress(counters, position)
                if timed_out or exhausted or not batch:
                    break
            status = SyncRunStatus.TIMEOUT if timed_out else SyncRunStatus.COMPLETED

        except Exception as e:
            status = SyncRunStatus.FAILED
            error_message = e.message if isinstance(e, FeedOpenError) else str(e)
            log.error(
                "sync_failed",
                error=error_message,
                error_type=type(e).__name__,
                processed=counters.processed,
            )
        finally:
            if records is not None:
                records.close()

        await self._enter(SyncState.FINALIZING, counters.processed, position)
        elapsed = budget.elapsed()
        cumulative = stats.merge(counters, elapsed)

        if recorder is not None:
            try:
                await recorder.finish(status, counters, elapsed, position, error_message)
            except Exception as e:
                log.error("sync_run_finish_failed", error=str(e), error_type=type(e).__name__)

        if status == SyncRunStatus.COMPLETED and not request.dry_run:
            await self._clear_derived_caches()

        await self._enter(_TERMINAL_STATES[status], counters.processed, position)
        log.info(
            "sync_finished",
            status=status.value,
            elapsed=round(elapsed, 3),
            offset_end=position,
            dropped_audit_rows=committer.dropped_audit_rows,
            **counters.model_dump(),
        )

        return SyncResult(
            run_id=self._run_id,
            status=status,
            counters=counters,
            cumulative=cumulative,
            cumulative_token=stats.to_token(),
            offset_start=request.offset,
            offset_end=position,
            resume_offset=position if status == SyncRunStatus.TIMEOUT else None,
            elapsed=elapsed,
            error_message=error_message,
            dry_run=request.dry_run,
        )

    async def run_session(self, request: SyncRequest) -> List[SyncResult]:
        """Run invocations until the feed is consumed or one of them fails.

        Each timed-out invocation is followed by another one starting at its
        resume offset and carrying its cumulative stats token.
        """
        results: List[SyncResult] = []
        current: Optional[SyncRequest] = request
        while current is not None:
            result = await self.run(current)
            results.append(result)
            if result.status != SyncRunStatus.TIMEOUT:
                break
            current = current.resumed(result)
            logger.info(
                "sync_resuming",
                feed_path=request.feed_path,
                offset=result.resume_offset,
                invocations=len(results),
            )
        return results
