"""Sync engine services.

Available Services:
    - identity_cache: external id -> record id index
    - attribute_cache: per-batch attribute snapshots
    - lock_policy: manual update locks
    - decision: per-record classification
    - committer: per-record isolated commits
    - feed_validator: feed completeness gate
    - execution_budget: time box of one invocation
    - stats: cumulative statistics and resume token
    - run_recorder: sync_runs row and audit trail
    - sync_state: Redis status publishing
    - cache_invalidation: derived cache clearing
    - orchestrator: end-to-end sync driver
"""
from catalog_sync.services.identity_cache import IdentityCache
from catalog_sync.services.attribute_cache import AttributeCache
from catalog_sync.services.lock_policy import LockPolicy, normalize_lock_value
from catalog_sync.services.decision import decide_record, price_changed
from catalog_sync.services.committer import Committer
from catalog_sync.services.feed_validator import FeedValidator, is_incomplete
from catalog_sync.services.execution_budget import ExecutionBudget
from catalog_sync.services.stats import StatsAggregator
from catalog_sync.services.run_recorder import RunRecorder
from catalog_sync.services.sync_state import (
    SyncStatusPublisher,
    get_sync_status,
    update_sync_status,
)
from catalog_sync.services.cache_invalidation import clear_derived_caches
from catalog_sync.services.orchestrator import SyncOrchestrator

__all__: list[str] = [
    "IdentityCache",
    "AttributeCache",
    "LockPolicy",
    "normalize_lock_value",
    "decide_record",
    "price_changed",
    "Committer",
    "FeedValidator",
    "is_incomplete",
    "ExecutionBudget",
    "StatsAggregator",
    "RunRecorder",
    "SyncStatusPublisher",
    "get_sync_status",
    "update_sync_status",
    "clear_derived_caches",
    "SyncOrchestrator",
]
