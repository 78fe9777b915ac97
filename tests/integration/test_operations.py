"""Integration tests for sync run and audit trail operations."""
from datetime import timedelta

import pytest

from catalog_sync.db import operations
from catalog_sync.db.base import utcnow
from catalog_sync.db.models import SyncRun

pytestmark = pytest.mark.integration


def history_row(run_id, product_id=1, field="supplier_price", old="17.50", new="19.99"):
    return {
        "product_id": product_id,
        "sync_run_id": run_id,
        "external_id": f"SKU-{product_id}",
        "field_changed": field,
        "old_value": old,
        "new_value": new,
    }


class TestRunLifecycle:
    """Test inserting and finishing sync runs."""

    @pytest.mark.asyncio
    async def test_insert_then_update(self, db_session):
        run_id = await operations.insert_run(
            db_session, feed_path="/feeds/supplier.xml", batch_size=25, offset_start=50, actor_id=1
        )
        await db_session.commit()

        run = await db_session.get(SyncRun, run_id)
        assert run.status == "running"
        assert run.offset_start == 50
        assert run.offset_end == 50

        await operations.update_run(db_session, run_id, status="completed", processed=7, updated=2)
        await db_session.commit()
        await db_session.refresh(run)

        assert run.status == "completed"
        assert (run.processed, run.updated) == (7, 2)

    @pytest.mark.asyncio
    async def test_recent_runs_newest_first(self, db_session):
        now = utcnow()
        ids = []
        for minutes in (30, 10, 20):
            run_id = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
            await operations.update_run(db_session, run_id, started_at=now - timedelta(minutes=minutes))
            ids.append(run_id)
        await db_session.commit()

        runs = await operations.get_recent_runs(db_session, limit=2)
        last = await operations.get_last_run(db_session)

        assert [r.id for r in runs] == [ids[1], ids[2]]
        assert last.id == ids[1]

    @pytest.mark.asyncio
    async def test_last_run_of_empty_table(self, db_session):
        assert await operations.get_last_run(db_session) is None


class TestHistory:
    """Test the product audit trail."""

    @pytest.mark.asyncio
    async def test_append_and_read_history(self, db_session):
        run_id = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        written = await operations.append_history_rows(db_session, [
            history_row(run_id, product_id=1),
            history_row(run_id, product_id=1, field="status", old="draft", new="publish"),
            history_row(run_id, product_id=2),
        ])
        await db_session.commit()

        history = await operations.get_product_history(db_session, product_id=1)

        assert written == 3
        assert sorted(h.field_changed for h in history) == ["status", "supplier_price"]
        assert all(h.sync_run_id == run_id for h in history)
        assert all(h.recorded_at is not None for h in history)

    @pytest.mark.asyncio
    async def test_append_nothing(self, db_session):
        assert await operations.append_history_rows(db_session, []) == 0

    @pytest.mark.asyncio
    async def test_deleting_run_keeps_history(self, db_session):
        run_id = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        await operations.append_history_rows(db_session, [history_row(run_id)])
        await db_session.commit()

        assert await operations.delete_run(db_session, run_id) is True
        await db_session.commit()
        db_session.expunge_all()

        history = await operations.get_product_history(db_session, product_id=1)
        assert len(history) == 1
        assert history[0].sync_run_id is None
        assert history[0].new_value == "19.99"
        assert await operations.delete_run(db_session, run_id) is False


class TestAdministration:
    """Test summary stats and stale run recovery."""

    @pytest.mark.asyncio
    async def test_sync_stats(self, db_session):
        now = utcnow()
        first = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        await operations.update_run(
            db_session, first, status="completed", updated=3, errors=1, execution_time=10.0
        )
        second = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        await operations.update_run(
            db_session, second, status="failed", updated=1, execution_time=20.0
        )
        old = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        await operations.update_run(
            db_session, old, status="completed", updated=100, started_at=now - timedelta(days=60)
        )
        await db_session.commit()

        stats = await operations.get_sync_stats(db_session, days=30, now=now + timedelta(seconds=1))

        assert stats["total_syncs"] == 2
        assert stats["total_updated"] == 4
        assert stats["total_errors"] == 1
        assert stats["failed_syncs"] == 1
        assert stats["avg_execution_time"] == pytest.approx(15.0)

    @pytest.mark.asyncio
    async def test_reclaim_stale_runs(self, db_session):
        now = utcnow()
        stale = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        await operations.update_run(db_session, stale, started_at=now - timedelta(minutes=30))
        fresh = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        done = await operations.insert_run(db_session, feed_path="feed.xml", batch_size=25)
        await operations.update_run(
            db_session, done, status="completed", started_at=now - timedelta(minutes=30)
        )
        await db_session.commit()

        reclaimed = await operations.reclaim_stale_runs(db_session, older_than_minutes=5, now=now)
        await db_session.commit()
        db_session.expunge_all()

        assert reclaimed == 1
        stale_run = await db_session.get(SyncRun, stale)
        assert stale_run.status == "failed"
        assert stale_run.error_message == operations.STALE_RUN_MESSAGE
        assert (await db_session.get(SyncRun, fresh)).status == "running"
        assert (await db_session.get(SyncRun, done)).status == "completed"
