"""Unit tests for request/result models and audit value formatting."""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from catalog_sync.models.catalog_record import AttributeSnapshot, CatalogRecord
from catalog_sync.models.feed_record import FeedRecord
from catalog_sync.models.pending_change import PendingChange
from catalog_sync.models.sync_messages import SyncRequest, SyncResult, SyncRunStatus
from catalog_sync.models.sync_stats import SyncCounters
from catalog_sync.services.run_recorder import audit_value


class TestSyncRequest:
    """Test SyncRequest validation and resumption."""

    def test_defaults(self):
        req = SyncRequest(feed_path=" /data/feed.xml ")

        assert req.feed_path == "/data/feed.xml"
        assert req.batch_size == 25
        assert req.offset == 0
        assert req.is_resumed is False

    @pytest.mark.parametrize("field,value", [("batch_size", 0), ("offset", -1), ("limit", 0)])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            SyncRequest(feed_path="/f.xml", **{field: value})

    def test_resumed_moves_offset_and_carries_token(self):
        req = SyncRequest(feed_path="/f.xml", batch_size=10)
        result = SyncResult(
            status=SyncRunStatus.TIMEOUT,
            counters=SyncCounters(processed=30),
            resume_offset=30,
            cumulative_token="abc",
        )

        nxt = req.resumed(result)

        assert nxt.offset == 30
        assert nxt.cumulative_token == "abc"
        assert nxt.batch_size == 10
        assert nxt.is_resumed is True

    def test_resumed_reduces_limit(self):
        req = SyncRequest(feed_path="/f.xml", offset=5, limit=40)
        result = SyncResult(
            status=SyncRunStatus.TIMEOUT,
            counters=SyncCounters(processed=15),
            resume_offset=20,
        )

        assert req.resumed(result).limit == 25

    def test_nothing_to_resume(self):
        req = SyncRequest(feed_path="/f.xml", limit=10)

        completed = SyncResult(status=SyncRunStatus.COMPLETED)
        used_up = SyncResult(
            status=SyncRunStatus.TIMEOUT,
            counters=SyncCounters(processed=10),
            resume_offset=10,
        )

        assert req.resumed(completed) is None
        assert req.resumed(used_up) is None


class TestFeedRecord:
    """Test FeedRecord normalization."""

    def test_strips_identifier(self):
        assert FeedRecord(external_id="  SKU-1 ").external_id == "SKU-1"

    def test_rejects_negative_price(self):
        with pytest.raises(ValidationError):
            FeedRecord(external_id="SKU-1", price=Decimal("-1"))


class TestPendingChange:
    """Test applying queued fields to a record."""

    def test_apply_to_only_sets_given_fields(self):
        record = CatalogRecord(id=1, external_id="SKU-1", status="draft", backorders="no")
        change = PendingChange(
            internal_id=1,
            external_id="SKU-1",
            new_price=Decimal("19.99"),
            new_status="publish",
        )

        change.apply_to(record)

        assert record.supplier_price == Decimal("19.99")
        assert record.status == "publish"
        assert record.backorders == "no"


class TestSnapshot:
    def test_from_attributes_missing_keys(self):
        snapshot = AttributeSnapshot.from_attributes(3, {"supplier_price": "1.00"})

        assert snapshot.internal_id == 3
        assert snapshot.status is None
        assert set(snapshot.locks) == {
            "block_xml_update",
            "channel_block_xml_update",
            "block_custom_update",
        }


class TestAuditValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, None),
            (True, "yes"),
            (False, "no"),
            (Decimal("19.990"), "19.990"),
            (Decimal("1E+1"), "10"),
            (5, "5"),
            ("draft", "draft"),
        ],
    )
    def test_formatting(self, value, expected):
        assert audit_value(value) == expected
