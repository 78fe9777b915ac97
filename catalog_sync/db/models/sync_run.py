"""SyncRun ORM model: one row per sync invocation."""
from sqlalchemy import String, Integer, Float, Text, DateTime, func, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from catalog_sync.db.base import Base, utcnow
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from catalog_sync.db.models.product_history import ProductHistory


class SyncRun(Base):
    """Persistent record of a sync invocation.

    Inserted as "running" when the invocation starts and updated once at the
    end with the outcome counters. Rows left "running" by a killed process
    are reclaimed as "failed" by reclaim_stale_runs.
    """

    __tablename__ = "sync_runs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'failed', 'timeout')",
            name="check_sync_run_status",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    feed_path: Mapped[str] = mapped_column(String(500), nullable=False)
    feed_record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running", index=True)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unchanged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_instock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    not_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    execution_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=25)
    offset_start: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    offset_end: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    history: Mapped[List["ProductHistory"]] = relationship(back_populates="sync_run")

    def __repr__(self) -> str:
        return f"<SyncRun(id={self.id}, status='{self.status}', processed={self.processed})>"
