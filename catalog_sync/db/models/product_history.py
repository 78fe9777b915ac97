"""ProductHistory ORM model: append-only audit trail of sync changes."""
from sqlalchemy import String, ForeignKey, Integer, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from catalog_sync.db.base import Base, utcnow
from datetime import datetime
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from catalog_sync.db.models.sync_run import SyncRun


class ProductHistory(Base):
    """One observed field change or lock event for a catalog product.

    field_changed "product_locked" stores the lock reason as old_value and
    the price that would have been applied as new_value.
    """

    __tablename__ = "product_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    sync_run_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("sync_runs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    field_changed: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    sync_run: Mapped[Optional["SyncRun"]] = relationship(back_populates="history")

    def __repr__(self) -> str:
        return f"<ProductHistory(product_id={self.product_id}, field='{self.field_changed}')>"
