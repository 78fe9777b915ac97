"""CatalogUser ORM model: actors a sync may run under."""
from sqlalchemy import String, Integer, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from catalog_sync.db.base import Base, TimestampMixin


class CatalogUser(Base, TimestampMixin):
    """User account used for audit attribution of sync runs."""

    __tablename__ = "catalog_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    login: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<CatalogUser(id={self.id}, login='{self.login}')>"
