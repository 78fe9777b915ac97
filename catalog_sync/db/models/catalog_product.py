"""Catalog product ORM models: core columns plus key/value meta rows."""
from sqlalchemy import String, ForeignKey, Integer, Boolean, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from catalog_sync.db.base import Base, TimestampMixin
from typing import List, Optional


class CatalogProduct(Base, TimestampMixin):
    """Product in the internal catalog.

    Lifecycle and stock fields are columns; supplier data and manually set
    lock flags live in CatalogProductMeta rows keyed by meta_key.

    Attributes:
        name: Product display name
        status: Lifecycle status (draft, pending, private, publish)
        stock_status: Availability (instock, outofstock, onbackorder)
        manage_stock: Whether stock quantity is tracked
        backorders: Backorder mode (no, notify, yes)
        stock_quantity: Tracked quantity when manage_stock is set
    """

    __tablename__ = "catalog_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    stock_status: Mapped[str] = mapped_column(String(20), nullable=False, default="instock")
    manage_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    backorders: Mapped[str] = mapped_column(String(10), nullable=False, default="no")
    stock_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Relationships
    meta: Mapped[List["CatalogProductMeta"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<CatalogProduct(id={self.id}, status='{self.status}', stock='{self.stock_status}')>"


class CatalogProductMeta(Base):
    """Key/value attribute of a catalog product (supplier sku, price, locks)."""

    __tablename__ = "catalog_product_meta"
    __table_args__ = (
        UniqueConstraint("product_id", "meta_key", name="uq_product_meta_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("catalog_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    meta_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    meta_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    product: Mapped["CatalogProduct"] = relationship(back_populates="meta")

    def __repr__(self) -> str:
        return f"<CatalogProductMeta(product_id={self.product_id}, key='{self.meta_key}')>"
