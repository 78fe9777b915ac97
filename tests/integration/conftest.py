"""Pytest fixtures for integration tests.

This conftest.py provides integration-specific fixtures:
- A file-backed SQLite database (aiosqlite) per test, schema created by init_db
- Session factory bound to that database
- Catalog seeding helpers

The root tests/conftest.py handles environment defaults.
"""
from typing import Any, Optional

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from catalog_sync.db.base import init_db
from catalog_sync.db.models import CatalogProduct, CatalogProductMeta, CatalogUser
from catalog_sync.models.catalog_record import EXTERNAL_ID_KEY, SUPPLIER_PRICE_KEY


@pytest.fixture
async def sqlite_engine(tmp_path):
    """Fresh SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign keys so ON DELETE rules apply."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(sqlite_engine):
    return sessionmaker(sqlite_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def seed(session_maker):
    """Insert a catalog product with its meta rows; returns the product id."""

    async def _seed(
        external_id: Optional[str],
        price: Optional[str] = "17.50",
        status: str = "publish",
        stock_status: str = "onbackorder",
        backorders: str = "yes",
        manage_stock: bool = False,
        **meta: Any,
    ) -> int:
        async with session_maker() as session:
            product = CatalogProduct(
                name=f"Product {external_id}",
                status=status,
                stock_status=stock_status,
                backorders=backorders,
                manage_stock=manage_stock,
            )
            session.add(product)
            await session.flush()
            values = {EXTERNAL_ID_KEY: external_id, SUPPLIER_PRICE_KEY: price, **meta}
            for key, value in values.items():
                if value is not None:
                    session.add(CatalogProductMeta(product_id=product.id, meta_key=key, meta_value=str(value)))
            await session.commit()
            return product.id

    return _seed


@pytest.fixture
async def actor(session_maker):
    async with session_maker() as session:
        user = CatalogUser(login="sync-bot")
        session.add(user)
        await session.commit()
        return user.id
