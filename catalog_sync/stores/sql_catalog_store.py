"""SQLAlchemy-backed catalog store."""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker
import structlog

from catalog_sync.db.base import async_session_maker
from catalog_sync.db.models import CatalogProduct, CatalogProductMeta, CatalogUser
from catalog_sync.errors.exceptions import AttributeLoadDegradation, RecordCommitError
from catalog_sync.models.catalog_record import (
    Actor,
    CatalogRecord,
    EXTERNAL_ID_KEY,
    SUPPLIER_PRICE_KEY,
    STATE_KEYS,
)
from catalog_sync.stores.catalog_store import CatalogStore

logger = structlog.get_logger(__name__)

# State keys are served from catalog_products columns of the same name
COLUMN_KEYS = frozenset(STATE_KEYS)


def _parse_price(value: Optional[str]) -> Optional[Decimal]:
    """Decimal from a stored meta value, None when empty or unparseable."""
    if value is None or str(value).strip() == "":
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        return None


class SqlCatalogStore(CatalogStore):
    """Catalog store over the catalog_products / catalog_product_meta tables.

    Every call opens its own session; save() commits per record so one
    failing record never rolls back another.
    """

    def __init__(self, session_maker: sessionmaker = async_session_maker):
        self.session_maker = session_maker

    async def load_identity_index(self, limit: int) -> Dict[str, int]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(CatalogProductMeta.meta_value, CatalogProductMeta.product_id)
                .where(CatalogProductMeta.meta_key == EXTERNAL_ID_KEY)
                .where(CatalogProductMeta.meta_value.is_not(None))
                .where(CatalogProductMeta.meta_value != "")
                .order_by(CatalogProductMeta.id)
                .limit(limit)
            )
            return {external_id: product_id for external_id, product_id in result.all()}

    async def find_ids_by_external_ids(self, external_ids: Iterable[str]) -> Dict[str, int]:
        wanted = [e for e in external_ids if e]
        if not wanted:
            return {}
        async with self.session_maker() as session:
            result = await session.execute(
                select(CatalogProductMeta.meta_value, CatalogProductMeta.product_id)
                .where(CatalogProductMeta.meta_key == EXTERNAL_ID_KEY)
                .where(CatalogProductMeta.meta_value.in_(wanted))
            )
            return {external_id: product_id for external_id, product_id in result.all()}

    async def find_id_by_external_id(self, external_id: str) -> Optional[int]:
        found = await self.find_ids_by_external_ids([external_id])
        return found.get(external_id)

    async def bulk_read_attributes(
        self,
        ids: List[int],
        keys: Iterable[str],
    ) -> Dict[int, Dict[str, Any]]:
        keys = list(keys)
        column_keys = [k for k in keys if k in COLUMN_KEYS]
        meta_keys = [k for k in keys if k not in COLUMN_KEYS]
        values: Dict[int, Dict[str, Any]] = {i: {} for i in ids}
        if not ids:
            return values

        try:
            async with self.session_maker() as session:
                if column_keys:
                    columns = [getattr(CatalogProduct, k) for k in column_keys]
                    result = await session.execute(
                        select(CatalogProduct.id, *columns)
                        .where(CatalogProduct.id.in_(ids))
                    )
                    for row in result.all():
                        values[row[0]].update(zip(column_keys, row[1:]))

                if meta_keys:
                    result = await session.execute(
                        select(
                            CatalogProductMeta.product_id,
                            CatalogProductMeta.meta_key,
                            CatalogProductMeta.meta_value,
                        )
                        .where(CatalogProductMeta.product_id.in_(ids))
                        .where(CatalogProductMeta.meta_key.in_(meta_keys))
                    )
                    for product_id, key, value in result.all():
                        values[product_id][key] = value
        except Exception as e:
            raise AttributeLoadDegradation(f"Bulk attribute read failed: {e}") from e

        return values

    async def read_attribute(self, internal_id: int, key: str) -> Any:
        async with self.session_maker() as session:
            if key in COLUMN_KEYS:
                result = await session.execute(
                    select(getattr(CatalogProduct, key))
                    .where(CatalogProduct.id == internal_id)
                )
            else:
                result = await session.execute(
                    select(CatalogProductMeta.meta_value)
                    .where(CatalogProductMeta.product_id == internal_id)
                    .where(CatalogProductMeta.meta_key == key)
                )
            return result.scalar_one_or_none()

    async def get_record(self, internal_id: int) -> Optional[CatalogRecord]:
        async with self.session_maker() as session:
            product = await session.get(CatalogProduct, internal_id)
            if product is None:
                return None
            meta = await self._meta_values(session, internal_id, [EXTERNAL_ID_KEY, SUPPLIER_PRICE_KEY])
            return CatalogRecord(
                id=product.id,
                external_id=meta.get(EXTERNAL_ID_KEY) or "",
                status=product.status,
                stock_status=product.stock_status,
                manage_stock=product.manage_stock,
                backorders=product.backorders,
                stock_quantity=product.stock_quantity,
                supplier_price=_parse_price(meta.get(SUPPLIER_PRICE_KEY)),
            )

    async def save(self, record: CatalogRecord) -> None:
        async with self.session_maker() as session:
            try:
                product = await session.get(CatalogProduct, record.id)
                if product is None:
                    raise RecordCommitError(
                        f"Catalog record {record.id} no longer exists",
                        internal_id=record.id,
                    )
                product.status = record.status
                product.stock_status = record.stock_status
                product.manage_stock = record.manage_stock
                product.backorders = record.backorders
                product.stock_quantity = record.stock_quantity

                price = None if record.supplier_price is None else format(record.supplier_price, "f")
                await self._set_meta(session, record.id, SUPPLIER_PRICE_KEY, price)
                await session.commit()
            except RecordCommitError:
                await session.rollback()
                raise
            except Exception as e:
                await session.rollback()
                raise RecordCommitError(
                    f"Failed to save catalog record {record.id}: {e}",
                    internal_id=record.id,
                ) from e

    async def count_by_status(self, status: str) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                select(func.count(CatalogProduct.id)).where(CatalogProduct.status == status)
            )
            return int(result.scalar() or 0)

    async def get_actor(self, actor_id: int) -> Optional[Actor]:
        async with self.session_maker() as session:
            user = await session.get(CatalogUser, actor_id)
            if user is None:
                return None
            return Actor(id=user.id, login=user.login, is_active=user.is_active)

    @staticmethod
    async def _meta_values(
        session: AsyncSession,
        product_id: int,
        keys: List[str],
    ) -> Dict[str, Optional[str]]:
        result = await session.execute(
            select(CatalogProductMeta.meta_key, CatalogProductMeta.meta_value)
            .where(CatalogProductMeta.product_id == product_id)
            .where(CatalogProductMeta.meta_key.in_(keys))
        )
        return dict(result.all())

    @staticmethod
    async def _set_meta(
        session: AsyncSession,
        product_id: int,
        key: str,
        value: Optional[str],
    ) -> None:
        result = await session.execute(
            select(CatalogProductMeta)
            .where(CatalogProductMeta.product_id == product_id)
            .where(CatalogProductMeta.meta_key == key)
        )
        row = result.scalar_one_or_none()
        if row is None:
            session.add(CatalogProductMeta(product_id=product_id, meta_key=key, meta_value=value))
        else:
            row.meta_value = value
