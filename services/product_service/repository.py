from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.util import identity_key

from shared.config.database import utcnow

from .models import Product, ProductVariant


def _sync_loaded(db: AsyncSession, model, pk, **values):
    """Push values written by a bulk UPDATE into an already-loaded instance."""
    obj = db.identity_map.get(identity_key(model, pk))
    if obj is not None:
        for key, value in values.items():
            set_committed_value(obj, key, value)


class ProductRepository:

    @staticmethod
    async def create_product(db: AsyncSession, product: Product):
        db.add(product)
        await db.flush()
        return product

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int, active_only: bool = True):
        query = select(Product).where(Product.id == product_id)
        if active_only:
            query = query.where(Product.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def get_products(db: AsyncSession, product_ids, active_only: bool = True) -> dict:
        query = select(Product).where(Product.id.in_(set(product_ids)))
        if active_only:
            query = query.where(Product.is_active.is_(True))
        result = await db.execute(query)
        return {p.id: p for p in result.scalars().all()}

    @staticmethod
    async def get_seller_product(db: AsyncSession, seller_id: int, product_id: int):
        result = await db.execute(
            select(Product).where(Product.id == product_id, Product.seller_id == seller_id)
        )
        return result.scalars().first()

    @staticmethod
    async def find_variant(db: AsyncSession, product_id: int, size: str, colour: str):
        result = await db.execute(
            select(ProductVariant).where(
                ProductVariant.product_id == product_id,
                ProductVariant.size == size,
                ProductVariant.colour == colour,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def get_variant(db: AsyncSession, variant_id: int):
        return await db.get(ProductVariant, variant_id)

    @staticmethod
    async def get_variant_quantity(db: AsyncSession, variant_id: int) -> int:
        return await db.scalar(select(ProductVariant.quantity).where(ProductVariant.id == variant_id))

    @staticmethod
    async def adjust_variant_quantity(db: AsyncSession, variant_id: int, delta: int) -> int | None:
        """Conditional UPDATE; returns the new quantity or None when it would go negative."""
        result = await db.execute(
            update(ProductVariant.__table__)
            .where(
                ProductVariant.__table__.c.id == variant_id,
                ProductVariant.__table__.c.quantity + delta >= 0,
            )
            .values(quantity=ProductVariant.__table__.c.quantity + delta)
            .returning(ProductVariant.__table__.c.quantity)
        )
        new_quantity = result.scalar_one_or_none()
        if new_quantity is not None:
            _sync_loaded(db, ProductVariant, variant_id, quantity=new_quantity)
        return new_quantity

    @staticmethod
    async def recompute_stock_quantity(db: AsyncSession, product_id: int) -> int:
        total_subquery = (
            select(func.coalesce(func.sum(ProductVariant.__table__.c.quantity), 0))
            .where(ProductVariant.__table__.c.product_id == product_id)
            .scalar_subquery()
        )
        now = utcnow()
        result = await db.execute(
            update(Product.__table__)
            .where(Product.__table__.c.id == product_id)
            .values(stock_quantity=total_subquery, updated_at=now)
            .returning(Product.__table__.c.stock_quantity)
        )
        total = result.scalar_one_or_none() or 0
        _sync_loaded(db, Product, product_id, stock_quantity=total, updated_at=now)
        return total

    @staticmethod
    async def update_variant_fields(db: AsyncSession, variant_id: int, **values):
        await db.execute(
            update(ProductVariant.__table__)
            .where(ProductVariant.__table__.c.id == variant_id)
            .values(**values)
        )
        _sync_loaded(db, ProductVariant, variant_id, **values)

