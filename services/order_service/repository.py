from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.models import Product

from .models import Order, OrderItem, OrderStatus


class OrderRepository:

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, for_update: bool = False):
        query = select(Order).where(Order.id == order_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def get_by_payment_id(db: AsyncSession, payment_id: str):
        result = await db.execute(select(Order).where(Order.payment_id == payment_id))
        return result.scalars().first()

    @staticmethod
    async def list_customer_orders(db: AsyncSession, customer_id: int):
        result = await db.execute(
            select(Order).where(Order.customer_id == customer_id).order_by(Order.created_at.desc(), Order.id.desc())
        )
        return result.scalars().all()

    @staticmethod
    def _seller_orders_query(seller_id: int, status: str | None):
        seller_order_ids = (
            select(OrderItem.order_id)
            .join(Product, Product.id == OrderItem.product_id)
            .where(Product.seller_id == seller_id)
        )
        query = select(Order).where(Order.id.in_(seller_order_ids))
        if status:
            query = query.where(Order.status == status)
        return query

    @staticmethod
    async def list_seller_orders(db: AsyncSession, seller_id: int, status: str | None, offset: int, limit: int):
        query = OrderRepository._seller_orders_query(seller_id, status)
        result = await db.execute(
            query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def count_seller_orders(db: AsyncSession, seller_id: int, status: str | None) -> int:
        query = OrderRepository._seller_orders_query(seller_id, status)
        return await db.scalar(select(func.count()).select_from(query.subquery()))

    @staticmethod
    async def seller_owns_order(db: AsyncSession, seller_id: int, order_id: int) -> bool:
        owned = await db.scalar(
            select(func.count(OrderItem.id))
            .join(Product, Product.id == OrderItem.product_id)
            .where(OrderItem.order_id == order_id, Product.seller_id == seller_id)
        )
        return bool(owned)

    @staticmethod
    async def seller_product_ids(db: AsyncSession, seller_id: int, product_ids) -> set[int]:
        result = await db.execute(
            select(Product.id).where(Product.seller_id == seller_id, Product.id.in_(set(product_ids)))
        )
        return set(result.scalars().all())

    @staticmethod
    async def unreleased_online_orders(db: AsyncSession, stale_before: datetime):
        """Orders whose stock is still held although payment never arrived."""
        result = await db.execute(
            select(Order.id)
            .where(
                Order.stock_released.is_(False),
                Order.payment_method != "cod",
                (
                    (Order.status == OrderStatus.PAYMENT_FAILED.value)
                    | ((Order.status == OrderStatus.PENDING_PAYMENT.value) & (Order.created_at < stale_before))
                ),
            )
            .order_by(Order.id)
        )
        return result.scalars().all()
