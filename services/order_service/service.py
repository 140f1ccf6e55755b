import math

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.ledger import VariantStockLedger
from services.product_service.repository import ProductRepository
from shared.config.database import utcnow
from shared.errors import InvalidStatusTransition, NotFound, ValidationError
from shared.money import ZERO, to_money
from shared.observability import marketplace_stock_compensation_total
from shared.security import CUSTOMER, SELLER, AuthenticatedUser

from .models import Order, OrderStatus, PaymentStatus
from .repository import OrderRepository
from .schemas import OrderDetailsUpdate

logger = structlog.get_logger(__name__)

S = OrderStatus

# Legal moves; terminal statuses have no outgoing edges.
TRANSITIONS = {
    S.PENDING.value: {S.CONFIRMED.value, S.PROCESSING.value, S.CANCELLED.value, S.PAYMENT_FAILED.value},
    S.PENDING_PAYMENT.value: {S.CONFIRMED.value, S.PAYMENT_FAILED.value, S.CANCELLED.value},
    S.CONFIRMED.value: {S.PROCESSING.value, S.SHIPPED.value, S.DELIVERED.value, S.CANCELLED.value},
    S.PROCESSING.value: {S.SHIPPED.value, S.DELIVERED.value, S.CANCELLED.value},
    S.SHIPPED.value: {S.DELIVERED.value},
    S.DELIVERED.value: set(),
    S.CANCELLED.value: set(),
    S.PAYMENT_FAILED.value: set(),
}

ALLOWED_TARGETS = {
    CUSTOMER: {S.CONFIRMED.value, S.CANCELLED.value},
    SELLER: {
        S.PENDING.value,
        S.CONFIRMED.value,
        S.PROCESSING.value,
        S.SHIPPED.value,
        S.DELIVERED.value,
        S.CANCELLED.value,
        S.PAYMENT_FAILED.value,
    },
}

# A customer confirms a COD order; only a paid gateway callback confirms a pending_payment one.
CUSTOMER_SOURCES = {
    S.CONFIRMED.value: {S.PENDING.value},
    S.CANCELLED.value: {S.PENDING.value, S.PENDING_PAYMENT.value, S.CONFIRMED.value},
}


def check_transition(current: str, target: str, role: str | None = None) -> bool:
    """Validate ``current -> target``. Returns False for a no-op, raises when illegal."""
    if role is not None and target not in ALLOWED_TARGETS[role]:
        raise InvalidStatusTransition(
            f"Status '{target}' cannot be set by a {role}",
            current_status=current,
            requested_status=target,
        )
    if current == target:
        return False
    legal = target in TRANSITIONS.get(current, set())
    if legal and role == CUSTOMER:
        legal = current in CUSTOMER_SOURCES[target]
    if not legal:
        raise InvalidStatusTransition(
            f"Cannot change order status from '{current}' to '{target}'",
            current_status=current,
            requested_status=target,
        )
    return True


async def _move_item_stock(db: AsyncSession, item, delta: int) -> int | None:
    return await VariantStockLedger.move_line(
        db, item.product_id, item.variant_id, item.selected_size, item.selected_colour, delta
    )


def serialize_order(order: Order, product_ids: set[int] | None = None) -> dict:
    items = [item for item in order.items if product_ids is None or item.product_id in product_ids]
    return {
        "id": order.id,
        "order_number": order.order_number,
        "customer_id": order.customer_id,
        "total_amount": order.total_amount,
        "cod_fee": order.cod_fee,
        "shipping_fee": order.shipping_fee,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "payment_id": order.payment_id,
        "shipping_address": order.shipping_address,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "price": item.price,
                "total": item.total,
                "selected_size": item.selected_size,
                "selected_colour": item.selected_colour,
                "other_profit_loss": item.other_profit_loss,
                "price_edited_by_seller": item.price_edited_by_seller,
                "quantity_edited_by_seller": item.quantity_edited_by_seller,
                "buy_price_edited_by_seller": item.buy_price_edited_by_seller,
                "other_profit_loss_edited_by_seller": item.other_profit_loss_edited_by_seller,
                "edited_at": item.edited_at,
            }
            for item in items
        ],
    }


class OrderService:

    @staticmethod
    async def list_customer_orders(db: AsyncSession, customer_id: int):
        return await OrderRepository.list_customer_orders(db, customer_id)

    @staticmethod
    async def get_customer_order(db: AsyncSession, customer_id: int, order_id: int) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if not order or order.customer_id != customer_id:
            raise NotFound("Order not found", order_id=order_id)
        return order

    @staticmethod
    async def list_seller_orders(db: AsyncSession, seller_id: int, status: str | None = None, page: int = 1, limit: int = 20) -> dict:
        if status is not None and status not in TRANSITIONS:
            raise ValidationError(f"Unknown order status: {status}", field="status")
        offset = (page - 1) * limit
        orders = await OrderRepository.list_seller_orders(db, seller_id, status, offset, limit)
        total = await OrderRepository.count_seller_orders(db, seller_id, status)

        product_ids = {item.product_id for order in orders for item in order.items}
        own_products = await OrderRepository.seller_product_ids(db, seller_id, product_ids) if product_ids else set()

        total_pages = math.ceil(total / limit) if total else 0
        return {
            "orders": [serialize_order(order, own_products) for order in orders],
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalOrders": total,
                "hasNextPage": page < total_pages,
                "hasPrevPage": page > 1,
            },
        }

    @staticmethod
    async def _load_for_actor(db: AsyncSession, order_id: int, user: AuthenticatedUser) -> Order:
        order = await OrderRepository.get_order(db, order_id, for_update=True)
        if user.role == SELLER:
            if not order or not await OrderRepository.seller_owns_order(db, user.id, order_id):
                raise NotFound("Order not found or unauthorized", order_id=order_id)
        elif not order or order.customer_id != user.id:
            raise NotFound("Order not found", order_id=order_id)
        return order

    @staticmethod
    async def release_stock(db: AsyncSession, order: Order, reason: str) -> bool:
        """Put every line back on the shelf. Runs at most once per order; does not commit."""
        if order.stock_released:
            return False
        skipped = 0
        for item in order.items:
            restocked = await _move_item_stock(db, item, item.quantity)
            if restocked is None:
                skipped += 1
        order.stock_released = True
        marketplace_stock_compensation_total.labels(reason=reason).inc()
        logger.info("stock_released", order_id=order.id, reason=reason, lines=len(order.items), skipped=skipped)
        return True

    @staticmethod
    async def apply_status(db: AsyncSession, order: Order, target: str, role: str | None = None) -> bool:
        """Move ``order`` to ``target`` inside the caller's transaction."""
        if not check_transition(order.status, target, role):
            return False
        previous = order.status
        order.status = target
        if target == S.CANCELLED.value:
            await OrderService.release_stock(db, order, reason="cancelled")
        elif target == S.PAYMENT_FAILED.value:
            order.payment_status = PaymentStatus.FAILED.value
        elif target == S.CONFIRMED.value and previous == S.PENDING_PAYMENT.value:
            order.payment_status = PaymentStatus.PAID.value
        logger.info("order_status_changed", order_id=order.id, previous=previous, status=target, actor=role)
        return True

    @staticmethod
    async def update_status(db: AsyncSession, order_id: int, target: str, user: AuthenticatedUser) -> Order:
        try:
            order = await OrderService._load_for_actor(db, order_id, user)
            await OrderService.apply_status(db, order, target, role=user.role)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return order

    @staticmethod
    async def edit_order_details(db: AsyncSession, order_id: int, seller_id: int, data: OrderDetailsUpdate) -> Order:
        """Seller correction of price / quantity / buy price / profit-loss on the seller's own lines."""
        try:
            order = await OrderRepository.get_order(db, order_id, for_update=True)
            if not order:
                raise NotFound("Order not found or unauthorized", order_id=order_id)
            product_ids = {item.product_id for item in order.items}
            own_products = await OrderRepository.seller_product_ids(db, seller_id, product_ids)
            targets = [
                item for item in order.items
                if item.product_id in own_products and (data.item_id is None or item.id == data.item_id)
            ]
            if not targets:
                raise NotFound("Order not found or unauthorized", order_id=order_id, item_id=data.item_id)

            now = utcnow()
            edited_at = data.edited_at or now
            for item in targets:
                await OrderService._edit_item(db, order, item, data, edited_at)

            order.total_amount = to_money(sum((item.total for item in order.items), ZERO))
            order.updated_at = now
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("order_details_edited", order_id=order_id, seller_id=seller_id, items=[i.id for i in targets])
        return order

    @staticmethod
    async def _edit_item(db: AsyncSession, order: Order, item, data: OrderDetailsUpdate, edited_at):
        touched = False
        if data.product_price is not None:
            item.price = to_money(data.product_price)
            item.price_edited_by_seller = True
            item.price_edited_at = edited_at
            touched = True

        if data.quantity is not None and data.quantity != item.quantity:
            delta = data.quantity - item.quantity
            if not order.stock_released:
                # more units sold means less on the shelf
                await _move_item_stock(db, item, -delta)
            item.quantity = data.quantity
            item.quantity_edited_by_seller = True
            item.quantity_edited_at = edited_at
            touched = True

        if data.actual_buy_price is not None:
            variant = await VariantStockLedger.locate_line(
                db, item.product_id, item.variant_id, item.selected_size, item.selected_colour
            )
            if variant is not None:
                await ProductRepository.update_variant_fields(
                    db, variant.id, actual_buy_price=to_money(data.actual_buy_price)
                )
            item.buy_price_edited_by_seller = True
            item.buy_price_edited_at = edited_at
            touched = True

        if data.other_profit_loss is not None:
            item.other_profit_loss = to_money(data.other_profit_loss)
            item.other_profit_loss_edited_by_seller = True
            item.other_profit_loss_edited_at = edited_at
            touched = True

        if touched:
            item.edited_at = edited_at
        item.total = to_money(to_money(item.price) * item.quantity)
