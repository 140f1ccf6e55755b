"""
Order transaction coordinator.

``place_order`` is the only way an order comes into existence: it resolves
every cart line against live variant stock, re-prices the cart, applies the
payment-method fees and decrements inventory, all inside one database
transaction. Either the order, its lines and the stock movements are all
committed or none of them are.
"""
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.address_service.service import AddressBookSynchronizer
from services.product_service.ledger import VariantStockLedger
from services.product_service.pricer import CartLine, CartPricer, resolve_variant
from services.product_service.repository import ProductRepository
from shared.errors import (
    CodNotEligible,
    InsufficientStock,
    MarketplaceError,
    NotFound,
    SizeNotAvailable,
    ValidationError,
    best_effort,
)
from shared.observability import marketplace_checkout_duration_seconds, marketplace_checkout_total

from . import fees
from .models import Order, OrderItem, OrderStatus, PaymentStatus

logger = structlog.get_logger(__name__)


@dataclass
class _Reservation:
    product_id: int
    product_name: str
    size: str
    colour: str
    available: int
    requested: int = 0


def initial_state(payment_method: str) -> tuple[str, str]:
    """(status, payment_status) a freshly placed order starts in."""
    if payment_method == fees.COD:
        return OrderStatus.PENDING.value, PaymentStatus.UNPAID.value
    if payment_method == "ziina":
        return OrderStatus.PENDING_PAYMENT.value, PaymentStatus.UNPAID.value
    # paypal / card orders are only created once the capture succeeded
    return OrderStatus.CONFIRMED.value, PaymentStatus.PAID.value


class OrderTransactionCoordinator:

    @staticmethod
    async def _resolve_lines(db: AsyncSession, lines: list[CartLine]) -> list[CartLine]:
        """Pin every line to a concrete variant and check the summed quantity per variant."""
        products = await ProductRepository.get_products(db, [line.product_id for line in lines])
        reservations: dict[int, _Reservation] = {}
        resolved = []

        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise NotFound(f"Product {line.product_id} not found", product_id=line.product_id)

            size, colour = line.selected_size, line.selected_colour
            if not size:
                variant = resolve_variant(product, None, colour)
                if variant is None:
                    raise SizeNotAvailable(
                        f"Please select a size for {product.name}",
                        product_id=product.id,
                        size=None,
                        colour=colour,
                    )
                size, colour = variant.size, variant.colour

            availability = await VariantStockLedger.get_availability(db, product.id, size, colour)
            reservation = reservations.setdefault(
                availability.variant_id,
                _Reservation(
                    product_id=product.id,
                    product_name=product.name,
                    size=availability.size,
                    colour=availability.colour,
                    available=availability.available_quantity,
                ),
            )
            reservation.requested += line.quantity
            if reservation.requested > reservation.available:
                raise InsufficientStock(
                    f"Insufficient stock for product {product.name} in size {reservation.size}. "
                    f"Available: {reservation.available}",
                    product_id=product.id,
                    size=reservation.size,
                    colour=reservation.colour,
                    available=reservation.available,
                    requested=reservation.requested,
                )

            resolved.append(CartLine(product.id, line.quantity, availability.size, availability.colour))
        return resolved

    @staticmethod
    async def _place(
        db: AsyncSession,
        customer_id: int,
        lines: list[CartLine],
        shipping_address: dict | None,
        payment_method: str,
        payment_id: str | None,
    ) -> Order:
        if not lines:
            raise ValidationError("Order must contain at least one item", field="items")
        if payment_method not in fees.PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {payment_method}", field="payment_method")

        resolved = await OrderTransactionCoordinator._resolve_lines(db, lines)
        priced = await CartPricer.price(db, resolved)

        quote = fees.quote(payment_method, priced)
        if payment_method == fees.COD and not quote.cod_eligible:
            raise CodNotEligible(
                "Some items in your cart are not eligible for Cash on Delivery",
                non_cod_items=quote.non_cod_items,
            )

        products = await ProductRepository.get_products(db, [line.product_id for line in priced.lines])
        items = [
            OrderItem(
                product_id=line.product_id,
                product=products[line.product_id],
                variant_id=line.variant_id,
                quantity=line.quantity,
                price=line.unit_price,
                total=line.line_total,
                selected_size=line.selected_size,
                selected_colour=line.selected_colour,
            )
            for line in priced.lines
        ]

        status, payment_status = initial_state(payment_method)
        order = Order(
            customer_id=customer_id,
            total_amount=quote.total,
            cod_fee=quote.cod_fee,
            shipping_fee=quote.shipping_fee,
            status=status,
            payment_status=payment_status,
            payment_method=payment_method,
            payment_id=payment_id,
            shipping_address=shipping_address,
            stock_released=False,
            items=items,
        )
        db.add(order)
        await db.flush()

        for item in items:
            await VariantStockLedger.decrement(
                db, item.product_id, item.selected_size, item.selected_colour, -item.quantity
            )

        async with best_effort(db, "address_sync", order_id=order.id, customer_id=customer_id):
            await AddressBookSynchronizer.sync(db, customer_id, shipping_address)

        return order

    @staticmethod
    async def place_order(
        db: AsyncSession,
        customer_id: int,
        lines: list[CartLine],
        shipping_address: dict | None,
        payment_method: str,
        payment_id: str | None = None,
    ) -> Order:
        with marketplace_checkout_duration_seconds.time():
            try:
                order = await OrderTransactionCoordinator._place(
                    db, customer_id, lines, shipping_address, payment_method, payment_id
                )
                await db.commit()
            except MarketplaceError as exc:
                await db.rollback()
                marketplace_checkout_total.labels(status="rejected", payment_method=payment_method).inc()
                logger.info("checkout_rejected", customer_id=customer_id, reason=exc.message, **exc.payload)
                raise
            except Exception:
                await db.rollback()
                marketplace_checkout_total.labels(status="failed", payment_method=payment_method).inc()
                logger.exception("checkout_failed", customer_id=customer_id, payment_method=payment_method)
                raise

        marketplace_checkout_total.labels(status="success", payment_method=payment_method).inc()
        logger.info(
            "order_placed",
            order_id=order.id,
            customer_id=customer_id,
            payment_method=payment_method,
            status=order.status,
            total=str(order.total_amount),
        )
        return order
