"""
Variant stock ledger.

Every stock movement, a checkout ``decrement`` or an order-line ``move_line``,
is a single conditional UPDATE, so two concurrent checkouts can never
drive a variant below zero. ``products.stock_quantity`` is recomputed after
each movement and is informational only.
"""
from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStock, NotFound, SizeNotAvailable
from shared.money import to_money

from .repository import ProductRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VariantAvailability:
    variant_id: int
    product_id: int
    product_name: str
    size: str
    colour: str
    available_quantity: int
    unit_price: Decimal
    cod_eligible: bool


def _availability(product, variant) -> VariantAvailability:
    return VariantAvailability(
        variant_id=variant.id,
        product_id=product.id,
        product_name=product.name,
        size=variant.size,
        colour=variant.colour,
        available_quantity=variant.quantity,
        unit_price=to_money(variant.unit_price(product)),
        cod_eligible=variant.is_cod_eligible(product),
    )


class VariantStockLedger:

    @staticmethod
    async def get_availability(db: AsyncSession, product_id: int, size: str, colour: str | None = None) -> VariantAvailability:
        product = await ProductRepository.get_product(db, product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)

        variant = product.find_variant(size, colour)
        if variant is None:
            label = f"{size}/{colour}" if colour else size
            raise SizeNotAvailable(
                f'Size "{label}" not available for product {product.name}',
                product_id=product_id,
                size=size,
                colour=colour,
            )
        return _availability(product, variant)

    @staticmethod
    async def locate(db: AsyncSession, product_id: int, size: str | None, colour: str | None = None):
        """Variant row for (size, colour), including rows of deactivated products."""
        if not size:
            return None
        if colour is not None:
            return await ProductRepository.find_variant(db, product_id, size, colour)
        product = await ProductRepository.get_product(db, product_id, active_only=False)
        return product.find_variant(size) if product else None

    @staticmethod
    async def locate_line(db: AsyncSession, product_id: int, variant_id: int | None, size: str | None, colour: str | None):
        """Variant an order line was sold from.

        The stored ``variant_id`` survives a colour rename; the (size, colour)
        pair is the fallback for lines written without one.
        """
        if variant_id is not None:
            variant = await ProductRepository.get_variant(db, variant_id)
            if variant is not None and variant.product_id == product_id and variant.size == size:
                return variant
        return await VariantStockLedger.locate(db, product_id, size, colour)

    @staticmethod
    async def _apply(db: AsyncSession, product_id: int, variant, delta: int) -> int:
        new_quantity = await ProductRepository.adjust_variant_quantity(db, variant.id, delta)
        if new_quantity is None:
            available = await ProductRepository.get_variant_quantity(db, variant.id)
            raise InsufficientStock(
                f"Insufficient stock for product {product_id} in size {variant.size}. Available: {available}",
                product_id=product_id,
                size=variant.size,
                colour=variant.colour,
                available=available,
                requested=-delta,
            )

        await ProductRepository.recompute_stock_quantity(db, product_id)
        logger.info(
            "stock_moved",
            product_id=product_id,
            size=variant.size,
            colour=variant.colour,
            delta=delta,
            quantity=new_quantity,
        )
        return new_quantity

    @staticmethod
    async def decrement(db: AsyncSession, product_id: int, size: str, colour: str | None, delta: int) -> int:
        """Apply ``delta`` to one variant. Negative for a sale, positive for a restock.

        Returns the variant's new quantity.
        """
        variant = await VariantStockLedger.locate(db, product_id, size, colour)
        if variant is None:
            raise SizeNotAvailable(
                f'Size "{size}" not available for product {product_id}',
                product_id=product_id,
                size=size,
                colour=colour,
            )
        return await VariantStockLedger._apply(db, product_id, variant, delta)

    @staticmethod
    async def move_line(
        db: AsyncSession, product_id: int, variant_id: int | None, size: str | None, colour: str | None, delta: int
    ) -> int | None:
        """Move stock for an existing order line.

        A restock (positive ``delta``) whose variant no longer exists is skipped
        with a warning and returns None, so it never blocks a status change.
        Selling more units from a missing variant raises ``SizeNotAvailable``.
        """
        variant = await VariantStockLedger.locate_line(db, product_id, variant_id, size, colour)
        if variant is None:
            if delta < 0:
                raise SizeNotAvailable(
                    f'Size "{size}" not available for product {product_id}',
                    product_id=product_id,
                    size=size,
                    colour=colour,
                )
            logger.warning(
                "restock_skipped",
                product_id=product_id,
                variant_id=variant_id,
                size=size,
                colour=colour,
                quantity=delta,
            )
            return None
        return await VariantStockLedger._apply(db, product_id, variant, delta)

    @staticmethod
    async def list_sizes(db: AsyncSession, product_id: int) -> list[dict]:
        product = await ProductRepository.get_product(db, product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        return [
            {
                "size": v.size,
                "colour": v.colour,
                "quantity": v.quantity,
                "price": to_money(v.unit_price(product)),
                "market_price": to_money(v.market_price) if v.market_price is not None else None,
                "cod_eligible": v.is_cod_eligible(product),
                "in_stock": v.quantity > 0,
            }
            for v in product.variants
        ]

    @staticmethod
    async def check_size(db: AsyncSession, product_id: int, size: str, quantity: int = 1, colour: str | None = None) -> dict:
        """Read-only availability check; never reserves stock."""
        try:
            availability = await VariantStockLedger.get_availability(db, product_id, size, colour)
        except SizeNotAvailable:
            return {
                "available": False,
                "available_quantity": 0,
                "message": "Size not available for this product",
            }

        available = availability.available_quantity >= quantity
        return {
            "available": available,
            "available_quantity": availability.available_quantity,
            "size": availability.size,
            "colour": availability.colour,
            "price": availability.unit_price,
            "message": (
                f"{availability.available_quantity} items available in size {size}"
                if available
                else f"Size {size} is out of stock"
            ),
        }
