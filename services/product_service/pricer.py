"""
Server-side cart pricing. Client-submitted prices never reach this module;
every unit price comes from the product or its variant row.
"""
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound, OutOfStock
from shared.money import ZERO, to_money

from .repository import ProductRepository


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    selected_size: str | None = None
    selected_colour: str | None = None


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    selected_size: str | None
    selected_colour: str | None
    cod_eligible: bool
    variant_id: int | None = None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass
class PricedCart:
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return to_money(sum((line.line_total for line in self.lines), ZERO))


def resolve_variant(product, size: str | None, colour: str | None):
    """Pick the variant a cart line refers to.

    With a size, the exact (size, colour) row; without one, the first in-stock
    variant. Returns None for products without variants or unknown sizes.
    """
    if size:
        return product.find_variant(size, colour)
    if not product.variants:
        return None
    variant = product.default_variant(colour)
    if variant is None:
        raise OutOfStock(f"{product.name} is out of stock", product_id=product.id)
    return variant


class CartPricer:

    @staticmethod
    def price_line(product, line: CartLine) -> PricedLine:
        variant = resolve_variant(product, line.selected_size, line.selected_colour)
        if variant is not None:
            return PricedLine(
                product_id=product.id,
                name=product.name,
                unit_price=to_money(variant.unit_price(product)),
                quantity=line.quantity,
                selected_size=variant.size,
                selected_colour=variant.colour,
                cod_eligible=variant.is_cod_eligible(product),
                variant_id=variant.id,
            )
        return PricedLine(
            product_id=product.id,
            name=product.name,
            unit_price=to_money(product.price),
            quantity=line.quantity,
            selected_size=line.selected_size,
            selected_colour=line.selected_colour,
            cod_eligible=bool(product.cod_eligible),
        )

    @staticmethod
    async def price(db: AsyncSession, lines: list[CartLine]) -> PricedCart:
        products = await ProductRepository.get_products(db, [line.product_id for line in lines])
        cart = PricedCart()
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise NotFound(f"Product {line.product_id} not found", product_id=line.product_id)
            cart.lines.append(CartPricer.price_line(product, line))
        return cart
