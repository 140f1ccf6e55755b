"""Payment-method dependent fees. Pure functions over Decimal amounts."""
from dataclasses import dataclass, field
from decimal import Decimal

from shared.errors import ValidationError
from shared.money import ZERO, to_money

COD_FREE_THRESHOLD = Decimal("100")
COD_RATE = Decimal("0.10")
COD_MIN_FEE = Decimal("5")
COD_MAX_FEE = Decimal("10")

ONLINE_FREE_THRESHOLD = Decimal("50")
ONLINE_SHIPPING_FEE = Decimal("5")

COD = "cod"
ONLINE_METHODS = ("paypal", "card", "ziina")
PAYMENT_METHODS = (COD,) + ONLINE_METHODS


@dataclass(frozen=True)
class FeeQuote:
    payment_method: str
    subtotal: Decimal
    cod_fee: Decimal = ZERO
    shipping_fee: Decimal = ZERO
    cod_eligible: bool = True
    non_cod_items: list = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return to_money(self.subtotal + self.cod_fee + self.shipping_fee)


def cod_fee(subtotal) -> Decimal:
    subtotal = to_money(subtotal)
    if subtotal >= COD_FREE_THRESHOLD:
        return ZERO
    fee = subtotal * COD_RATE
    return to_money(min(max(fee, COD_MIN_FEE), COD_MAX_FEE))


def online_shipping(subtotal) -> Decimal:
    if to_money(subtotal) < ONLINE_FREE_THRESHOLD:
        return to_money(ONLINE_SHIPPING_FEE)
    return ZERO


def non_cod_items(priced_cart) -> list[dict]:
    return [
        {"id": line.product_id, "name": line.name, "reason": "Not eligible for Cash on Delivery"}
        for line in priced_cart.lines
        if not line.cod_eligible
    ]


def cod_quote(priced_cart) -> FeeQuote:
    subtotal = priced_cart.subtotal
    offending = non_cod_items(priced_cart)
    eligible = bool(priced_cart.lines) and not offending
    return FeeQuote(
        payment_method=COD,
        subtotal=subtotal,
        cod_fee=cod_fee(subtotal) if eligible else ZERO,
        cod_eligible=eligible,
        non_cod_items=offending,
    )


def quote(payment_method: str, priced_cart) -> FeeQuote:
    if payment_method == COD:
        return cod_quote(priced_cart)
    if payment_method not in ONLINE_METHODS:
        raise ValidationError(f"Unknown payment method: {payment_method}", field="payment_method")
    subtotal = priced_cart.subtotal
    return FeeQuote(
        payment_method=payment_method,
        subtotal=subtotal,
        shipping_fee=online_shipping(subtotal),
    )
