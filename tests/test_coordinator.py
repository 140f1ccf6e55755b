from decimal import Decimal

import pytest
from sqlalchemy import func, select

from services.address_service.models import UserAddress
from services.address_service.service import AddressBookSynchronizer
from services.order_service.coordinator import OrderTransactionCoordinator, initial_state
from services.order_service.models import Order
from services.product_service.ledger import VariantStockLedger
from services.product_service.pricer import CartLine
from shared.errors import CodNotEligible, InsufficientStock, SizeNotAvailable, ValidationError
from tests.fakes import ADDRESS, CUSTOMER_ID, create_product, load_order, load_product, variant, variant_quantity


async def _order_count(session_factory) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count(Order.id)))


class TestInitialState:

    @pytest.mark.parametrize(
        "method, expected",
        [
            ("cod", ("pending", "unpaid")),
            ("ziina", ("pending_payment", "unpaid")),
            ("paypal", ("confirmed", "paid")),
            ("card", ("confirmed", "paid")),
        ],
    )
    def test_states(self, method, expected):
        assert initial_state(method) == expected


class TestPlaceOrder:

    async def test_cod_order(self, db, session_factory):
        pid = await create_product(session_factory, price="20.00", variants=[variant("M", quantity=5)])

        order = await OrderTransactionCoordinator.place_order(
            db, CUSTOMER_ID, [CartLine(pid, 2, "M")], ADDRESS, "cod"
        )

        saved = await load_order(session_factory, order.id)
        assert saved.status == "pending"
        assert saved.payment_status == "unpaid"
        assert saved.cod_fee == Decimal("5.00")
        assert saved.total_amount == Decimal("45.00")
        assert saved.stock_released is False
        assert [(i.quantity, i.price, i.selected_size, i.selected_colour) for i in saved.items] == [
            (2, Decimal("20.00"), "M", "Default")
        ]
        assert await variant_quantity(session_factory, pid, "M") == 3
        assert (await load_product(session_factory, pid)).stock_quantity == 3

    async def test_ziina_order_waits_for_payment(self, db, session_factory):
        pid = await create_product(session_factory, price="20.00")

        order = await OrderTransactionCoordinator.place_order(
            db, CUSTOMER_ID, [CartLine(pid, 1, "M")], ADDRESS, "ziina"
        )

        assert order.status == "pending_payment"
        assert order.shipping_fee == Decimal("5.00")
        assert order.cod_fee == Decimal("0.00")
        assert order.total_amount == Decimal("25.00")
        assert await variant_quantity(session_factory, pid) == 4

    async def test_paypal_order_is_paid(self, db, session_factory):
        pid = await create_product(session_factory, price="30.00")
        order = await OrderTransactionCoordinator.place_order(
            db, CUSTOMER_ID, [CartLine(pid, 2, "M")], ADDRESS, "paypal", payment_id="PAYPAL-1"
        )
        assert (order.status, order.payment_status, order.payment_id) == ("confirmed", "paid", "PAYPAL-1")
        assert order.shipping_fee == Decimal("0.00")

    async def test_saves_address(self, db, session_factory):
        pid = await create_product(session_factory)
        await OrderTransactionCoordinator.place_order(db, CUSTOMER_ID, [CartLine(pid, 1, "M")], ADDRESS, "cod")
        async with session_factory() as check:
            assert await check.scalar(select(func.count(UserAddress.id))) == 1

    async def test_address_failure_keeps_order(self, db, session_factory, monkeypatch):
        async def broken_sync(*args, **kwargs):
            raise RuntimeError("address table unavailable")

        monkeypatch.setattr(AddressBookSynchronizer, "sync", staticmethod(broken_sync))
        pid = await create_product(session_factory)

        order = await OrderTransactionCoordinator.place_order(
            db, CUSTOMER_ID, [CartLine(pid, 1, "M")], ADDRESS, "cod"
        )

        assert (await load_order(session_factory, order.id)) is not None
        assert await variant_quantity(session_factory, pid) == 4


class TestPlaceOrderRejections:

    async def test_quantities_for_same_variant_are_summed(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=5)])

        with pytest.raises(InsufficientStock) as exc_info:
            await OrderTransactionCoordinator.place_order(
                db, CUSTOMER_ID, [CartLine(pid, 3, "M"), CartLine(pid, 3, "M")], ADDRESS, "cod"
            )

        assert exc_info.value.payload["available"] == 5
        assert exc_info.value.payload["requested"] == 6
        assert await _order_count(session_factory) == 0
        assert await variant_quantity(session_factory, pid) == 5

    async def test_failure_on_later_line_rolls_back_earlier_lines(self, db, session_factory, monkeypatch):
        first = await create_product(session_factory, name="Shirt", variants=[variant("M", quantity=5)])
        second = await create_product(session_factory, name="Scarf", variants=[variant("M", quantity=5)])
        original = VariantStockLedger.decrement

        async def racing_decrement(db, product_id, size, colour, delta):
            if product_id == second:
                # stock sold elsewhere between validation and write
                raise InsufficientStock("sold out", product_id=product_id, available=0)
            return await original(db, product_id, size, colour, delta)

        monkeypatch.setattr(VariantStockLedger, "decrement", staticmethod(racing_decrement))

        with pytest.raises(InsufficientStock):
            await OrderTransactionCoordinator.place_order(
                db, CUSTOMER_ID, [CartLine(first, 2, "M"), CartLine(second, 1, "M")], ADDRESS, "cod"
            )

        assert await _order_count(session_factory) == 0
        assert await variant_quantity(session_factory, first) == 5

    async def test_cod_ineligible_line(self, db, session_factory):
        ok = await create_product(session_factory, name="Shirt")
        blocked = await create_product(session_factory, name="Perfume", cod_eligible=False)

        with pytest.raises(CodNotEligible) as exc_info:
            await OrderTransactionCoordinator.place_order(
                db, CUSTOMER_ID, [CartLine(ok, 1, "M"), CartLine(blocked, 1, "M")], ADDRESS, "cod"
            )

        assert [item["id"] for item in exc_info.value.payload["non_cod_items"]] == [blocked]
        assert await variant_quantity(session_factory, ok) == 5
        assert await variant_quantity(session_factory, blocked) == 5

    async def test_unknown_size(self, db, session_factory):
        pid = await create_product(session_factory)
        with pytest.raises(SizeNotAvailable):
            await OrderTransactionCoordinator.place_order(
                db, CUSTOMER_ID, [CartLine(pid, 1, "XXL")], ADDRESS, "cod"
            )

    async def test_product_without_variants_needs_size(self, db, session_factory):
        pid = await create_product(session_factory, variants=[])
        with pytest.raises(SizeNotAvailable):
            await OrderTransactionCoordinator.place_order(db, CUSTOMER_ID, [CartLine(pid, 1)], ADDRESS, "cod")

    async def test_empty_cart(self, db):
        with pytest.raises(ValidationError):
            await OrderTransactionCoordinator.place_order(db, CUSTOMER_ID, [], ADDRESS, "cod")

    async def test_unknown_payment_method(self, db, session_factory):
        pid = await create_product(session_factory)
        with pytest.raises(ValidationError):
            await OrderTransactionCoordinator.place_order(
                db, CUSTOMER_ID, [CartLine(pid, 1, "M")], ADDRESS, "barter"
            )
