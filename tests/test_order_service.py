from decimal import Decimal

import pytest

from services.order_service.coordinator import OrderTransactionCoordinator
from services.order_service.schemas import OrderDetailsUpdate
from services.order_service.service import OrderService, check_transition
from services.product_service.pricer import CartLine
from services.product_service.schemas import VariantIn
from services.product_service.service import ProductService
from shared.errors import InvalidStatusTransition, NotFound, SizeNotAvailable
from shared.security import AuthenticatedUser
from tests.fakes import (
    ADDRESS,
    CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    OTHER_SELLER_ID,
    SELLER_ID,
    create_product,
    load_order,
    load_product,
    variant,
    variant_quantity,
)

CUSTOMER = AuthenticatedUser(id=CUSTOMER_ID, role="customer")
SELLER = AuthenticatedUser(id=SELLER_ID, role="seller")


async def _place(session_factory, lines, method="cod"):
    async with session_factory() as db:
        order = await OrderTransactionCoordinator.place_order(db, CUSTOMER_ID, lines, ADDRESS, method)
        return order.id


class TestCheckTransition:

    @pytest.mark.parametrize(
        "current, target",
        [
            ("pending", "confirmed"),
            ("pending", "processing"),
            ("confirmed", "shipped"),
            ("processing", "delivered"),
            ("shipped", "delivered"),
            ("pending_payment", "payment_failed"),
        ],
    )
    def test_legal(self, current, target):
        assert check_transition(current, target, "seller") is True

    @pytest.mark.parametrize(
        "current, target",
        [
            ("delivered", "cancelled"),
            ("cancelled", "pending"),
            ("shipped", "cancelled"),
            ("payment_failed", "confirmed"),
            ("pending", "shipped"),
        ],
    )
    def test_illegal(self, current, target):
        with pytest.raises(InvalidStatusTransition):
            check_transition(current, target, "seller")

    def test_same_status_is_noop(self):
        assert check_transition("shipped", "shipped", "seller") is False

    def test_customer_limits(self):
        assert check_transition("pending", "confirmed", "customer")
        assert check_transition("confirmed", "cancelled", "customer")
        with pytest.raises(InvalidStatusTransition):
            check_transition("pending_payment", "confirmed", "customer")
        with pytest.raises(InvalidStatusTransition):
            check_transition("confirmed", "shipped", "customer")

    def test_unknown_status(self):
        with pytest.raises(InvalidStatusTransition):
            check_transition("pending", "lost", "seller")


class TestStatusUpdates:

    async def test_cancel_restocks_once(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=5)])
        order_id = await _place(session_factory, [CartLine(pid, 2, "M")])
        assert await variant_quantity(session_factory, pid) == 3

        order = await OrderService.update_status(db, order_id, "cancelled", CUSTOMER)
        assert order.status == "cancelled"
        assert order.stock_released is True
        assert await variant_quantity(session_factory, pid) == 5

        # second cancel is a no-op
        await OrderService.update_status(db, order_id, "cancelled", SELLER)
        assert await OrderService.release_stock(db, order, reason="cancelled") is False
        assert await variant_quantity(session_factory, pid) == 5

    async def test_seller_walks_order_to_delivery(self, db, session_factory):
        pid = await create_product(session_factory)
        order_id = await _place(session_factory, [CartLine(pid, 1, "M")])

        for status in ("confirmed", "processing", "shipped", "delivered"):
            await OrderService.update_status(db, order_id, status, SELLER)

        saved = await load_order(session_factory, order_id)
        assert saved.status == "delivered"
        with pytest.raises(InvalidStatusTransition):
            await OrderService.update_status(db, order_id, "cancelled", SELLER)

    async def test_payment_failed_marks_payment(self, db, session_factory):
        pid = await create_product(session_factory)
        order_id = await _place(session_factory, [CartLine(pid, 1, "M")], method="ziina")

        order = await OrderService.update_status(db, order_id, "payment_failed", SELLER)
        assert order.payment_status == "failed"

    async def test_other_customer_cannot_touch_order(self, db, session_factory):
        pid = await create_product(session_factory)
        order_id = await _place(session_factory, [CartLine(pid, 1, "M")])
        with pytest.raises(NotFound):
            await OrderService.update_status(
                db, order_id, "cancelled", AuthenticatedUser(id=OTHER_CUSTOMER_ID, role="customer")
            )

    async def test_unrelated_seller_cannot_touch_order(self, db, session_factory):
        pid = await create_product(session_factory)
        order_id = await _place(session_factory, [CartLine(pid, 1, "M")])
        with pytest.raises(NotFound):
            await OrderService.update_status(
                db, order_id, "confirmed", AuthenticatedUser(id=OTHER_SELLER_ID, role="seller")
            )


class TestSellerEdits:

    async def test_quantity_edit_moves_stock(self, db, session_factory):
        pid = await create_product(session_factory, price="20.00", variants=[variant("M", quantity=5)])
        order_id = await _place(session_factory, [CartLine(pid, 2, "M")])

        order = await OrderService.edit_order_details(db, order_id, SELLER_ID, OrderDetailsUpdate(quantity=3))

        item = order.items[0]
        assert item.quantity == 3
        assert item.quantity_edited_by_seller is True
        assert item.total == Decimal("60.00")
        assert order.total_amount == Decimal("60.00")
        assert await variant_quantity(session_factory, pid) == 2

    async def test_price_and_profit_edit(self, db, session_factory):
        pid = await create_product(session_factory, price="20.00")
        order_id = await _place(session_factory, [CartLine(pid, 2, "M")])

        order = await OrderService.edit_order_details(
            db,
            order_id,
            SELLER_ID,
            OrderDetailsUpdate(productPrice=Decimal("18.50"), otherProfitLoss=Decimal("-3"), actualBuyPrice=Decimal("9")),
        )

        item = order.items[0]
        assert item.price == Decimal("18.50")
        assert item.total == Decimal("37.00")
        assert item.other_profit_loss == Decimal("-3.00")
        assert item.price_edited_by_seller and item.buy_price_edited_by_seller
        assert item.edited_at is not None
        assert order.total_amount == Decimal("37.00")

    async def test_only_own_lines_are_edited(self, db, session_factory):
        mine = await create_product(session_factory, price="10.00")
        theirs = await create_product(session_factory, seller_id=OTHER_SELLER_ID, price="30.00")
        order_id = await _place(session_factory, [CartLine(mine, 1, "M"), CartLine(theirs, 1, "M")])

        order = await OrderService.edit_order_details(
            db, order_id, SELLER_ID, OrderDetailsUpdate(productPrice=Decimal("12.00"))
        )

        prices = {item.product_id: item.price for item in order.items}
        assert prices == {mine: Decimal("12.00"), theirs: Decimal("30.00")}
        assert order.total_amount == Decimal("42.00")

    async def test_edit_foreign_order(self, db, session_factory):
        pid = await create_product(session_factory, seller_id=OTHER_SELLER_ID)
        order_id = await _place(session_factory, [CartLine(pid, 1, "M")])
        with pytest.raises(NotFound):
            await OrderService.edit_order_details(db, order_id, SELLER_ID, OrderDetailsUpdate(quantity=2))


class TestSellerListing:

    async def test_pagination_and_filter(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=50)])
        other = await create_product(session_factory, seller_id=OTHER_SELLER_ID)
        for _ in range(3):
            await _place(session_factory, [CartLine(pid, 1, "M")])
        await _place(session_factory, [CartLine(other, 1, "M")])

        page = await OrderService.list_seller_orders(db, SELLER_ID, page=1, limit=2)
        assert len(page["orders"]) == 2
        assert page["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalOrders": 3,
            "hasNextPage": True,
            "hasPrevPage": False,
        }

        pending = await OrderService.list_seller_orders(db, SELLER_ID, status="shipped")
        assert pending["orders"] == []
        assert pending["pagination"]["totalOrders"] == 0

    async def test_mixed_order_shows_only_own_lines(self, db, session_factory):
        mine = await create_product(session_factory)
        theirs = await create_product(session_factory, seller_id=OTHER_SELLER_ID)
        await _place(session_factory, [CartLine(mine, 1, "M"), CartLine(theirs, 1, "M")])

        page = await OrderService.list_seller_orders(db, SELLER_ID)
        assert [item["product_id"] for item in page["orders"][0]["items"]] == [mine]


class TestRestockAfterCatalogueChanges:

    async def test_cancel_after_colour_rename(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", "Red", quantity=5)])
        order_id = await _place(session_factory, [CartLine(pid, 2, "M", "Red")])
        async with session_factory() as seller_db:
            await ProductService.rename_colour(seller_db, SELLER_ID, pid, "M", "Red", "Crimson")

        order = await OrderService.update_status(db, order_id, "cancelled", CUSTOMER)

        assert (order.status, order.stock_released) == ("cancelled", True)
        assert await variant_quantity(session_factory, pid, "M", "Crimson") == 5

    async def test_cancel_after_variants_replaced(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", "Red", quantity=5)])
        order_id = await _place(session_factory, [CartLine(pid, 2, "M", "Red")])
        async with session_factory() as seller_db:
            await ProductService.replace_variants(seller_db, SELLER_ID, pid, [VariantIn(size="L", quantity=4)])

        order = await OrderService.update_status(db, order_id, "cancelled", CUSTOMER)

        assert (order.status, order.stock_released) == ("cancelled", True)
        assert await variant_quantity(session_factory, pid, "L") == 4
        assert (await load_product(session_factory, pid)).stock_quantity == 4

    async def test_selling_more_from_removed_variant(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=5)])
        order_id = await _place(session_factory, [CartLine(pid, 2, "M")])
        async with session_factory() as seller_db:
            await ProductService.replace_variants(seller_db, SELLER_ID, pid, [VariantIn(size="L", quantity=4)])

        with pytest.raises(SizeNotAvailable):
            await OrderService.edit_order_details(db, order_id, SELLER_ID, OrderDetailsUpdate(quantity=3))
        assert (await load_order(session_factory, order_id)).items[0].quantity == 2

    async def test_quantity_edit_after_release_keeps_stock(self, db, session_factory):
        pid = await create_product(session_factory, price="20.00", variants=[variant("M", quantity=5)])
        order_id = await _place(session_factory, [CartLine(pid, 2, "M")])
        await OrderService.update_status(db, order_id, "cancelled", CUSTOMER)

        order = await OrderService.edit_order_details(db, order_id, SELLER_ID, OrderDetailsUpdate(quantity=4))

        item = order.items[0]
        assert item.quantity == 4
        assert item.total == item.price * item.quantity == Decimal("80.00")
        assert order.total_amount == Decimal("80.00")
        assert await variant_quantity(session_factory, pid) == 5
