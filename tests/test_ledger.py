from decimal import Decimal

import pytest

from services.product_service.ledger import VariantStockLedger
from shared.errors import InsufficientStock, NotFound, SizeNotAvailable
from tests.fakes import create_product, load_product, variant, variant_quantity


class TestAvailability:

    async def test_prefers_default_colour_without_colour(self, db, session_factory):
        pid = await create_product(
            session_factory,
            variants=[variant("M", "Red", 2), variant("M", "Default", 7), variant("L", "Default", 1)],
        )
        availability = await VariantStockLedger.get_availability(db, pid, "M")
        assert availability.colour == "Default"
        assert availability.available_quantity == 7

    async def test_falls_back_to_first_row_of_size(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("S", "Blue", 3), variant("S", "Green", 4)])
        availability = await VariantStockLedger.get_availability(db, pid, "S")
        assert availability.colour == "Blue"

    async def test_variant_price_overrides_product_price(self, db, session_factory):
        pid = await create_product(
            session_factory, price="20.00", variants=[variant("XL", price=Decimal("24.50"), cod_eligible=False)]
        )
        availability = await VariantStockLedger.get_availability(db, pid, "XL")
        assert availability.unit_price == Decimal("24.50")
        assert availability.cod_eligible is False

    async def test_unknown_size(self, db, session_factory):
        pid = await create_product(session_factory)
        with pytest.raises(SizeNotAvailable):
            await VariantStockLedger.get_availability(db, pid, "XXL")

    async def test_unknown_colour(self, db, session_factory):
        pid = await create_product(session_factory)
        with pytest.raises(SizeNotAvailable):
            await VariantStockLedger.get_availability(db, pid, "M", "Purple")

    async def test_inactive_product_is_not_found(self, db, session_factory):
        pid = await create_product(session_factory, is_active=False)
        with pytest.raises(NotFound):
            await VariantStockLedger.get_availability(db, pid, "M")


class TestDecrement:

    async def test_sale_and_restock(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=5), variant("L", quantity=2)])

        assert await VariantStockLedger.decrement(db, pid, "M", "Default", -3) == 2
        assert await VariantStockLedger.decrement(db, pid, "M", None, 1) == 3
        await db.commit()

        product = await load_product(session_factory, pid)
        assert product.stock_quantity == 5
        assert await variant_quantity(session_factory, pid, "M") == 3

    async def test_can_sell_last_unit(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=1)])
        assert await VariantStockLedger.decrement(db, pid, "M", "Default", -1) == 0

    async def test_never_goes_negative(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=2)])

        with pytest.raises(InsufficientStock) as exc_info:
            await VariantStockLedger.decrement(db, pid, "M", "Default", -3)

        assert exc_info.value.payload["available"] == 2
        assert exc_info.value.payload["size"] == "M"
        await db.rollback()
        assert await variant_quantity(session_factory, pid, "M") == 2

    async def test_restock_reaches_inactive_product(self, db, session_factory):
        pid = await create_product(session_factory, is_active=False, variants=[variant("M", quantity=0)])
        assert await VariantStockLedger.decrement(db, pid, "M", None, 4) == 4

    async def test_unknown_variant(self, db, session_factory):
        pid = await create_product(session_factory)
        with pytest.raises(SizeNotAvailable):
            await VariantStockLedger.decrement(db, pid, "XS", "Default", -1)


class TestSizeQueries:

    async def test_list_sizes_keeps_seller_order(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("L", quantity=0), variant("S", quantity=2)])
        sizes = await VariantStockLedger.list_sizes(db, pid)
        assert [s["size"] for s in sizes] == ["L", "S"]
        assert [s["in_stock"] for s in sizes] == [False, True]

    async def test_check_size(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=3)])

        ok = await VariantStockLedger.check_size(db, pid, "M", 3)
        too_many = await VariantStockLedger.check_size(db, pid, "M", 4)
        missing = await VariantStockLedger.check_size(db, pid, "XXL", 1)

        assert ok["available"] and ok["available_quantity"] == 3
        assert not too_many["available"]
        assert missing == {"available": False, "available_quantity": 0, "message": "Size not available for this product"}
