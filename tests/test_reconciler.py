from datetime import timedelta

from sqlalchemy import update

from services.order_service.coordinator import OrderTransactionCoordinator
from services.order_service.models import Order
from services.payment_service.reconciliation import PendingPaymentReconciler
from services.product_service.pricer import CartLine
from services.product_service.schemas import VariantIn
from services.product_service.service import ProductService
from shared.config.database import utcnow
from tests.fakes import ADDRESS, CUSTOMER_ID, SELLER_ID, create_product, load_order, variant, variant_quantity


async def _place(session_factory, product_id, method="ziina", quantity=2) -> int:
    async with session_factory() as db:
        order = await OrderTransactionCoordinator.place_order(
            db, CUSTOMER_ID, [CartLine(product_id, quantity, "M")], ADDRESS, method
        )
        return order.id


async def _set(session_factory, order_id, **values):
    async with session_factory() as db:
        await db.execute(update(Order).where(Order.id == order_id).values(**values))
        await db.commit()


class TestPendingPaymentReconciler:

    async def test_expires_stale_pending_payment(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=5)])
        order_id = await _place(session_factory, pid)
        await _set(session_factory, order_id, created_at=utcnow() - timedelta(hours=2))

        summary = await PendingPaymentReconciler(timeout_minutes=60, session_factory=session_factory).run_once(db)

        assert summary == {"expired": 1, "released": 1, "failed": 0}
        saved = await load_order(session_factory, order_id)
        assert (saved.status, saved.payment_status, saved.stock_released) == ("payment_failed", "failed", True)
        assert await variant_quantity(session_factory, pid) == 5

    async def test_leaves_fresh_pending_payment(self, db, session_factory):
        pid = await create_product(session_factory)
        order_id = await _place(session_factory, pid)

        summary = await PendingPaymentReconciler(timeout_minutes=60).run_once(db)

        assert summary == {"expired": 0, "released": 0, "failed": 0}
        assert (await load_order(session_factory, order_id)).status == "pending_payment"
        assert await variant_quantity(session_factory, pid) == 3

    async def test_restocks_failed_payment_once(self, db, session_factory):
        pid = await create_product(session_factory)
        order_id = await _place(session_factory, pid)
        await _set(session_factory, order_id, status="payment_failed", payment_status="failed")
        reconciler = PendingPaymentReconciler(timeout_minutes=60)

        first = await reconciler.run_once(db)
        second = await reconciler.run_once(db)

        assert first["released"] == 1
        assert second == {"expired": 0, "released": 0, "failed": 0}
        assert await variant_quantity(session_factory, pid) == 5

    async def test_ignores_cod_and_paid_orders(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=10)])
        cod_id = await _place(session_factory, pid, method="cod")
        paid_id = await _place(session_factory, pid)
        await _set(session_factory, cod_id, created_at=utcnow() - timedelta(days=1))
        await _set(session_factory, paid_id, status="confirmed", payment_status="paid", created_at=utcnow() - timedelta(days=1))

        summary = await PendingPaymentReconciler(timeout_minutes=60).run_once(db)

        assert summary["released"] == 0
        assert await variant_quantity(session_factory, pid) == 6

    async def test_expires_order_whose_variant_was_removed(self, db, session_factory):
        pid = await create_product(session_factory, variants=[variant("M", quantity=5)])
        order_id = await _place(session_factory, pid)
        await _set(session_factory, order_id, created_at=utcnow() - timedelta(hours=2))
        async with session_factory() as seller_db:
            await ProductService.replace_variants(seller_db, SELLER_ID, pid, [VariantIn(size="XL", quantity=1)])
        reconciler = PendingPaymentReconciler(timeout_minutes=60)

        first = await reconciler.run_once(db)
        second = await reconciler.run_once(db)

        assert first == {"expired": 1, "released": 1, "failed": 0}
        assert second == {"expired": 0, "released": 0, "failed": 0}
        saved = await load_order(session_factory, order_id)
        assert (saved.status, saved.stock_released) == ("payment_failed", True)
        assert await variant_quantity(session_factory, pid, "XL") == 1
