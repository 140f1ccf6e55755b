"""
Compensating restock for online orders whose payment never arrived.

Stock is decremented when a Ziina order is placed. If the customer abandons
the gateway page, or the gateway reports a failure, those units stay held
until this job releases them: ``pending_payment`` orders older than the
timeout are marked ``payment_failed`` and every unreleased ``payment_failed``
order is restocked through the ledger, one transaction per order.
"""
import asyncio
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import OrderStatus
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService
from shared.config import settings
from shared.config.database import AsyncSessionLocal, utcnow

logger = structlog.get_logger(__name__)


class PendingPaymentReconciler:

    def __init__(
        self,
        timeout_minutes: int = settings.PENDING_PAYMENT_TIMEOUT_MINUTES,
        interval_seconds: int = settings.RECONCILER_INTERVAL_SECONDS,
        session_factory=AsyncSessionLocal,
    ):
        self.timeout = timedelta(minutes=timeout_minutes)
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self._task: asyncio.Task | None = None

    async def _reconcile_order(self, db: AsyncSession, order_id: int, stale_before) -> str | None:
        order = await OrderRepository.get_order(db, order_id, for_update=True)
        if order is None or order.stock_released:
            return None

        if order.status == OrderStatus.PENDING_PAYMENT.value:
            if order.created_at is None or order.created_at.replace(tzinfo=None) >= stale_before.replace(tzinfo=None):
                return None
            await OrderService.apply_status(db, order, OrderStatus.PAYMENT_FAILED.value)
            reason = "payment_timeout"
        elif order.status == OrderStatus.PAYMENT_FAILED.value:
            reason = "payment_failed"
        else:
            return None

        await OrderService.release_stock(db, order, reason=reason)
        return reason

    async def run_once(self, db: AsyncSession) -> dict:
        stale_before = utcnow() - self.timeout
        order_ids = await OrderRepository.unreleased_online_orders(db, stale_before)
        await db.rollback()

        summary = {"expired": 0, "released": 0, "failed": 0}
        for order_id in order_ids:
            try:
                reason = await self._reconcile_order(db, order_id, stale_before)
                await db.commit()
            except Exception:
                await db.rollback()
                summary["failed"] += 1
                logger.exception("reconcile_order_failed", order_id=order_id)
                continue
            if reason is None:
                continue
            summary["released"] += 1
            if reason == "payment_timeout":
                summary["expired"] += 1

        if order_ids:
            logger.info("pending_payments_reconciled", candidates=len(order_ids), **summary)
        return summary

    async def run_forever(self):
        while True:
            try:
                async with self.session_factory() as db:
                    await self.run_once(db)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("reconciler_iteration_failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
            logger.info("reconciler_started", interval_seconds=self.interval_seconds, timeout=str(self.timeout))
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
