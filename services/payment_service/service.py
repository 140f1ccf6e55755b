import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service import fees
from services.order_service.coordinator import OrderTransactionCoordinator
from services.order_service.models import Order, OrderStatus
from services.order_service.repository import OrderRepository
from services.order_service.service import OrderService
from services.product_service.pricer import CartPricer
from shared.config import settings
from shared.errors import MarketplaceError, NotFound, ValidationError, best_effort
from shared.money import to_money
from shared.observability import marketplace_post_capture_failures_total, marketplace_webhook_events_total
from shared.security import AuthenticatedUser

from .gateways import IntentRequest, Outcome, PaymentGateway
from .models import Payment, PaymentEvent
from .repository import PaymentRepository
from .schemas import PayPalCheckoutRequest

logger = structlog.get_logger(__name__)

PAYMENT_STATUS_BY_OUTCOME = {Outcome.SUCCEEDED: "completed", Outcome.FAILED: "failed"}


async def _record_payment(db: AsyncSession, **fields) -> None:
    async with best_effort(db, "payment_record", gateway=fields.get("gateway"), external_id=fields.get("external_id")):
        await PaymentRepository.create_payment(db, Payment(**fields))


class PaymentService:

    # --- PayPal (pre-paid) ---

    @staticmethod
    async def create_paypal_order(
        db: AsyncSession, user: AuthenticatedUser, payload: PayPalCheckoutRequest, gateway: PaymentGateway
    ) -> dict:
        priced = await CartPricer.price(db, payload.cart_lines())
        quote = fees.quote("paypal", priced)
        await db.rollback()  # read-only; release the connection before calling out

        names = ", ".join(line.name for line in priced.lines)
        intent = await gateway.create_intent(
            IntentRequest(
                reference=f"cart-{user.id}-{uuid.uuid4().hex[:12]}",
                amount=quote.total,
                description=f"{settings.STORE_NAME} Order - {names}",
                success_url=f"{settings.FRONTEND_URL}/checkout/success",
                cancel_url=f"{settings.FRONTEND_URL}/checkout/cancel",
                shipping_address=payload.shipping_address.model_dump(),
            )
        )
        logger.info("paypal_order_created", user_id=user.id, paypal_order_id=intent.external_id, total=str(quote.total))
        return {
            "id": intent.external_id,
            "status": intent.status,
            "approveUrl": intent.redirect_url,
            "amount": quote.total,
            "currency": gateway.currency,
            "chargedAmount": gateway.convert(quote.total),
        }

    @staticmethod
    async def capture_paypal_order(
        db: AsyncSession,
        user: AuthenticatedUser,
        paypal_order_id: str,
        payload: PayPalCheckoutRequest,
        gateway: PaymentGateway,
    ) -> tuple[Order, bool]:
        """Capture and, only on a COMPLETED capture of the cart's total, create the order.

        Returns (order, created).
        """
        existing = await OrderRepository.get_by_payment_id(db, paypal_order_id)
        if existing:
            if existing.customer_id != user.id:
                raise NotFound("Order not found", payment_id=paypal_order_id)
            logger.info("paypal_capture_replayed", order_id=existing.id, paypal_order_id=paypal_order_id)
            return existing, False
        await db.rollback()

        capture = await gateway.capture(paypal_order_id)
        if capture.outcome != Outcome.SUCCEEDED:
            raise ValidationError("PayPal payment not completed", status=capture.status)

        try:
            lines = payload.cart_lines()
            priced = await CartPricer.price(db, lines)
            expected = gateway.convert(fees.quote("paypal", priced).total)
            if capture.amount is None or to_money(capture.amount) != expected:
                raise ValidationError(
                    "Captured amount does not match the cart total",
                    charged=capture.amount,
                    expected=expected,
                    currency=gateway.currency,
                )
            order = await OrderTransactionCoordinator.place_order(
                db,
                customer_id=user.id,
                lines=lines,
                shipping_address=payload.shipping_address.model_dump(),
                payment_method="paypal",
                payment_id=paypal_order_id,
            )
        except Exception as exc:
            await db.rollback()
            marketplace_post_capture_failures_total.labels(gateway=gateway.name).inc()
            logger.critical(
                "captured_payment_without_order",
                paypal_order_id=paypal_order_id,
                capture_id=capture.capture_id,
                amount=str(capture.amount),
                user_id=user.id,
                error=str(exc),
            )
            raise

        await _record_payment(
            db,
            user_id=user.id,
            order_id=order.id,
            gateway=gateway.name,
            external_id=paypal_order_id,
            amount=order.total_amount,
            currency="AED",
            status=capture.status,
        )
        await db.commit()
        return order, True

    # --- Ziina (post-paid) ---

    @staticmethod
    async def _customer_order(db: AsyncSession, user: AuthenticatedUser, order_id: int) -> Order:
        order = await OrderRepository.get_order(db, order_id, for_update=True)
        if not order or order.customer_id != user.id:
            raise NotFound("Order not found", order_id=order_id)
        return order

    @staticmethod
    async def create_ziina_intent(db: AsyncSession, user: AuthenticatedUser, order_id: int, gateway: PaymentGateway) -> dict:
        order = await PaymentService._customer_order(db, user, order_id)
        if order.payment_method != gateway.name or order.status != OrderStatus.PENDING_PAYMENT.value:
            raise ValidationError("Order is not awaiting a Ziina payment", order_id=order_id, status=order.status)

        amount = to_money(order.total_amount)
        if amount < settings.ZIINA_MIN_AMOUNT:
            raise ValidationError(f"Minimum order amount is {settings.ZIINA_MIN_AMOUNT} AED", amount=amount)

        item_count = len(order.items)
        base = settings.FRONTEND_URL.rstrip("/")
        intent = await gateway.create_intent(
            IntentRequest(
                reference=str(order.id),
                amount=amount,
                description=f"{settings.STORE_NAME} - {item_count} item{'s' if item_count != 1 else ''}",
                success_url=f"{base}/checkout?payment_status=success&orderId={order.id}",
                cancel_url=f"{base}/checkout?payment_status=cancelled&orderId={order.id}",
                failure_url=f"{base}/checkout?payment_status=failure&orderId={order.id}",
            )
        )

        try:
            order.payment_id = intent.external_id
            await _record_payment(
                db,
                user_id=user.id,
                order_id=order.id,
                gateway=gateway.name,
                external_id=intent.external_id,
                amount=amount,
                currency="AED",
                status=intent.status,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("ziina_intent_created", order_id=order.id, intent_id=intent.external_id, amount=str(amount))
        return {
            "paymentIntentId": intent.external_id,
            "redirectUrl": intent.redirect_url,
            "amount": amount,
            "status": intent.status,
        }

    @staticmethod
    async def settle(db: AsyncSession, order: Order | None, outcome: Outcome) -> bool:
        """Move a pending_payment order to confirmed/payment_failed. Never restocks by itself."""
        if order is None:
            return False
        if order.status != OrderStatus.PENDING_PAYMENT.value:
            if outcome == Outcome.SUCCEEDED and order.status == OrderStatus.PAYMENT_FAILED.value:
                # paid after the order was failed and possibly restocked; needs a refund or manual confirm
                marketplace_post_capture_failures_total.labels(gateway=order.payment_method).inc()
                logger.critical(
                    "payment_received_for_failed_order",
                    order_id=order.id,
                    payment_id=order.payment_id,
                    gateway=order.payment_method,
                    stock_released=order.stock_released,
                )
            return False
        if outcome == Outcome.SUCCEEDED:
            return await OrderService.apply_status(db, order, OrderStatus.CONFIRMED.value)
        if outcome == Outcome.FAILED:
            return await OrderService.apply_status(db, order, OrderStatus.PAYMENT_FAILED.value)
        return False

    @staticmethod
    async def poll_ziina_intent(
        db: AsyncSession, user: AuthenticatedUser, intent_id: str, order_id: int, gateway: PaymentGateway
    ) -> dict:
        order = await PaymentService._customer_order(db, user, order_id)
        if order.payment_id != intent_id:
            raise ValidationError("Payment intent does not belong to this order", order_id=order_id)
        await db.rollback()

        capture = await gateway.capture(intent_id)
        try:
            order = await PaymentService._customer_order(db, user, order_id)
            await PaymentRepository.update_status(db, gateway.name, intent_id, capture.status)
            await PaymentService.settle(db, order, capture.outcome)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        paid = capture.outcome == Outcome.SUCCEEDED
        return {
            "success": paid,
            "paid": paid,
            "paymentIntentId": intent_id,
            "status": capture.status,
            "orderId": order.id,
            "orderStatus": order.status,
            "amount": capture.amount,
            "error": capture.raw.get("latest_error"),
        }

    @staticmethod
    async def report_payment_status(db: AsyncSession, user: AuthenticatedUser, order_id: int, payment_status: str) -> Order:
        """Customer-reported cancel / failure on the gateway page."""
        try:
            order = await PaymentService._customer_order(db, user, order_id)
            if order.payment_method == fees.COD:
                raise ValidationError("Cash on Delivery orders have no online payment", order_id=order_id)
            await OrderService.apply_status(db, order, OrderStatus.PAYMENT_FAILED.value)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("payment_reported_failed", order_id=order_id, reported=payment_status)
        return order

    # --- Webhooks ---

    @staticmethod
    async def handle_webhook(db: AsyncSession, gateway: PaymentGateway, body: bytes, headers) -> dict:
        """Reconcile one webhook delivery. Never raises; the provider always gets a 200."""
        try:
            event = await gateway.parse_webhook(body, headers)
        except MarketplaceError as exc:
            marketplace_webhook_events_total.labels(gateway=gateway.name, result="rejected").inc()
            logger.warning("webhook_rejected", gateway=gateway.name, reason=exc.message)
            return {"success": False, "message": exc.message}
        except Exception as exc:
            marketplace_webhook_events_total.labels(gateway=gateway.name, result="error").inc()
            logger.exception("webhook_unreadable", gateway=gateway.name)
            return {"success": False, "message": str(exc)}

        if event.outcome == Outcome.IGNORED:
            marketplace_webhook_events_total.labels(gateway=gateway.name, result="ignored").inc()
            return {"success": True, "ignored": True}

        try:
            fresh = await PaymentRepository.record_event(
                db,
                PaymentEvent(
                    gateway=gateway.name,
                    event_id=event.event_id,
                    external_id=event.external_id,
                    event_type=event.event_type,
                ),
            )
            if not fresh:
                await db.rollback()
                marketplace_webhook_events_total.labels(gateway=gateway.name, result="duplicate").inc()
                logger.info("webhook_duplicate", gateway=gateway.name, event_id=event.event_id)
                return {"success": True, "duplicate": True}

            applied = False
            if event.external_id:
                payment_status = PAYMENT_STATUS_BY_OUTCOME.get(event.outcome)
                if payment_status:
                    await PaymentRepository.update_status(db, gateway.name, event.external_id, payment_status)
                order = await OrderRepository.get_by_payment_id(db, event.external_id)
                applied = await PaymentService.settle(db, order, event.outcome)
            await db.commit()
        except Exception as exc:
            await db.rollback()
            marketplace_webhook_events_total.labels(gateway=gateway.name, result="error").inc()
            logger.exception("webhook_failed", gateway=gateway.name, event_id=event.event_id)
            return {"success": False, "message": str(exc)}

        marketplace_webhook_events_total.labels(gateway=gateway.name, result="applied" if applied else "noop").inc()
        logger.info(
            "webhook_processed",
            gateway=gateway.name,
            event_id=event.event_id,
            event_type=event.event_type,
            external_id=event.external_id,
            applied=applied,
        )
        return {"success": True, "applied": applied}
