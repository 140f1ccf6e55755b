from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.schemas import OrderResponse
from shared.config import settings
from shared.config.database import get_db
from shared.security import AuthenticatedUser, limiter, require_customer, verify_internal_api_key

from .gateways import PaymentGateway, get_paypal_gateway, get_ziina_gateway
from .reconciliation import PendingPaymentReconciler
from .schemas import (
    PaymentStatusReport,
    PayPalCheckoutRequest,
    PayPalOrderResponse,
    ReconcileResponse,
    ZiinaIntentCreate,
    ZiinaIntentResponse,
)
from .service import PaymentService

paypal_router = APIRouter(tags=["PayPal"])
ziina_router = APIRouter(tags=["Ziina"])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

# Operator / scheduler endpoints, mounted on the root app
internal_router = APIRouter(prefix="/internal", dependencies=[Depends(verify_internal_api_key)])


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


# --- PayPal ---

@paypal_router.post("/create", response_model=PayPalOrderResponse)
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def create_paypal_order(
    request: Request,  # slowapi needs this
    payload: PayPalCheckoutRequest,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paypal_gateway),
):
    return await PaymentService.create_paypal_order(db, user, payload, gateway)


@paypal_router.post("/capture/{paypal_order_id}")
async def capture_paypal_order(
    paypal_order_id: str,
    payload: PayPalCheckoutRequest,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paypal_gateway),
):
    order, created = await PaymentService.capture_paypal_order(db, user, paypal_order_id, payload, gateway)
    body = {
        "message": "Order created and paid successfully" if created else "Order already captured",
        "order": OrderResponse.model_validate(order).model_dump(mode="json"),
    }
    return JSONResponse(status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK, content=body)


@paypal_router.post("/webhook")
async def paypal_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_paypal_gateway),
):
    body = await request.body()
    return await PaymentService.handle_webhook(db, gateway, body, request.headers)


# --- Ziina ---

@ziina_router.post("/payment-intent", response_model=ZiinaIntentResponse)
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def create_payment_intent(
    request: Request,  # slowapi needs this
    payload: ZiinaIntentCreate,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_ziina_gateway),
):
    return await PaymentService.create_ziina_intent(db, user, payload.order_id, gateway)


@ziina_router.get("/payment-intent/{intent_id}")
async def get_payment_intent(
    intent_id: str,
    order_id: int = Query(alias="orderId"),
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_ziina_gateway),
):
    return await PaymentService.poll_ziina_intent(db, user, intent_id, order_id, gateway)


@ziina_router.post("/payment-status/{order_id}")
async def report_payment_status(
    order_id: int,
    payload: PaymentStatusReport,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    order = await PaymentService.report_payment_status(db, user, order_id, payload.payment_status)
    return {
        "success": True,
        "order": {"id": order.id, "status": order.status, "total_amount": order.total_amount},
        "message": f"Order marked as {order.status}",
    }


@ziina_router.post("/webhook")
async def ziina_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_ziina_gateway),
):
    body = await request.body()
    return await PaymentService.handle_webhook(db, gateway, body, request.headers)


# --- Internal ---

@internal_router.post("/reconcile-payments", response_model=ReconcileResponse)
async def reconcile_payments(db: AsyncSession = Depends(get_db)):
    return await PendingPaymentReconciler().run_once(db)
