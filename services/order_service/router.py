from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.product_service.pricer import CartPricer
from shared.config import settings
from shared.config.database import get_db
from shared.errors import ValidationError
from shared.security import AuthenticatedUser, get_current_user, limiter, require_customer

from . import fees
from .coordinator import OrderTransactionCoordinator
from .schemas import (
    CartRequest,
    CodQuoteResponse,
    OrderCreate,
    OrderCreatedResponse,
    OrderResponse,
    ShippingQuoteResponse,
    StatusUpdate,
)
from .service import OrderService

router = APIRouter(tags=["Orders"])
public_router = APIRouter()  # For any public endpoints (e.g. health check)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.post("/calculate-cod", response_model=CodQuoteResponse)
async def calculate_cod(
    payload: CartRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    priced = await CartPricer.price(db, payload.cart_lines())
    quote = fees.cod_quote(priced)
    if not quote.cod_eligible:
        message = "Some items are not eligible for Cash on Delivery"
    elif quote.cod_fee == 0:
        message = "Free COD (order value ≥ 100 AED)"
    else:
        message = f"COD fee: {quote.cod_fee} AED"
    return {
        "subtotal": quote.subtotal,
        "codFee": quote.cod_fee,
        "total": quote.total,
        "codEligible": quote.cod_eligible,
        "nonCodItems": quote.non_cod_items,
        "message": message,
    }


@router.post("/calculate-shipping", response_model=ShippingQuoteResponse)
async def calculate_shipping(
    payload: CartRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    priced = await CartPricer.price(db, payload.cart_lines())
    shipping_fee = fees.online_shipping(priced.subtotal)
    return {
        "subtotal": priced.subtotal,
        "shippingFee": shipping_fee,
        "total": priced.subtotal + shipping_fee,
    }


@router.post("/", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def create_order(
    request: Request,  # slowapi needs this
    payload: OrderCreate,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    if payload.payment_method in ("paypal", "card"):
        raise ValidationError(
            "Pre-paid orders are created by the payment capture flow (POST /paypal/create)",
            field="payment_method",
        )
    order = await OrderTransactionCoordinator.place_order(
        db,
        customer_id=user.id,
        lines=payload.cart_lines(),
        shipping_address=payload.shipping_address.model_dump(),
        payment_method=payload.payment_method,
    )
    return {"message": "Order created successfully", "order": order}


@router.get("/", response_model=list[OrderResponse])
async def list_orders(
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_customer_orders(db, user.id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.get_customer_order(db, user.id, order_id)


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    user: AuthenticatedUser = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.update_status(db, order_id, payload.status, user)
    return {
        "message": "Order status updated successfully",
        "order": {"id": order.id, "status": order.status, "payment_status": order.payment_status},
    }
