from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from services.order_service.schemas import CartItem, CartRequest, ShippingAddress


class PayPalCheckoutRequest(CartRequest):
    items: list[CartItem] = Field(min_length=1)
    shipping_address: ShippingAddress = Field(validation_alias=AliasChoices("shipping_address", "shippingAddress"))


class ZiinaIntentCreate(BaseModel):
    order_id: int = Field(validation_alias=AliasChoices("orderId", "order_id"))
    # the client may still send an amount; the order total is always used instead
    amount: float | None = None


class PaymentStatusReport(BaseModel):
    payment_status: Literal["cancelled", "failed"] = Field(
        validation_alias=AliasChoices("paymentStatus", "payment_status")
    )


class PayPalOrderResponse(BaseModel):
    id: str
    status: str
    approveUrl: str | None = None
    amount: float
    currency: str
    chargedAmount: float


class ZiinaIntentResponse(BaseModel):
    paymentIntentId: str
    redirectUrl: str | None = None
    amount: float
    status: str


class ReconcileResponse(BaseModel):
    expired: int
    released: int
    failed: int
