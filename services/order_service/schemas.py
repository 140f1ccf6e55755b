from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

from services.product_service.pricer import CartLine

PaymentMethod = Literal["cod", "paypal", "card", "ziina"]


class CartItem(BaseModel):
    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId", "id"))
    quantity: int = Field(ge=1)
    selected_size: str | None = Field(
        default=None, validation_alias=AliasChoices("selectedSize", "selected_size", "size")
    )
    selected_colour: str | None = Field(
        default=None, validation_alias=AliasChoices("selectedColour", "selected_colour", "colour")
    )
    price: float | None = None  # accepted for compatibility, never used for pricing

    def to_cart_line(self) -> CartLine:
        return CartLine(
            product_id=self.product_id,
            quantity=self.quantity,
            selected_size=self.selected_size.strip() if self.selected_size else None,
            selected_colour=self.selected_colour.strip() if self.selected_colour else None,
        )


class ShippingAddress(BaseModel):
    full_name: str | None = Field(default=None, validation_alias=AliasChoices("full_name", "fullName"))
    address_line1: str = Field(min_length=1, validation_alias=AliasChoices("address_line1", "addressLine1"))
    address_line2: str | None = Field(default=None, validation_alias=AliasChoices("address_line2", "addressLine2"))
    city: str | None = None
    state: str | None = None
    postal_code: str | None = Field(default=None, validation_alias=AliasChoices("postal_code", "postalCode"))
    country: str | None = None
    phone: str | None = None


class CartRequest(BaseModel):
    items: list[CartItem] = Field(default_factory=list)

    def cart_lines(self) -> list[CartLine]:
        return [item.to_cart_line() for item in self.items]


class OrderCreate(CartRequest):
    items: list[CartItem] = Field(min_length=1)
    shipping_address: ShippingAddress = Field(validation_alias=AliasChoices("shipping_address", "shippingAddress"))
    payment_method: PaymentMethod = Field(
        default="cod", validation_alias=AliasChoices("payment_method", "paymentMethod")
    )


class StatusUpdate(BaseModel):
    status: str


class OrderDetailsUpdate(BaseModel):
    item_id: int | None = Field(default=None, validation_alias=AliasChoices("item_id", "itemId"))
    product_price: Decimal | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("product_price", "productPrice")
    )
    quantity: int | None = Field(default=None, ge=1)
    actual_buy_price: Decimal | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("actual_buy_price", "actualBuyPrice")
    )
    other_profit_loss: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("other_profit_loss", "otherProfitLoss")
    )
    edited_at: datetime | None = Field(default=None, validation_alias=AliasChoices("edited_at", "editedAt"))


class CodQuoteResponse(BaseModel):
    subtotal: float
    codFee: float
    total: float
    codEligible: bool
    nonCodItems: list[dict]
    message: str


class ShippingQuoteResponse(BaseModel):
    subtotal: float
    shippingFee: float
    total: float


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    quantity: int
    price: float
    total: float
    selected_size: str | None = None
    selected_colour: str | None = None
    other_profit_loss: float | None = None
    price_edited_by_seller: bool = False
    quantity_edited_by_seller: bool = False
    buy_price_edited_by_seller: bool = False
    other_profit_loss_edited_by_seller: bool = False
    edited_at: datetime | None = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    customer_id: int
    total_amount: float
    cod_fee: float
    shipping_fee: float
    status: str
    payment_status: str
    payment_method: str
    payment_id: str | None = None
    shipping_address: dict | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderCreatedResponse(BaseModel):
    message: str
    order: OrderResponse
