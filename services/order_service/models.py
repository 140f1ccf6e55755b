import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from services.product_service.models import Product  # noqa: F401  (registers products for the FK)
from shared.config.database import Base, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, nullable=False, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    cod_fee = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_fee = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.UNPAID.value)
    payment_method = Column(String, nullable=False)  # cod, paypal, card, ziina
    payment_id = Column(String, nullable=True, index=True)  # gateway order / intent id
    shipping_address = Column(JSON, nullable=True)  # snapshot at checkout
    stock_released = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def order_number(self) -> str:
        return f"ORD-{self.id:08d}"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    # variant row the units came from; NULL once the seller deletes it
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)  # price * quantity
    selected_size = Column(String, nullable=True)
    selected_colour = Column(String, nullable=True)

    # seller corrections
    other_profit_loss = Column(Numeric(10, 2), nullable=True)
    price_edited_by_seller = Column(Boolean, nullable=False, default=False)
    quantity_edited_by_seller = Column(Boolean, nullable=False, default=False)
    buy_price_edited_by_seller = Column(Boolean, nullable=False, default=False)
    other_profit_loss_edited_by_seller = Column(Boolean, nullable=False, default=False)
    price_edited_at = Column(DateTime(timezone=True), nullable=True)
    quantity_edited_at = Column(DateTime(timezone=True), nullable=True)
    buy_price_edited_at = Column(DateTime(timezone=True), nullable=True)
    other_profit_loss_edited_at = Column(DateTime(timezone=True), nullable=True)
    edited_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="selectin")

    @property
    def product_name(self) -> str | None:
        return self.product.name if self.product is not None else None
