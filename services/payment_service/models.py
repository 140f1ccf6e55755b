from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint

from shared.config.database import Base, utcnow


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    gateway = Column(String, nullable=False)  # paypal, ziina
    external_id = Column(String, nullable=False, index=True)  # gateway order / intent id
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False, default="AED")
    status = Column(String, nullable=False)  # as reported by the gateway
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class PaymentEvent(Base):
    """Journal of processed webhook deliveries."""

    __tablename__ = "payment_events"
    __table_args__ = (UniqueConstraint("gateway", "event_id", name="uq_payment_event"),)

    id = Column(Integer, primary_key=True, index=True)
    gateway = Column(String, nullable=False)
    event_id = Column(String, nullable=False)
    external_id = Column(String, nullable=True, index=True)
    event_type = Column(String, nullable=True)
    received_at = Column(DateTime(timezone=True), default=utcnow)
