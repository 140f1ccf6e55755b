from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import utcnow

from .models import Payment, PaymentEvent


class PaymentRepository:
    @staticmethod
    async def create_payment(db: AsyncSession, payment: Payment):
        db.add(payment)
        await db.flush()
        return payment

    @staticmethod
    async def update_status(db: AsyncSession, gateway: str, external_id: str, status: str) -> int:
        result = await db.execute(
            update(Payment)
            .where(Payment.gateway == gateway, Payment.external_id == external_id)
            .values(status=status, updated_at=utcnow())
        )
        return result.rowcount

    @staticmethod
    async def get_by_external_id(db: AsyncSession, gateway: str, external_id: str):
        result = await db.execute(
            select(Payment).where(Payment.gateway == gateway, Payment.external_id == external_id)
        )
        return result.scalars().first()

    @staticmethod
    async def record_event(db: AsyncSession, event: PaymentEvent) -> bool:
        """Journal a webhook delivery. False when this event id was already processed."""
        try:
            async with db.begin_nested():
                db.add(event)
        except IntegrityError:
            return False
        return True
