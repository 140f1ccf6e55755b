from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import UserAddress


class AddressRepository:

    @staticmethod
    async def count_for_user(db: AsyncSession, user_id: int) -> int:
        return await db.scalar(select(func.count(UserAddress.id)).where(UserAddress.user_id == user_id))

    @staticmethod
    async def find_matching(db: AsyncSession, user_id: int, address_line1, city, state, postal_code):
        result = await db.execute(
            select(UserAddress).where(
                UserAddress.user_id == user_id,
                func.trim(UserAddress.address_line1) == address_line1,
                func.coalesce(func.trim(UserAddress.city), "") == city,
                func.coalesce(func.trim(UserAddress.state), "") == state,
                func.coalesce(func.trim(UserAddress.postal_code), "") == postal_code,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def add(db: AsyncSession, address: UserAddress):
        db.add(address)
        await db.flush()
        return address
