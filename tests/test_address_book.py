from sqlalchemy import func, select

from services.address_service.models import UserAddress
from services.address_service.service import MAX_SAVED_ADDRESSES, AddressBookSynchronizer
from tests.fakes import ADDRESS, CUSTOMER_ID


async def _count(session_factory, user_id=CUSTOMER_ID) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count(UserAddress.id)).where(UserAddress.user_id == user_id))


class TestAddressBookSynchronizer:

    async def test_saves_new_address(self, db, session_factory):
        saved = await AddressBookSynchronizer.sync(db, CUSTOMER_ID, ADDRESS)
        await db.commit()

        assert saved.address_line1 == "12 Marina Walk"
        assert saved.is_default is False
        assert await _count(session_factory) == 1

    async def test_ignores_duplicate_with_extra_whitespace(self, db, session_factory):
        await AddressBookSynchronizer.sync(db, CUSTOMER_ID, ADDRESS)
        padded = {**ADDRESS, "address_line1": "  12 Marina Walk ", "city": "Dubai  "}
        assert await AddressBookSynchronizer.sync(db, CUSTOMER_ID, padded) is None
        await db.commit()
        assert await _count(session_factory) == 1

    async def test_same_address_for_another_user(self, db, session_factory):
        await AddressBookSynchronizer.sync(db, CUSTOMER_ID, ADDRESS)
        await AddressBookSynchronizer.sync(db, CUSTOMER_ID + 1, ADDRESS)
        await db.commit()
        assert await _count(session_factory, CUSTOMER_ID + 1) == 1

    async def test_stops_at_capacity(self, db, session_factory):
        for n in range(MAX_SAVED_ADDRESSES + 2):
            await AddressBookSynchronizer.sync(db, CUSTOMER_ID, {**ADDRESS, "address_line1": f"{n} Palm Road"})
        await db.commit()
        assert await _count(session_factory) == MAX_SAVED_ADDRESSES

    async def test_skips_missing_address(self, db):
        assert await AddressBookSynchronizer.sync(db, CUSTOMER_ID, None) is None
        assert await AddressBookSynchronizer.sync(db, CUSTOMER_ID, {"city": "Dubai"}) is None
