"""
Saves the shipping address of a successful order to the customer's address
book. Runs inside the checkout transaction but under a SAVEPOINT, so a
failure here never rolls back the order.
"""
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .models import UserAddress
from .repository import AddressRepository

logger = structlog.get_logger(__name__)

MAX_SAVED_ADDRESSES = 6


def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


class AddressBookSynchronizer:

    @staticmethod
    async def sync(db: AsyncSession, user_id: int, address: dict | None) -> UserAddress | None:
        """Insert ``address`` unless it is already saved or the book is full."""
        if not address:
            return None

        line1 = _clean(address.get("address_line1"))
        if not line1:
            return None
        city = _clean(address.get("city"))
        state = _clean(address.get("state"))
        postal_code = _clean(address.get("postal_code"))

        existing = await AddressRepository.find_matching(db, user_id, line1, city, state, postal_code)
        if existing:
            return None

        count = await AddressRepository.count_for_user(db, user_id)
        if count >= MAX_SAVED_ADDRESSES:
            logger.info("address_book_full", user_id=user_id, saved=count)
            return None

        saved = await AddressRepository.add(
            db,
            UserAddress(
                user_id=user_id,
                type="shipping",
                full_name=_clean(address.get("full_name")) or None,
                address_line1=line1,
                address_line2=_clean(address.get("address_line2")) or None,
                city=city or None,
                state=state or None,
                postal_code=postal_code or None,
                country=_clean(address.get("country")) or None,
                phone=_clean(address.get("phone")) or None,
                is_default=False,
            ),
        )
        logger.info("address_saved", user_id=user_id, address_id=saved.id)
        return saved
