from .jwt_handler import CUSTOMER, SELLER, create_access_token, verify_access_token
from .api_key import verify_api_key
from .dependencies import (
    AuthenticatedUser,
    get_current_user,
    require_customer,
    require_seller,
    verify_internal_api_key,
)
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "CUSTOMER",
    "SELLER",
    "AuthenticatedUser",
    "create_access_token",
    "verify_access_token",
    "verify_api_key",
    "get_current_user",
    "require_customer",
    "require_seller",
    "verify_internal_api_key",
    "limiter",
    "user_id_or_ip",
]
