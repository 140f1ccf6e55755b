from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer

from shared.errors import Forbidden

from .api_key import verify_api_key
from .jwt_handler import CUSTOMER, SELLER, verify_access_token

# Bearer tokens are issued by the external auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    role: str


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> AuthenticatedUser:
    """Validate the bearer JWT and return the caller's id and role."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    payload = verify_access_token(token)
    if payload is None or payload.get("sub") is None:
        raise credentials_exception

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise credentials_exception

    user = AuthenticatedUser(id=user_id, role=payload.get("role", CUSTOMER))
    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = user.id
    return user


async def require_customer(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if user.role != CUSTOMER:
        raise Forbidden("Customer access required", role=user.role)
    return user


async def require_seller(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    if user.role != SELLER:
        raise Forbidden("Seller access required", role=user.role)
    return user


async def verify_internal_api_key(api_key: str = Depends(api_key_header)) -> bool:
    """Dependency to validate operator / scheduler requests."""
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header",
        )
    return True
