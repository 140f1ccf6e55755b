"""
Internal API key for operator and scheduler endpoints such as pending-payment
reconciliation. Without ``INTERNAL_API_KEY`` a development server accepts a
well-known placeholder; a production server rejects every request instead.
"""
import secrets
import warnings

from shared.config import settings

DEVELOPMENT_KEY = "insecure-default-change-me"

if not settings.INTERNAL_API_KEY:
    warnings.warn(
        "INTERNAL_API_KEY is not set. Internal endpoints are "
        + ("disabled." if settings.ENVIRONMENT == "production" else f"open to '{DEVELOPMENT_KEY}'."),
        stacklevel=2,
    )


def expected_api_key() -> str | None:
    if settings.INTERNAL_API_KEY:
        return settings.INTERNAL_API_KEY
    if settings.ENVIRONMENT == "production":
        return None
    return DEVELOPMENT_KEY


def verify_api_key(provided_key: str | None) -> bool:
    """Constant-time comparison against the configured internal key."""
    expected = expected_api_key()
    if not provided_key or expected is None:
        return False
    return secrets.compare_digest(str(provided_key), expected)
