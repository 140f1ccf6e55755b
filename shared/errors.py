"""Marketplace error taxonomy.

Every business rejection is a ``MarketplaceError`` carrying an HTTP status and
a machine-readable payload, so routers never build error bodies by hand and
the client can highlight the offending cart line.
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class MarketplaceError(Exception):
    """Base class for every error surfaced to API clients."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **payload):
        super().__init__(message)
        self.message = message
        self.payload = payload

    def to_dict(self) -> dict:
        return {"message": self.message, **self.payload}


class ValidationError(MarketplaceError):
    """Malformed or missing request fields."""


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND


class InsufficientStock(MarketplaceError):
    pass


class SizeNotAvailable(MarketplaceError):
    pass


class OutOfStock(MarketplaceError):
    pass


class CodNotEligible(MarketplaceError):
    pass


class InvalidStatusTransition(MarketplaceError):
    pass


class Unauthorized(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN


class GatewayError(MarketplaceError):
    """A payment provider call failed. ``error`` relays the provider message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, provider_message: str | None = None, **payload):
        super().__init__(message, error=provider_message or message, **payload)
        self.provider_message = provider_message


class PersistenceWarning(MarketplaceError):
    """A non-essential side effect could not be persisted. Logged, never raised to clients."""

    status_code = status.HTTP_200_OK


@asynccontextmanager
async def best_effort(db, step: str, **context):
    """Run a side effect inside a SAVEPOINT; failures are logged and swallowed."""
    try:
        async with db.begin_nested():
            yield
    except Exception as exc:
        warning = PersistenceWarning(f"{step} failed", error=str(exc), **context)
        logger.warning("side_effect_failed", step=step, **warning.payload)


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, reason=exc.message, **exc.payload)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation failed", "errors": errors},
        )
