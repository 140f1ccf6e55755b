from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.errors import register_error_handlers
from shared.security import limiter

from .models import Payment, PaymentEvent  # noqa: F401 - registers models with Base
from .router import paypal_router, ziina_router, public_router


def _payment_app(title: str, router) -> FastAPI:
    app = FastAPI(title=title, version="2.0.0")

    # --- SECURITY SETUP ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    app.include_router(public_router)
    app.include_router(router)
    return app


paypal_app = _payment_app("PayPal Payments", paypal_router)
ziina_app = _payment_app("Ziina Payments", ziina_router)
