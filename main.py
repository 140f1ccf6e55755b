from fastapi import FastAPI

from shared.config import settings
from shared.config.database import engine, Base
from shared.errors import register_error_handlers
from shared.observability import setup_observability

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.address_service import models as address_models  # noqa: F401
from services.payment_service import models as payment_models  # noqa: F401

from services.product_service.main import product_app
from services.order_service.main import order_app
from services.seller_service.main import seller_app
from services.payment_service.main import paypal_app, ziina_app
from services.payment_service.reconciliation import PendingPaymentReconciler
from services.payment_service.router import internal_router

app = FastAPI(title="Marketplace")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, settings.SERVICE_NAME)
register_error_handlers(app)

reconciler = PendingPaymentReconciler()


@app.get("/health")
async def health_check():
    return {"service": settings.SERVICE_NAME, "status": "running"}


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.RECONCILER_ENABLED:
        reconciler.start()


@app.on_event("shutdown")
async def shutdown_event():
    await reconciler.stop()
    await engine.dispose()


app.include_router(internal_router)

app.mount("/products", product_app)
app.mount("/orders", order_app)
app.mount("/seller", seller_app)
app.mount("/paypal", paypal_app)
app.mount("/ziina", ziina_app)
