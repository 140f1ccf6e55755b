from fastapi import FastAPI

from shared.errors import register_error_handlers

from .router import router, public_router

seller_app = FastAPI(title="Seller Service", version="1.0.0")

register_error_handlers(seller_app)

seller_app.include_router(public_router)
seller_app.include_router(router)
