from fastapi import FastAPI

from shared.errors import register_error_handlers

from .models import Product, ProductVariant  # noqa: F401 - registers models with Base
from .router import router, public_router

product_app = FastAPI(
    title="Product Service",
    version="1.0.0"
)

register_error_handlers(product_app)

product_app.include_router(public_router)
product_app.include_router(router)
