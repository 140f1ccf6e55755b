from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.repository import OrderRepository
from services.order_service.schemas import OrderDetailsUpdate, StatusUpdate
from services.order_service.service import OrderService, serialize_order
from services.product_service.schemas import (
    ColourRename,
    ProductCreate,
    ProductResponse,
    VariantPatch,
    VariantResponse,
    VariantsReplace,
)
from services.product_service.service import ProductService
from shared.config.database import get_db
from shared.security import AuthenticatedUser, require_seller

# Every seller endpoint requires a seller token
router = APIRouter(tags=["Seller"])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "seller", "status": "running"}


# --- Orders ---

@router.get("/orders")
async def list_orders(
    status_filter: str | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await OrderService.list_seller_orders(db, seller.id, status_filter, page, limit)


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.update_status(db, order_id, payload.status, seller)
    return {
        "message": "Order status updated successfully",
        "order": {"id": order.id, "status": order.status, "payment_status": order.payment_status},
    }


@router.patch("/orders/{order_id}/details")
async def update_order_details(
    order_id: int,
    payload: OrderDetailsUpdate,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    order = await OrderService.edit_order_details(db, order_id, seller.id, payload)
    own = await OrderRepository.seller_product_ids(db, seller.id, {item.product_id for item in order.items})
    return {
        "message": "Order details updated successfully",
        "order_id": order.id,
        "order": serialize_order(order, own),
    }


# --- Inventory ---

@router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.create_product(db, seller.id, payload)


@router.put("/products/{product_id}/sizes", response_model=ProductResponse)
async def replace_sizes(
    product_id: int,
    payload: VariantsReplace,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.replace_variants(db, seller.id, product_id, payload.variants)


@router.patch("/products/{product_id}/sizes/{size}", response_model=VariantResponse)
async def update_size(
    product_id: int,
    size: str,
    payload: VariantPatch,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.update_variant(db, seller.id, product_id, size, None, payload)


@router.patch("/products/{product_id}/sizes/{size}/{colour}", response_model=VariantResponse)
async def update_size_colour(
    product_id: int,
    size: str,
    colour: str,
    payload: VariantPatch,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.update_variant(db, seller.id, product_id, size, colour, payload)


@router.patch("/products/{product_id}/sizes/{size}/{colour}/colour", response_model=VariantResponse)
async def rename_colour(
    product_id: int,
    size: str,
    colour: str,
    payload: ColourRename,
    seller: AuthenticatedUser = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.rename_colour(db, seller.id, product_id, size, colour, payload.colour)
