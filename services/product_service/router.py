from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db

from .ledger import VariantStockLedger
from .schemas import CheckSizeRequest

router = APIRouter(tags=["Products"])
public_router = APIRouter()  # For any public endpoints (e.g. health check)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "product", "status": "running"}


@router.get("/{product_id}/sizes")
async def list_sizes(product_id: int, db: AsyncSession = Depends(get_db)):
    return {"sizes": await VariantStockLedger.list_sizes(db, product_id)}


@router.post("/{product_id}/check-size")
async def check_size(product_id: int, payload: CheckSizeRequest, db: AsyncSession = Depends(get_db)):
    return await VariantStockLedger.check_size(
        db, product_id, payload.size.strip(), payload.quantity, payload.colour
    )
