import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound, ValidationError
from shared.money import to_money

from .models import Product, ProductVariant
from .repository import ProductRepository
from .schemas import ProductCreate, VariantIn, VariantPatch

logger = structlog.get_logger(__name__)


def _build_variants(variants: list[VariantIn]) -> list[ProductVariant]:
    seen = set()
    rows = []
    for position, variant in enumerate(variants):
        key = (variant.size, variant.colour)
        if key in seen:
            raise ValidationError(
                f"Duplicate size/colour combination: {variant.size}/{variant.colour}",
                size=variant.size,
                colour=variant.colour,
            )
        seen.add(key)
        rows.append(
            ProductVariant(
                position=position,
                size=variant.size,
                colour=variant.colour,
                quantity=variant.quantity,
                price=to_money(variant.price) if variant.price is not None else None,
                market_price=to_money(variant.market_price) if variant.market_price is not None else None,
                actual_buy_price=to_money(variant.actual_buy_price) if variant.actual_buy_price is not None else None,
                cod_eligible=variant.cod_eligible,
            )
        )
    return rows


class ProductService:
    """Seller-side inventory management."""

    @staticmethod
    async def _owned_product(db: AsyncSession, seller_id: int, product_id: int) -> Product:
        product = await ProductRepository.get_seller_product(db, seller_id, product_id)
        if not product:
            raise NotFound("Product not found or access denied", product_id=product_id)
        return product

    @staticmethod
    async def _owned_variant(db: AsyncSession, seller_id: int, product_id: int, size: str, colour: str | None):
        product = await ProductService._owned_product(db, seller_id, product_id)
        variant = product.find_variant(size, colour)
        if variant is None:
            raise NotFound(f'Size "{size}" not found for this product', product_id=product_id, size=size, colour=colour)
        return product, variant

    @staticmethod
    async def create_product(db: AsyncSession, seller_id: int, data: ProductCreate) -> Product:
        try:
            variants = _build_variants(data.variants)
            product = Product(
                seller_id=seller_id,
                name=data.name.strip(),
                description=data.description,
                price=to_money(data.price),
                market_price=to_money(data.market_price) if data.market_price is not None else None,
                cod_eligible=data.cod_eligible,
                stock_quantity=sum(v.quantity for v in variants),
                is_active=True,
                variants=variants,
            )
            await ProductRepository.create_product(db, product)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("product_created", product_id=product.id, seller_id=seller_id, variants=len(variants))
        return product

    @staticmethod
    async def replace_variants(db: AsyncSession, seller_id: int, product_id: int, variants: list[VariantIn]) -> Product:
        try:
            product = await ProductService._owned_product(db, seller_id, product_id)
            rows = _build_variants(variants)
            product.variants.clear()
            # old rows must be gone before the (product, size, colour) keys are reused
            await db.flush()
            product.variants.extend(rows)
            await db.flush()
            await ProductRepository.recompute_stock_quantity(db, product_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("variants_replaced", product_id=product_id, seller_id=seller_id, variants=len(rows))
        return product

    @staticmethod
    async def update_variant(
        db: AsyncSession, seller_id: int, product_id: int, size: str, colour: str | None, patch: VariantPatch
    ) -> ProductVariant:
        try:
            product, variant = await ProductService._owned_variant(db, seller_id, product_id, size, colour)
            values = {}
            if patch.quantity is not None:
                values["quantity"] = patch.quantity
            for field in ("price", "market_price", "actual_buy_price"):
                value = getattr(patch, field)
                if value is not None:
                    values[field] = to_money(value)
            if patch.cod_eligible is not None:
                values["cod_eligible"] = patch.cod_eligible
            if not values:
                raise ValidationError("Nothing to update")

            await ProductRepository.update_variant_fields(db, variant.id, **values)
            await ProductRepository.recompute_stock_quantity(db, product_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("variant_updated", product_id=product_id, size=variant.size, colour=variant.colour, fields=sorted(values))
        return variant

    @staticmethod
    async def rename_colour(
        db: AsyncSession, seller_id: int, product_id: int, size: str, colour: str, new_colour: str
    ) -> ProductVariant:
        new_colour = new_colour.strip()
        try:
            product, variant = await ProductService._owned_variant(db, seller_id, product_id, size, colour)
            if new_colour != variant.colour and product.find_variant(size, new_colour) is not None:
                raise ValidationError(
                    f"Size {size} already has a {new_colour} variant",
                    size=size,
                    colour=new_colour,
                )
            await ProductRepository.update_variant_fields(db, variant.id, colour=new_colour)
            await ProductRepository.recompute_stock_quantity(db, product_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return variant
