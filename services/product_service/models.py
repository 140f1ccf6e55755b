from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from shared.config.database import Base, utcnow

DEFAULT_COLOUR = "Default"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)  # base price, used when a variant has none
    market_price = Column(Numeric(10, 2), nullable=True)
    cod_eligible = Column(Boolean, nullable=False, default=False)
    stock_quantity = Column(Integer, nullable=False, default=0)  # display only, sum of variants
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        order_by="ProductVariant.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def find_variant(self, size: str, colour: str | None = None):
        """Variant for (size, colour). Without a colour the "Default" row wins, else the first of that size."""
        same_size = [v for v in self.variants if v.size == size]
        if colour is not None:
            return next((v for v in same_size if v.colour == colour), None)
        for variant in same_size:
            if variant.colour == DEFAULT_COLOUR:
                return variant
        return same_size[0] if same_size else None

    def default_variant(self, colour: str | None = None):
        """First in-stock variant by position, preferring the requested colour."""
        in_stock = [v for v in self.variants if v.quantity > 0]
        if colour is not None:
            for variant in in_stock:
                if variant.colour == colour:
                    return variant
        return in_stock[0] if in_stock else None


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        UniqueConstraint("product_id", "size", "colour", name="uq_variant_size_colour"),
        CheckConstraint("quantity >= 0", name="ck_variant_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    size = Column(String, nullable=False)
    colour = Column(String, nullable=False, default=DEFAULT_COLOUR)
    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=True)
    market_price = Column(Numeric(10, 2), nullable=True)
    actual_buy_price = Column(Numeric(10, 2), nullable=True)
    cod_eligible = Column(Boolean, nullable=True)  # None -> product flag

    product = relationship("Product", back_populates="variants")

    def unit_price(self, product: Product):
        return self.price if self.price is not None else product.price

    def is_cod_eligible(self, product: Product) -> bool:
        return self.cod_eligible if self.cod_eligible is not None else bool(product.cod_eligible)
