from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field, field_validator

from .models import DEFAULT_COLOUR


class VariantIn(BaseModel):
    size: str = Field(min_length=1)
    colour: str | None = DEFAULT_COLOUR
    quantity: int = Field(default=0, ge=0)
    price: Decimal | None = Field(default=None, ge=0)
    market_price: Decimal | None = Field(default=None, ge=0, validation_alias=AliasChoices("market_price", "marketPrice"))
    actual_buy_price: Decimal | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("actual_buy_price", "actualBuyPrice")
    )
    cod_eligible: bool | None = Field(default=None, validation_alias=AliasChoices("cod_eligible", "codEligible"))

    @field_validator("size", "colour", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            value = value.strip()
        return value or None

    @field_validator("colour", mode="after")
    @classmethod
    def default_colour(cls, value):
        return value or DEFAULT_COLOUR


class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    price: Decimal = Field(ge=0)
    market_price: Decimal | None = Field(default=None, ge=0, validation_alias=AliasChoices("market_price", "marketPrice"))
    cod_eligible: bool = Field(default=False, validation_alias=AliasChoices("cod_eligible", "codEligible"))
    variants: list[VariantIn] = Field(default_factory=list, validation_alias=AliasChoices("variants", "sizes"))


class VariantsReplace(BaseModel):
    variants: list[VariantIn] = Field(min_length=1, validation_alias=AliasChoices("variants", "sizes"))


class VariantPatch(BaseModel):
    quantity: int | None = Field(default=None, ge=0)
    price: Decimal | None = Field(default=None, ge=0)
    market_price: Decimal | None = Field(default=None, ge=0, validation_alias=AliasChoices("market_price", "marketPrice"))
    actual_buy_price: Decimal | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("actual_buy_price", "actualBuyPrice")
    )
    cod_eligible: bool | None = Field(default=None, validation_alias=AliasChoices("cod_eligible", "codEligible"))


class ColourRename(BaseModel):
    colour: str = Field(min_length=1)


class CheckSizeRequest(BaseModel):
    size: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    colour: str | None = None


class VariantResponse(BaseModel):
    id: int
    position: int
    size: str
    colour: str
    quantity: int
    price: float | None = None
    market_price: float | None = None
    actual_buy_price: float | None = None
    cod_eligible: bool | None = None

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: int
    seller_id: int
    name: str
    description: str | None = None
    price: float
    market_price: float | None = None
    cod_eligible: bool
    stock_quantity: int
    is_active: bool
    variants: list[VariantResponse] = []

    class Config:
        from_attributes = True
