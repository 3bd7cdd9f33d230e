# app/schemas/product.py
import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    HttpUrl,
    ValidationInfo,
    field_validator,
    model_validator,
)
from sqlmodel import SQLModel, Field


# Optional text columns: "" in a payload means "clear this column"
OPTIONAL_TEXT_FIELDS = (
    "product_id",
    "subcategory",
    "item",
    "video_url",
    "dikirim_dari",
    "toko",
)

# Defaults used when a CSV cell is blank
BLANK_DEFAULTS = {"commission": 0, "sales": 0, "is_featured": False, "stock_available": True}

# Columns a patch may never set to null
REQUIRED_FIELDS = (
    "product_name",
    "category",
    "price",
    "affiliate_url",
    "image_url",
)


class SortMode(str, Enum):
    POPULAR = "popular"
    TERLARIS = "terlaris"  # bestselling
    HARGA_TERMURAH = "harga_termurah"  # price ascending
    HARGA_TERTINGGI = "harga_tertinggi"  # price descending
    REKOMENDASI = "rekomendasi"  # random shuffle

    @classmethod
    def parse(cls, value: str | None) -> "SortMode | None":
        """Lenient lookup: unknown or empty values mean 'newest first'."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ProductFilter(BaseModel):
    """
    Immutable filter for product listings.

    - subcategory is only meaningful with its category
    - price bounds are inclusive and non-negative
    - sort_by is kept as given; unknown values fall back to newest first
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    search: str = ""
    category: str | None = None
    subcategory: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    dikirim_dari: str | None = None
    item: str | None = None
    sort_by: str | None = None

    @field_validator("category", "subcategory", "dikirim_dari", "item", "sort_by")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_consistency(self) -> "ProductFilter":
        for bound in (self.price_min, self.price_max):
            if bound is not None and bound < 0:
                raise ValueError("price bounds must be >= 0")
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            raise ValueError("price_min must be <= price_max")
        if self.subcategory is not None and self.category is None:
            raise ValueError("subcategory requires category")
        return self

    @property
    def sort_mode(self) -> SortMode | None:
        return SortMode.parse(self.sort_by)

    @property
    def search_terms(self) -> list[str]:
        return self.search.lower().split()

    def cache_key(self) -> str:
        """Stable key for caching results of this filter."""
        params = self.model_dump()
        params["sort_by"] = self.sort_mode.value if self.sort_mode else None
        params["search"] = " ".join(self.search_terms)
        raw = json.dumps(params, sort_keys=True)
        # noinspection PyTypeChecker
        return hashlib.md5(raw.encode()).hexdigest()


class ProductRead(SQLModel):
    """
    Product representation for clients.

    Numeric columns may arrive as text from PostgREST; pydantic coerces them.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    product_id: str | None = None
    product_name: str
    category: str
    subcategory: str | None = None
    item: str | None = None
    price: float
    original_price: float | None = None
    commission: float | None = None
    sales: int | None = None
    rating: float | None = None
    clicks: int | None = None
    affiliate_url: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    dikirim_dari: str | None = None
    toko: str | None = None
    stock_available: bool | None = None
    is_featured: bool | None = None
    featured_order: int | None = None
    created_at: datetime | None = None

    # derived
    discount_percent: int = 0
    in_stock: bool = False

    @model_validator(mode="after")
    def derive_fields(self) -> "ProductRead":
        self.discount_percent = calculate_discount(self.price, self.original_price)
        # unknown stock is shown as unavailable
        self.in_stock = self.stock_available is True
        return self


def calculate_discount(price: float, original_price: float | None) -> int:
    if not original_price or original_price <= 0 or price >= original_price:
        return 0
    return round((original_price - price) / original_price * 100)


class ProductCreate(SQLModel):
    """
    Payload for creating a product.

    Required: product_name, category, price, affiliate_url, image_url.
    """

    model_config = ConfigDict(extra="forbid")

    product_id: str | None = None
    product_name: str = Field(min_length=3, max_length=255)
    category: str = Field(min_length=2, max_length=100)
    subcategory: str | None = None
    item: str | None = None
    price: float = Field(ge=0)
    original_price: float | None = Field(default=None, ge=0)
    commission: float = Field(default=0, ge=0)
    sales: int = Field(default=0, ge=0)
    rating: float | None = Field(default=None, ge=0, le=5)
    affiliate_url: HttpUrl
    image_url: HttpUrl
    video_url: str | None = None
    dikirim_dari: str | None = None
    toko: str | None = None
    is_featured: bool = False
    featured_order: int | None = None
    stock_available: bool = True

    @field_validator("product_name", "category", mode="before")
    @classmethod
    def strip_required(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(*OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator(
        "original_price", "rating", "featured_order", "commission", "sales",
        "is_featured", "stock_available",
        mode="before",
    )
    @classmethod
    def blank_cell(cls, v: Any, info: ValidationInfo) -> Any:
        # CSV cells come through as "" when left empty, or None on short rows
        if v is None or (isinstance(v, str) and not v.strip()):
            return BLANK_DEFAULTS.get(info.field_name)
        return v

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ProductUpdate(SQLModel):
    """
    Partial update payload for products.

    Only fields present in the payload are written:
      - absent field         -> untouched
      - null / "" (optional) -> column cleared
      - null (required)      -> rejected
    """

    model_config = ConfigDict(extra="forbid")

    product_id: str | None = None
    product_name: str | None = Field(default=None, min_length=3, max_length=255)
    category: str | None = Field(default=None, min_length=2, max_length=100)
    subcategory: str | None = None
    item: str | None = None
    price: float | None = Field(default=None, ge=0)
    original_price: float | None = Field(default=None, ge=0)
    commission: float | None = Field(default=None, ge=0)
    sales: int | None = Field(default=None, ge=0)
    rating: float | None = Field(default=None, ge=0, le=5)
    affiliate_url: HttpUrl | None = None
    image_url: HttpUrl | None = None
    video_url: str | None = None
    dikirim_dari: str | None = None
    toko: str | None = None
    is_featured: bool | None = None
    featured_order: int | None = None
    stock_available: bool | None = None

    @field_validator(*REQUIRED_FIELDS, mode="before")
    @classmethod
    def not_clearable(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("field cannot be cleared")
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(*OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_patch(self) -> dict[str, Any]:
        """Only the fields the caller actually sent."""
        return self.model_dump(mode="json", exclude_unset=True)


class ProductPage(SQLModel):
    """One page of storefront results."""

    items: list[ProductRead]
    page: int
    has_more: bool
    next_cursor: int | None = None


class ProductList(SQLModel):
    """Admin listing built from the full in-memory product set."""

    items: list[ProductRead]
    total: int
    truncated: bool = False


class BulkAction(str, Enum):
    UPDATE = "update"
    DELETE = "delete"
    GENERATE_RATING = "generate_rating"


class BulkRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    action: BulkAction
    ids: list[str] = Field(min_length=1)
    patch: ProductUpdate | None = None

    @model_validator(mode="after")
    def patch_for_update(self) -> "BulkRequest":
        if self.action == BulkAction.UPDATE and not (self.patch and self.patch.to_patch()):
            raise ValueError("patch with at least one field is required for update")
        return self


class BulkItemError(SQLModel):
    key: str
    message: str


class BulkResult(SQLModel):
    """Per-batch summary; failures never roll back successes."""

    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[BulkItemError] = []


class InvalidRow(SQLModel):
    row: int
    errors: dict[str, str]


class ImportResult(BulkResult):
    invalid: list[InvalidRow] = []


class FeaturedOrder(SQLModel):
    model_config = ConfigDict(extra="forbid")

    ids: list[str]


class ClickAccepted(SQLModel):
    event_id: str
    product_id: str


class CategoryResolution(SQLModel):
    category: str | None
    subcategory: str | None
    known: bool


class FacetOptions(SQLModel):
    shipping_origins: list[str]
    items: list[str]
