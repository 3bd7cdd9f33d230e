# app/models/product.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Product(SQLModel, table=True):
    """
    Affiliate product listed in the catalog.

    Rows are read and written through PostgREST; this table definition is
    only used to bootstrap the schema when DATABASE_URL is configured.
    """

    __tablename__ = "products"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    product_id: str | None = Field(
        default=None,
        description="Marketplace product code",
    )

    product_name: str = Field(max_length=255, index=True)
    category: str = Field(max_length=100, index=True)
    subcategory: str | None = Field(default=None, max_length=100, index=True)
    item: str | None = Field(default=None, max_length=100)

    price: float = Field(ge=0, index=True)
    original_price: float | None = Field(default=None, ge=0)
    commission: float = Field(default=0, ge=0)
    sales: int = Field(default=0, ge=0)
    rating: float | None = Field(default=None, ge=0, le=5)

    clicks: int = Field(
        default=0,
        ge=0,
        description="Denormalized click counter, bumped by increment_product_click",
    )

    affiliate_url: str = Field(description="Marketplace link the click-through lands on")
    image_url: str
    video_url: str | None = None

    dikirim_dari: str | None = Field(default=None, description="Shipping origin")
    toko: str | None = Field(default=None, description="Store name")

    stock_available: bool = True
    is_featured: bool = Field(default=False, index=True)
    featured_order: int | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Creation timestamp (UTC)",
    )


class ProductAnalytics(SQLModel, table=True):
    """
    Append-only click event log.

    `id` is the event id generated per click, so a retried write cannot
    count the same click twice.
    """

    __tablename__ = "product_analytics"

    id: uuid.UUID = Field(primary_key=True)

    product_id: uuid.UUID = Field(
        foreign_key="products.id",
        index=True,
        ondelete="CASCADE",
    )

    event_type: str = Field(default="click", max_length=32)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
