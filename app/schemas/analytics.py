# app/schemas/analytics.py
from enum import Enum

from pydantic import ConfigDict
from sqlmodel import SQLModel


class Period(str, Enum):
    DAY = "1d"
    WEEK = "7d"
    MONTH = "30d"
    ALL = "all"


class ProductClickCount(SQLModel):
    """
    Clicks per product for a period.
    """
    model_config = ConfigDict(extra="ignore")

    product_id: str
    product_name: str | None = None
    click_count: int


class AnalyticsSummary(SQLModel):
    """
    Full payload for the admin analytics tab.
    """
    model_config = ConfigDict(extra="forbid")

    period: Period
    total_products: int
    total_clicks: int
    top_products: list[ProductClickCount]


class ClickDrift(SQLModel):
    """
    A product whose denormalized counter disagrees with its event log.
    """
    model_config = ConfigDict(extra="forbid")

    product_id: str
    product_name: str | None
    counter: int
    events: int


class ReconcileResult(SQLModel):
    """
    Outcome of a reconcile run.

    `skipped` counts drifted products whose counter moved (or caught up)
    between the scan and the write; they are left as they are.
    """
    model_config = ConfigDict(extra="forbid")

    checked: int
    drifted: int
    repaired: int
    failed: int
    skipped: int = 0
