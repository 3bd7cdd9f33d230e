# app/repositories/analytics_repo.py
from datetime import datetime
from typing import Any

from app.repositories.product_repo import ProductBackend


class AnalyticsRepository:
    """
    Read-only click analytics, served by Postgres functions in Supabase.

    Each RPC takes `start_date` (ISO timestamp, or null for all time).
    """

    def __init__(self, backend: ProductBackend):
        self.backend = backend

    @staticmethod
    def _params(start: datetime | None) -> dict[str, Any]:
        return {"start_date": start.isoformat() if start else None}

    async def total_products(self, start: datetime | None) -> int:
        value = await self.backend.call_rpc("get_total_products_by_period", self._params(start))
        return int(value or 0)

    async def total_clicks(self, start: datetime | None) -> int:
        value = await self.backend.call_rpc("get_total_clicks_by_period", self._params(start))
        return int(value or 0)

    async def click_counts(self, start: datetime | None) -> list[dict[str, Any]]:
        """
        Rows of (product_id, product_name, click_count), most clicked first.

        The result is capped at the backend row limit, so it is a top list
        for display and not a complete per-product count.
        """
        rows = await self.backend.call_rpc(
            "get_product_click_counts_by_period", self._params(start)
        )
        return list(rows or [])
