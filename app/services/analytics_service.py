# app/services/analytics_service.py
import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.cache import ReadCache
from app.core.errors import IncompleteScanError
from app.core.filtering import to_number
from app.repositories.analytics_repo import AnalyticsRepository
from app.repositories.product_repo import ProductBackend
from app.schemas.analytics import (
    AnalyticsSummary,
    ClickDrift,
    Period,
    ProductClickCount,
    ReconcileResult,
)
from app.services.fetch_coordinator import FetchCoordinator

logger = logging.getLogger(__name__)

PERIOD_DAYS: dict[Period, int] = {
    Period.DAY: 1,
    Period.WEEK: 7,
    Period.MONTH: 30,
}


def period_start(period: Period, now: datetime | None = None) -> datetime | None:
    """Start of the window for `period`; None means all time."""
    days = PERIOD_DAYS.get(period)
    if days is None:
        return None
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


class AnalyticsService:
    """
    Orchestrates click analytics for the admin dashboard.

    Responsibilities:
      - totals and top clicked products for a period
      - spotting products whose click counter drifted from the event log
      - rewriting drifted counters from the event log
    """

    def __init__(
        self,
        repo: AnalyticsRepository,
        backend: ProductBackend,
        coordinator: FetchCoordinator,
        cache: ReadCache,
    ):
        self.repo = repo
        self.backend = backend
        self.coordinator = coordinator
        self.cache = cache

    async def get_summary(self, period: Period = Period.ALL) -> AnalyticsSummary:
        start = period_start(period)
        total_products, total_clicks, counts = await asyncio.gather(
            self.repo.total_products(start),
            self.repo.total_clicks(start),
            self.repo.click_counts(start),
        )
        return AnalyticsSummary(
            period=period,
            total_products=total_products,
            total_clicks=total_clicks,
            top_products=[ProductClickCount.model_validate(row) for row in counts],
        )

    async def find_click_drift(self) -> list[ClickDrift]:
        """
        Compare every product's `clicks` with its all-time event count.

        Raises IncompleteScanError when the product or event read was cut
        short by the safety ceiling.
        """
        _, drift, _ = await self._scan_drift()
        return drift

    async def _scan_drift(self) -> tuple[int, list[ClickDrift], dict[str, Any]]:
        # counters change on every click, so skip the cached table
        self.cache.invalidate("products")
        products, events = await asyncio.gather(
            self.coordinator.fetch_all(),
            self.coordinator.fetch_click_events(),
        )
        if products.truncated:
            raise IncompleteScanError("products", len(products.rows))
        if events.truncated:
            raise IncompleteScanError("click events", len(events.rows))

        logged = Counter(str(row["product_id"]) for row in events.rows)
        stored: dict[str, Any] = {}
        drift: list[ClickDrift] = []
        for product in products.rows:
            product_id = str(product["id"])
            stored[product_id] = product.get("clicks")
            counter = int(to_number(stored[product_id]))
            if counter != logged[product_id]:
                drift.append(
                    ClickDrift(
                        product_id=product_id,
                        product_name=product.get("product_name"),
                        counter=counter,
                        events=logged[product_id],
                    )
                )
        return len(products.rows), drift, stored

    async def reconcile_clicks(self) -> ReconcileResult:
        """
        Set drifted counters to the number of logged click events.

        The event log is append-only and keyed by event id, so it is the
        source of truth. Each product is re-counted right before its write,
        and the write only lands if the counter still holds the scanned
        value; a click that arrived in between is never overwritten.
        """
        checked, drift, stored = await self._scan_drift()
        outcomes = await asyncio.gather(
            *(self._repair(d, stored[d.product_id]) for d in drift),
            return_exceptions=True,
        )
        failed = sum(1 for o in outcomes if isinstance(o, BaseException))
        skipped = sum(1 for o in outcomes if o is False)
        repaired = len(drift) - failed - skipped
        if drift:
            logger.info(
                "Reconciled click counters: %d repaired, %d skipped, %d failed",
                repaired,
                skipped,
                failed,
            )
            self.cache.invalidate("products", "featured", "non_featured", "latest")

        return ReconcileResult(
            checked=checked,
            drifted=len(drift),
            repaired=repaired,
            failed=failed,
            skipped=skipped,
        )

    async def _repair(self, drift: ClickDrift, stored: Any) -> bool:
        events = await self.backend.count_click_events(drift.product_id)
        if events == drift.counter:
            return False
        return await self.backend.set_click_counter(drift.product_id, events, expected=stored)
