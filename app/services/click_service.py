# app/services/click_service.py
import asyncio
import logging
import uuid

from app.core.errors import ClickTrackingError
from app.repositories.product_repo import ProductBackend

logger = logging.getLogger(__name__)


class ClickService:
    """
    Records product clicks.

    A click is two independent writes: an event row in product_analytics
    (keyed by a generated event id) and an increment of products.clicks.
    They are not transactional; the event id lets a later reconciliation
    find counters that drifted.
    """

    def __init__(self, backend: ProductBackend):
        self.backend = backend

    @staticmethod
    def new_event_id() -> str:
        return str(uuid.uuid4())

    async def record_click(self, product_id: str, event_id: str | None = None) -> str:
        """
        Attempt both writes and return the event id.

        Raises ClickTrackingError naming the writes that failed; the other
        write is still attempted.
        """
        event_id = event_id or self.new_event_id()
        outcomes = await asyncio.gather(
            self.backend.append_click_event(product_id, event_id),
            self.backend.increment_click_counter(product_id),
            return_exceptions=True,
        )
        failures = {
            name: outcome
            for name, outcome in zip(("event_log", "counter"), outcomes)
            if isinstance(outcome, BaseException)
        }
        if failures:
            for name, exc in failures.items():
                logger.error("❌ Click %s on %s: %s write failed: %s", event_id, product_id, name, exc)
            if len(failures) == 1:
                logger.warning(
                    "Click counter for %s may have drifted from its event log (event %s)",
                    product_id,
                    event_id,
                )
            raise ClickTrackingError(event_id, failures)
        return event_id

    async def track_in_background(self, product_id: str, event_id: str) -> None:
        """
        Fire-and-forget wrapper for background tasks.

        Failures are already logged by record_click; nothing waits on them.
        """
        try:
            await self.record_click(product_id, event_id)
        except ClickTrackingError:
            pass
