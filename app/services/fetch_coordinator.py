# app/services/fetch_coordinator.py
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any

from app.core.cache import ReadCache
from app.core.errors import CatalogError, PartialFetchError
from app.core.filtering import NUMERIC_SORTS, filter_and_sort, shuffle_products
from app.repositories.product_repo import (
    Ordering,
    ProductBackend,
    ProductQuery,
    RowWindow,
)
from app.schemas.product import ProductFilter, SortMode

logger = logging.getLogger(__name__)

NEWEST_FIRST = (Ordering("created_at", ascending=False), Ordering("id"))
FEATURED_ORDER = (
    Ordering("featured_order"),
    Ordering("created_at", ascending=False),
    Ordering("id"),
)

# (offset, limit, with_count) -> window
WindowFetcher = Callable[[int, int, bool], Awaitable[RowWindow]]


@dataclass
class PageResult:
    rows: list[dict[str, Any]]
    page: int
    has_more: bool

    @property
    def next_page(self) -> int | None:
        return self.page + 1 if self.has_more else None


@dataclass
class FullFetchResult:
    rows: list[dict[str, Any]]
    # True when the safety ceiling stopped the loop before the end of the data
    truncated: bool
    requests: int


def build_page_query(filters: ProductFilter, offset: int, limit: int) -> ProductQuery:
    """
    Push every filter and the sort column down into a bounded query.

    `rekomendasi` has no backend ordering; it is shuffled after the fetch.
    An `id` tie-break keeps page boundaries stable between requests. Numeric
    sorts treat NULL as zero, so NULLs go first ascending and last descending.
    """
    mode = filters.sort_mode
    if mode in NUMERIC_SORTS:
        column, descending = NUMERIC_SORTS[mode]
        orderings = (
            Ordering(column, ascending=not descending, nulls_first=not descending),
            Ordering("id"),
        )
    elif mode is SortMode.REKOMENDASI:
        orderings = (Ordering("id"),)
    else:
        orderings = NEWEST_FIRST

    return ProductQuery(
        offset=offset,
        limit=limit,
        search_terms=tuple(filters.search_terms),
        category=filters.category,
        subcategory=filters.subcategory,
        price_min=filters.price_min,
        price_max=filters.price_max,
        dikirim_dari=filters.dikirim_dari,
        item=filters.item,
        orderings=orderings,
    )


async def collect_windows(
    fetch_window: WindowFetcher,
    window_size: int,
    max_rows: int,
    label: str = "products",
) -> FullFetchResult:
    """
    Read a whole result set through fixed-size offset windows.

    Stops when:
      - a window comes back shorter than requested (end of data), or
      - the count reported with the first window has been reached, or
      - `max_rows` rows were collected (truncated=True, warning logged).

    Windows are fetched one after another: each offset depends on the
    previous window being full. A failure after the first window raises
    PartialFetchError with the rows collected so far.
    """
    rows: list[dict[str, Any]] = []
    total: int | None = None
    requests = 0

    while True:
        remaining = max_rows - len(rows)
        if remaining <= 0:
            truncated = total is None or total > len(rows)
            if truncated:
                logger.warning(
                    "⚠️ %s fetch stopped at safety ceiling of %d rows; data may be incomplete",
                    label,
                    max_rows,
                )
            return FullFetchResult(rows=rows, truncated=truncated, requests=requests)

        limit = min(window_size, remaining)
        try:
            window = await fetch_window(len(rows), limit, requests == 0)
        except CatalogError as exc:
            if not rows:
                raise
            logger.error(
                "❌ %s fetch aborted at offset %d after %d windows: %s",
                label,
                len(rows),
                requests,
                exc.message,
            )
            raise PartialFetchError(rows, exc) from exc

        requests += 1
        rows.extend(window.rows)
        if window.total is not None:
            total = window.total
        logger.debug("%s window %d: %d rows (offset %d)", label, requests, len(window.rows), len(rows))

        if len(window.rows) < limit:
            break
        if total is not None and len(rows) >= total:
            break

    return FullFetchResult(rows=rows, truncated=False, requests=requests)


class FetchCoordinator:
    """
    Reads products from a backend that caps every query at `row_cap` rows.

    Two access patterns, kept separate:
      - fetch_page(): one small page at a time for the storefront
      - fetch_all() : the whole table through bounded windows for admin views

    Results are cached in `cache` per view / filter key; mutations
    invalidate them through the same cache.
    """

    def __init__(
        self,
        backend: ProductBackend,
        cache: ReadCache,
        page_size: int = 20,
        window_size: int = 1000,
        max_rows: int = 10_000,
        max_event_rows: int = 200_000,
        rng: random.Random | None = None,
    ):
        self.backend = backend
        self.cache = cache
        self.page_size = min(page_size, backend.row_cap)
        self.window_size = min(window_size, backend.row_cap)
        self.max_rows = max_rows
        self.max_event_rows = max_event_rows
        self.rng = rng or random.Random()

    # ----- Storefront pages -----

    async def fetch_page(self, filters: ProductFilter, page: int = 0) -> PageResult:
        """
        Fetch one storefront page.

        A page shorter than page_size is the last one (has_more=False),
        including an empty page. `rekomendasi` pages are shuffled one by one,
        so the order is random within a page only.
        """
        if page < 0:
            raise ValueError("page must be >= 0")

        if filters.sort_mode is SortMode.REKOMENDASI:
            return await self._load_page(filters, page)

        key = f"products:page:{filters.cache_key()}:{page}"
        return await self.cache.get_or_load(key, lambda: self._load_page(filters, page))

    async def _load_page(self, filters: ProductFilter, page: int) -> PageResult:
        query = build_page_query(filters, offset=page * self.page_size, limit=self.page_size)
        window = await self.backend.query_products(query)
        rows = window.rows
        if filters.sort_mode is SortMode.REKOMENDASI:
            rows = shuffle_products(rows, self.rng)
        return PageResult(rows=rows, page=page, has_more=len(window.rows) >= self.page_size)

    # ----- Full fetches -----

    async def fetch_all(self, filters: ProductFilter | None = None) -> FullFetchResult:
        """
        Whole product table (newest first), bounded by max_rows.

        With `filters`, the in-memory filter/sort engine runs over the full
        set; nothing is pushed down so every keystroke reuses the cache.
        """
        result = await self.cache.get_or_load(
            "products:all",
            lambda: collect_windows(
                self._product_windows(ProductQuery(orderings=NEWEST_FIRST)),
                self.window_size,
                self.max_rows,
            ),
        )
        if filters is None:
            return result
        return replace(result, rows=filter_and_sort(result.rows, filters, self.rng))

    async def fetch_featured(self) -> list[dict[str, Any]]:
        """Featured products by featured_order (lower first), then newest."""
        result = await self.cache.get_or_load(
            "featured",
            lambda: collect_windows(
                self._product_windows(ProductQuery(featured=True, orderings=FEATURED_ORDER)),
                self.window_size,
                self.max_rows,
                label="featured",
            ),
        )
        return result.rows

    async def fetch_non_featured(self) -> list[dict[str, Any]]:
        """Candidates for the 'add to featured' picker, newest first."""
        result = await self.cache.get_or_load(
            "non_featured",
            lambda: collect_windows(
                self._product_windows(ProductQuery(featured=False, orderings=NEWEST_FIRST)),
                self.window_size,
                self.max_rows,
                label="non-featured",
            ),
        )
        return result.rows

    async def fetch_latest(self, limit: int = 4) -> list[dict[str, Any]]:
        limit = max(1, min(limit, self.backend.row_cap))

        async def load() -> list[dict[str, Any]]:
            window = await self.backend.query_products(
                ProductQuery(limit=limit, orderings=NEWEST_FIRST)
            )
            return window.rows

        return await self.cache.get_or_load(f"latest:{limit}", load)

    async def fetch_click_events(self) -> FullFetchResult:
        """Product id of every logged click, read through windows. Not cached."""
        return await collect_windows(
            self.backend.query_click_events,
            self.window_size,
            self.max_event_rows,
            label="click events",
        )

    async def fetch_product(self, product_id: str) -> dict[str, Any] | None:
        return await self.backend.get_product(product_id)

    # ----- Lightweight column reads -----

    async def fetch_category_pairs(self) -> list[dict[str, Any]]:
        async def fetch(offset: int, limit: int, with_count: bool) -> RowWindow:
            return await self.backend.query_category_pairs(offset, limit, with_count=with_count)

        result = await self.cache.get_or_load(
            "categories:pairs",
            lambda: collect_windows(fetch, self.window_size, self.max_rows, label="categories"),
        )
        return result.rows

    async def fetch_column(
        self,
        column: str,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> list[dict[str, Any]]:
        async def fetch(offset: int, limit: int, with_count: bool) -> RowWindow:
            return await self.backend.query_column(
                column,
                offset,
                limit,
                category=category,
                subcategory=subcategory,
                with_count=with_count,
            )

        key = f"categories:column:{column}:{category or ''}:{subcategory or ''}"
        result = await self.cache.get_or_load(
            key,
            lambda: collect_windows(fetch, self.window_size, self.max_rows, label=column),
        )
        return result.rows

    def _product_windows(self, base: ProductQuery) -> WindowFetcher:
        async def fetch(offset: int, limit: int, with_count: bool) -> RowWindow:
            query = replace(base, offset=offset, limit=limit, with_count=with_count)
            return await self.backend.query_products(query)

        return fetch


class ProductPager:
    """
    Incremental storefront pager for one consumer (infinite scroll).

    reset() switches to a new filter; a page that was still in flight for the
    old filter is discarded when it arrives instead of being appended.
    """

    def __init__(self, coordinator: FetchCoordinator, filters: ProductFilter | None = None):
        self.coordinator = coordinator
        self.filters = filters or ProductFilter()
        self._generation = 0
        self._pages: dict[int, PageResult] = {}
        self._next_page = 0
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def items(self) -> list[dict[str, Any]]:
        return [row for page in sorted(self._pages) for row in self._pages[page].rows]

    def reset(self, filters: ProductFilter) -> None:
        self.filters = filters
        self._generation += 1
        self._pages = {}
        self._next_page = 0
        self._exhausted = False

    def cancel(self) -> None:
        """Ignore whatever is in flight; loaded pages stay."""
        self._generation += 1
        self._next_page = max(self._pages) + 1 if self._pages else 0

    async def next_page(self) -> PageResult | None:
        """
        Load the next page, or return None when there is nothing more to load
        or the response belongs to a superseded filter.
        """
        if self._exhausted:
            return None

        generation = self._generation
        filters = self.filters
        page_number = self._next_page
        self._next_page += 1

        try:
            page = await self.coordinator.fetch_page(filters, page_number)
        except Exception:
            if generation == self._generation:
                self._next_page = min(self._next_page, page_number)
            raise

        if generation != self._generation:
            logger.info("Discarding stale page %d for superseded filter", page_number)
            return None

        self._pages[page_number] = page
        if not page.has_more:
            self._exhausted = True
        return page
