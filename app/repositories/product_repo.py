# app/repositories/product_repo.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from postgrest.types import CountMethod
from supabase import AsyncClient

from app.core.errors import BackendRejected, BackendUnavailable

logger = logging.getLogger(__name__)

PRODUCTS_TABLE = "products"
ANALYTICS_TABLE = "product_analytics"
INCREMENT_CLICK_RPC = "increment_product_click"


@dataclass(frozen=True)
class Ordering:
    column: str
    ascending: bool = True
    # None keeps the Postgres default (NULLs last ascending, first descending)
    nulls_first: bool | None = None


def like_pattern(term: str) -> str:
    """Substring ILIKE pattern with LIKE wildcards in `term` matched literally."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class ProductQuery:
    """
    One bounded window over `products`.

    Every filter here is pushed down to PostgREST; `limit` must stay within
    the backend's row cap.
    """

    offset: int = 0
    limit: int = 20
    search_terms: tuple[str, ...] = ()
    category: str | None = None
    subcategory: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    dikirim_dari: str | None = None
    item: str | None = None
    featured: bool | None = None
    orderings: tuple[Ordering, ...] = ()
    with_count: bool = False


@dataclass
class RowWindow:
    rows: list[dict[str, Any]] = field(default_factory=list)
    # total matching rows, only when the query asked for a count
    total: int | None = None


class ProductBackend(Protocol):
    """
    Narrow interface the catalog needs from the hosted database.

    Implemented by SupabaseProductRepository; tests use an in-memory fake.
    """

    row_cap: int

    async def query_products(self, query: ProductQuery) -> RowWindow: ...

    async def query_category_pairs(
        self, offset: int, limit: int, with_count: bool = False
    ) -> RowWindow: ...

    async def query_column(
        self,
        column: str,
        offset: int,
        limit: int,
        category: str | None = None,
        subcategory: str | None = None,
        with_count: bool = False,
    ) -> RowWindow: ...

    async def get_product(self, product_id: str) -> dict[str, Any] | None: ...

    async def insert_product(self, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def update_product(
        self, product_id: str, fields: dict[str, Any]
    ) -> dict[str, Any] | None: ...

    async def delete_product(self, product_id: str) -> bool: ...

    async def increment_click_counter(self, product_id: str) -> None: ...

    async def append_click_event(self, product_id: str, event_id: str) -> None: ...

    async def query_click_events(
        self, offset: int, limit: int, with_count: bool = False
    ) -> RowWindow: ...

    async def count_click_events(self, product_id: str) -> int: ...

    async def set_click_counter(
        self, product_id: str, clicks: int, expected: int | None
    ) -> bool: ...

    async def call_rpc(self, name: str, params: dict[str, Any]) -> Any: ...


class SupabaseProductRepository:
    """
    Data access layer for products and click events over Supabase/PostgREST.

    - Pure backend operations, no business logic.
    - Every request is bounded by `timeout` seconds.
    - PostgREST errors -> BackendRejected, network/timeouts -> BackendUnavailable.
    """

    def __init__(
        self,
        client: AsyncClient,
        admin_client: AsyncClient | None = None,
        row_cap: int = 1000,
        timeout: float = 10.0,
    ):
        self.client = client
        self.admin_client = admin_client or client
        self.row_cap = row_cap
        self.timeout = timeout

    # ----- Helpers -----

    async def _execute(self, request, action: str):
        try:
            return await asyncio.wait_for(request.execute(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise BackendUnavailable(f"{action} timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise BackendUnavailable(f"{action} failed: {exc}") from exc
        except APIError as exc:
            raise BackendRejected(f"{action} rejected: {exc.message}", code=exc.code) from exc

    def _check_limit(self, limit: int) -> None:
        if limit < 1 or limit > self.row_cap:
            raise ValueError(f"limit must be between 1 and {self.row_cap}, got {limit}")

    def _select(self, columns: str, with_count: bool):
        table = self.client.table(PRODUCTS_TABLE)
        if with_count:
            return table.select(columns, count=CountMethod.exact)
        return table.select(columns)

    # ----- Reads -----

    async def query_products(self, query: ProductQuery) -> RowWindow:
        self._check_limit(query.limit)
        request = self._select("*", query.with_count)

        for term in query.search_terms:
            request = request.ilike("product_name", like_pattern(term))
        if query.category is not None:
            request = request.eq("category", query.category)
        if query.subcategory is not None:
            request = request.eq("subcategory", query.subcategory)
        if query.price_min is not None:
            request = request.gte("price", query.price_min)
        if query.price_max is not None:
            request = request.lte("price", query.price_max)
        if query.dikirim_dari is not None:
            request = request.eq("dikirim_dari", query.dikirim_dari)
        if query.item is not None:
            request = request.eq("item", query.item)
        if query.featured is True:
            request = request.eq("is_featured", True)
        elif query.featured is False:
            request = request.or_("is_featured.is.null,is_featured.eq.false")

        for ordering in query.orderings:
            if ordering.nulls_first is None:
                request = request.order(ordering.column, desc=not ordering.ascending)
            else:
                request = request.order(
                    ordering.column,
                    desc=not ordering.ascending,
                    nullsfirst=ordering.nulls_first,
                )

        request = request.range(query.offset, query.offset + query.limit - 1)
        response = await self._execute(request, "query products")
        return RowWindow(rows=response.data or [], total=response.count)

    async def query_category_pairs(
        self, offset: int, limit: int, with_count: bool = False
    ) -> RowWindow:
        self._check_limit(limit)
        request = (
            self._select("category, subcategory", with_count)
            .order("category")
            .order("id")
            .range(offset, offset + limit - 1)
        )
        response = await self._execute(request, "query categories")
        return RowWindow(rows=response.data or [], total=response.count)

    async def query_column(
        self,
        column: str,
        offset: int,
        limit: int,
        category: str | None = None,
        subcategory: str | None = None,
        with_count: bool = False,
    ) -> RowWindow:
        self._check_limit(limit)
        request = self._select(column, with_count).not_.is_(column, "null")
        if category is not None:
            request = request.eq("category", category)
        if subcategory is not None:
            request = request.eq("subcategory", subcategory)
        request = request.order(column).order("id").range(offset, offset + limit - 1)
        response = await self._execute(request, f"query {column}")
        return RowWindow(rows=response.data or [], total=response.count)

    async def get_product(self, product_id: str) -> dict[str, Any] | None:
        request = self._select("*", False).eq("id", product_id).limit(1)
        response = await self._execute(request, "get product")
        return response.data[0] if response.data else None

    # ----- Mutations -----

    async def insert_product(self, fields: dict[str, Any]) -> dict[str, Any]:
        request = self.admin_client.table(PRODUCTS_TABLE).insert(fields)
        response = await self._execute(request, "insert product")
        if not response.data:
            raise BackendRejected("insert product returned no row")
        return response.data[0]

    async def update_product(
        self, product_id: str, fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        request = self.admin_client.table(PRODUCTS_TABLE).update(fields).eq("id", product_id)
        response = await self._execute(request, "update product")
        return response.data[0] if response.data else None

    async def delete_product(self, product_id: str) -> bool:
        request = self.admin_client.table(PRODUCTS_TABLE).delete().eq("id", product_id)
        response = await self._execute(request, "delete product")
        return bool(response.data)

    # ----- Click tracking -----

    async def increment_click_counter(self, product_id: str) -> None:
        request = self.client.rpc(INCREMENT_CLICK_RPC, {"product_id_to_inc": product_id})
        await self._execute(request, "increment click counter")

    async def append_click_event(self, product_id: str, event_id: str) -> None:
        request = self.client.table(ANALYTICS_TABLE).insert(
            {"id": event_id, "product_id": product_id, "event_type": "click"}
        )
        await self._execute(request, "append click event")

    async def query_click_events(
        self, offset: int, limit: int, with_count: bool = False
    ) -> RowWindow:
        """One window of click events (product_id only), ordered by event id."""
        self._check_limit(limit)
        table = self.admin_client.table(ANALYTICS_TABLE)
        request = (
            table.select("product_id", count=CountMethod.exact)
            if with_count
            else table.select("product_id")
        )
        request = request.eq("event_type", "click").order("id").range(offset, offset + limit - 1)
        response = await self._execute(request, "query click events")
        return RowWindow(rows=response.data or [], total=response.count)

    async def count_click_events(self, product_id: str) -> int:
        request = (
            self.admin_client.table(ANALYTICS_TABLE)
            .select("id", count=CountMethod.exact)
            .eq("product_id", product_id)
            .eq("event_type", "click")
            .limit(1)
        )
        response = await self._execute(request, "count click events")
        return int(response.count or 0)

    async def set_click_counter(
        self, product_id: str, clicks: int, expected: int | None
    ) -> bool:
        """
        Compare-and-set the click counter.

        Writes only while the stored counter still equals `expected` (NULL
        when None); returns False when a concurrent click moved it.
        """
        request = (
            self.admin_client.table(PRODUCTS_TABLE)
            .update({"clicks": clicks})
            .eq("id", product_id)
        )
        if expected is None:
            request = request.is_("clicks", "null")
        else:
            request = request.eq("clicks", expected)
        response = await self._execute(request, "set click counter")
        return bool(response.data)

    # ----- Analytics -----

    async def call_rpc(self, name: str, params: dict[str, Any]) -> Any:
        request = self.admin_client.rpc(name, params)
        response = await self._execute(request, f"rpc {name}")
        return response.data
