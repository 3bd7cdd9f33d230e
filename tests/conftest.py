"""Shared fixtures: in-memory catalog backend and an API client wired to it."""

import os
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.auth import require_admin  # noqa: E402
from app.core.cache import ReadCache  # noqa: E402
from app.core.errors import BackendRejected  # noqa: E402
from app.dependencies import get_backend, get_cache  # noqa: E402
from app.main import app  # noqa: E402
from app.repositories.product_repo import ProductQuery, RowWindow  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def product_row(n: int, **overrides: Any) -> dict[str, Any]:
    """A stored product; higher `n` means created later."""
    row = {
        "id": f"p{n}",
        "product_id": f"SKU-{n}",
        "product_name": f"Product {n}",
        "category": "Electronics",
        "subcategory": None,
        "item": None,
        "price": 100.0,
        "original_price": None,
        "commission": 0,
        "sales": 0,
        "rating": 4.5,
        "clicks": 0,
        "affiliate_url": f"https://shop.example.com/p/{n}",
        "image_url": f"https://cdn.example.com/p/{n}.jpg",
        "video_url": None,
        "dikirim_dari": None,
        "toko": None,
        "stock_available": True,
        "is_featured": False,
        "featured_order": None,
        "created_at": (BASE_TIME + timedelta(minutes=n)).isoformat(),
    }
    row.update(overrides)
    return row


def _sort_key(value: Any, ascending: bool, nulls_first: bool | None) -> tuple[int, Any]:
    # default matches Postgres: NULLs after values ascending, before them descending
    if nulls_first is None:
        nulls_first = not ascending
    if value is None:
        return (-1 if nulls_first == ascending else 1, 0)
    return (0, value)


def _order(rows: list[dict[str, Any]], orderings) -> list[dict[str, Any]]:
    for ordering in reversed(orderings):
        rows = sorted(
            rows,
            key=lambda r: _sort_key(r.get(ordering.column), ordering.ascending, ordering.nulls_first),
            reverse=not ordering.ascending,
        )
    return rows


class FakeBackend:
    """
    In-memory stand-in for SupabaseProductRepository.

    - every read is capped at `row_cap` rows and rejects bigger limits
    - `calls` counts invocations per method
    - fail(method, exc, after=n) makes every call after the first n raise
    - fail_ids maps product id -> exception for single-product writes
    - list results of call_rpc are capped at `row_cap` rows like PostgREST
    """

    def __init__(self, rows: list[dict[str, Any]] | None = None, row_cap: int = 1000):
        self.rows: list[dict[str, Any]] = [dict(r) for r in rows or []]
        self.row_cap = row_cap
        self.events: list[dict[str, Any]] = []
        self.calls: Counter[str] = Counter()
        self.queries: list[ProductQuery] = []
        self.fail_ids: dict[str, BaseException] = {}
        self._failures: dict[str, tuple[int, BaseException]] = {}
        self._next_id = len(self.rows) + 1000

    # ----- Test controls -----

    def fail(self, method: str, exc: BaseException, after: int = 0) -> None:
        self._failures[method] = (after, exc)

    def clear_failures(self) -> None:
        self._failures.clear()
        self.fail_ids.clear()

    def _enter(self, method: str, product_id: str | None = None) -> None:
        self.calls[method] += 1
        if method in self._failures:
            after, exc = self._failures[method]
            if self.calls[method] > after:
                raise exc
        if product_id is not None and product_id in self.fail_ids:
            raise self.fail_ids[product_id]

    def _check_limit(self, limit: int) -> None:
        if limit < 1 or limit > self.row_cap:
            raise ValueError(f"limit must be between 1 and {self.row_cap}, got {limit}")

    def by_id(self, product_id: str) -> dict[str, Any] | None:
        return next((r for r in self.rows if r["id"] == product_id), None)

    # ----- Reads -----

    async def query_products(self, query: ProductQuery) -> RowWindow:
        self._enter("query_products")
        self._check_limit(query.limit)
        self.queries.append(query)

        rows = list(self.rows)
        for term in query.search_terms:
            rows = [r for r in rows if term.lower() in str(r["product_name"]).lower()]
        for column in ("category", "subcategory", "dikirim_dari", "item"):
            value = getattr(query, column)
            if value is not None:
                rows = [r for r in rows if r.get(column) == value]
        if query.price_min is not None:
            rows = [r for r in rows if r["price"] >= query.price_min]
        if query.price_max is not None:
            rows = [r for r in rows if r["price"] <= query.price_max]
        if query.featured is True:
            rows = [r for r in rows if r.get("is_featured") is True]
        elif query.featured is False:
            rows = [r for r in rows if not r.get("is_featured")]

        rows = _order(rows, query.orderings)
        window = [dict(r) for r in rows[query.offset:query.offset + query.limit]]
        return RowWindow(rows=window, total=len(rows) if query.with_count else None)

    async def query_category_pairs(self, offset: int, limit: int, with_count: bool = False) -> RowWindow:
        self._enter("query_category_pairs")
        self._check_limit(limit)
        rows = sorted(self.rows, key=lambda r: (r["category"], r["id"]))
        window = [
            {"category": r["category"], "subcategory": r.get("subcategory")}
            for r in rows[offset:offset + limit]
        ]
        return RowWindow(rows=window, total=len(rows) if with_count else None)

    async def query_column(
        self,
        column: str,
        offset: int,
        limit: int,
        category: str | None = None,
        subcategory: str | None = None,
        with_count: bool = False,
    ) -> RowWindow:
        self._enter("query_column")
        self._check_limit(limit)
        rows = [r for r in self.rows if r.get(column) is not None]
        if category is not None:
            rows = [r for r in rows if r["category"] == category]
        if subcategory is not None:
            rows = [r for r in rows if r.get("subcategory") == subcategory]
        rows = sorted(rows, key=lambda r: (r[column], r["id"]))
        window = [{column: r[column]} for r in rows[offset:offset + limit]]
        return RowWindow(rows=window, total=len(rows) if with_count else None)

    async def get_product(self, product_id: str) -> dict[str, Any] | None:
        self._enter("get_product", product_id)
        row = self.by_id(product_id)
        return dict(row) if row else None

    # ----- Mutations -----

    async def insert_product(self, fields: dict[str, Any]) -> dict[str, Any]:
        self._enter("insert_product")
        if fields.get("product_name") in self.fail_ids:
            raise self.fail_ids[fields["product_name"]]
        self._next_id += 1
        row = {
            "id": f"p{self._next_id}",
            "clicks": 0,
            "created_at": (BASE_TIME + timedelta(days=365, minutes=self._next_id)).isoformat(),
            **fields,
        }
        self.rows.append(row)
        return dict(row)

    async def update_product(self, product_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        self._enter("update_product", product_id)
        row = self.by_id(product_id)
        if row is None:
            return None
        row.update(fields)
        return dict(row)

    async def delete_product(self, product_id: str) -> bool:
        self._enter("delete_product", product_id)
        row = self.by_id(product_id)
        if row is None:
            return False
        self.rows.remove(row)
        return True

    # ----- Click tracking -----

    async def increment_click_counter(self, product_id: str) -> None:
        self._enter("increment_click_counter", product_id)
        row = self.by_id(product_id)
        if row is not None:
            row["clicks"] = (row.get("clicks") or 0) + 1

    async def append_click_event(self, product_id: str, event_id: str) -> None:
        self._enter("append_click_event")
        if any(e["id"] == event_id for e in self.events):
            raise BackendRejected("duplicate key value violates unique constraint", code="23505")
        self.events.append(
            {
                "id": event_id,
                "product_id": product_id,
                "event_type": "click",
                "created_at": datetime.now(timezone.utc),
            }
        )

    async def query_click_events(self, offset: int, limit: int, with_count: bool = False) -> RowWindow:
        self._enter("query_click_events")
        self._check_limit(limit)
        events = sorted(self.events, key=lambda e: e["id"])
        window = [{"product_id": e["product_id"]} for e in events[offset:offset + limit]]
        return RowWindow(rows=window, total=len(events) if with_count else None)

    async def count_click_events(self, product_id: str) -> int:
        self._enter("count_click_events", product_id)
        return sum(1 for e in self.events if e["product_id"] == product_id)

    async def set_click_counter(self, product_id: str, clicks: int, expected: int | None) -> bool:
        self._enter("set_click_counter", product_id)
        row = self.by_id(product_id)
        if row is None or row.get("clicks") != expected:
            return False
        row["clicks"] = clicks
        return True

    # ----- Analytics -----

    async def call_rpc(self, name: str, params: dict[str, Any]) -> Any:
        self._enter("call_rpc")
        start = params.get("start_date")
        events = self.events
        if start is not None:
            since = datetime.fromisoformat(start)
            events = [e for e in events if e["created_at"] >= since]

        if name == "get_total_products_by_period":
            return len(self.rows)
        if name == "get_total_clicks_by_period":
            return len(events)
        if name == "get_product_click_counts_by_period":
            counts = Counter(e["product_id"] for e in events)
            names = {r["id"]: r["product_name"] for r in self.rows}
            return [
                {"product_id": pid, "product_name": names.get(pid), "click_count": count}
                for pid, count in counts.most_common()
            ][:self.row_cap]
        raise BackendRejected(f"function {name} does not exist", code="42883")


@pytest.fixture
def backend():
    return FakeBackend([product_row(n) for n in range(1, 6)])


@pytest.fixture
def cache():
    return ReadCache(ttl_seconds=60)


@pytest.fixture
def client(backend, cache):
    """API client with the fake backend and admin access granted."""
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[require_admin] = lambda: {"sub": "admin-user"}
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(backend, cache):
    """API client without an admin override."""
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()
