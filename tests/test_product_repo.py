"""Tests for SupabaseProductRepository query building and error mapping."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from app.core.errors import BackendRejected, BackendUnavailable
from app.repositories.product_repo import (
    Ordering,
    ProductQuery,
    SupabaseProductRepository,
)

BUILDER_METHODS = (
    "select", "ilike", "eq", "gte", "lte", "or_", "order", "range",
    "limit", "insert", "update", "delete", "is_",
)


def make_request(data=None, count=None):
    """A PostgREST request builder whose methods all chain back to itself."""
    request = MagicMock()
    for name in BUILDER_METHODS:
        getattr(request, name).return_value = request
    request.not_ = request
    request.execute = AsyncMock(return_value=MagicMock(data=data, count=count))
    return request


class TestSupabaseProductRepository:
    @pytest.fixture
    def request_builder(self):
        return make_request(data=[{"id": "p1"}], count=42)

    @pytest.fixture
    def client(self, request_builder):
        client = MagicMock()
        client.table.return_value = request_builder
        client.rpc.return_value = request_builder
        return client

    @pytest.fixture
    def repo(self, client):
        return SupabaseProductRepository(client, row_cap=1000, timeout=1.0)

    def test_query_pushes_filters_down(self, repo, request_builder):
        query = ProductQuery(
            offset=20,
            limit=20,
            search_terms=("gaming", "chair"),
            category="Furniture",
            price_min=100,
            price_max=500,
            featured=False,
            orderings=(Ordering("price"), Ordering("id")),
            with_count=True,
        )

        window = asyncio.run(repo.query_products(query))

        assert window.rows == [{"id": "p1"}]
        assert window.total == 42
        request_builder.select.assert_called_once()
        assert request_builder.select.call_args.kwargs.get("count") is not None
        request_builder.ilike.assert_any_call("product_name", "%gaming%")
        request_builder.ilike.assert_any_call("product_name", "%chair%")
        request_builder.eq.assert_called_once_with("category", "Furniture")
        request_builder.gte.assert_called_once_with("price", 100)
        request_builder.lte.assert_called_once_with("price", 500)
        request_builder.or_.assert_called_once_with("is_featured.is.null,is_featured.eq.false")
        request_builder.order.assert_any_call("price", desc=False)
        request_builder.range.assert_called_once_with(20, 39)

    def test_limit_above_cap_rejected(self, repo):
        with pytest.raises(ValueError):
            asyncio.run(repo.query_products(ProductQuery(limit=1001)))

    def test_timeout_is_unavailable(self, repo, request_builder):
        async def slow():
            await asyncio.sleep(5)

        request_builder.execute = slow
        repo.timeout = 0.01

        with pytest.raises(BackendUnavailable) as exc_info:
            asyncio.run(repo.get_product("p1"))
        assert exc_info.value.retryable is True

    def test_network_error_is_unavailable(self, repo, request_builder):
        request_builder.execute.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(BackendUnavailable):
            asyncio.run(repo.get_product("p1"))

    def test_api_error_is_rejected(self, repo, request_builder):
        request_builder.execute.side_effect = APIError(
            {"message": "permission denied", "code": "42501", "hint": None, "details": None}
        )

        with pytest.raises(BackendRejected) as exc_info:
            asyncio.run(repo.update_product("p1", {"price": 1}))
        assert exc_info.value.code == "42501"
        assert exc_info.value.retryable is False

    def test_update_unknown_returns_none(self, repo, request_builder):
        request_builder.execute.return_value = MagicMock(data=[], count=None)

        assert asyncio.run(repo.update_product("missing", {"price": 1})) is None

    def test_click_writes(self, repo, client, request_builder):
        asyncio.run(repo.append_click_event("p1", "evt-1"))
        asyncio.run(repo.increment_click_counter("p1"))

        request_builder.insert.assert_called_once_with(
            {"id": "evt-1", "product_id": "p1", "event_type": "click"}
        )
        client.rpc.assert_called_once_with("increment_product_click", {"product_id_to_inc": "p1"})

    def test_search_wildcards_are_literal(self, repo, request_builder):
        query = ProductQuery(search_terms=("50%", "a_b", "c\\d"))

        asyncio.run(repo.query_products(query))

        request_builder.ilike.assert_any_call("product_name", "%50\\%%")
        request_builder.ilike.assert_any_call("product_name", "%a\\_b%")
        request_builder.ilike.assert_any_call("product_name", "%c\\\\d%")

    def test_null_placement_is_passed_through(self, repo, request_builder):
        query = ProductQuery(
            orderings=(Ordering("clicks", ascending=False, nulls_first=False), Ordering("id"))
        )

        asyncio.run(repo.query_products(query))

        request_builder.order.assert_any_call("clicks", desc=True, nullsfirst=False)
        request_builder.order.assert_any_call("id", desc=False)

    def test_click_event_window(self, repo, client, request_builder):
        window = asyncio.run(repo.query_click_events(1000, 1000, with_count=True))

        assert window.total == 42
        client.table.assert_called_with("product_analytics")
        request_builder.eq.assert_called_once_with("event_type", "click")
        request_builder.range.assert_called_once_with(1000, 1999)

    def test_count_click_events(self, repo, request_builder):
        assert asyncio.run(repo.count_click_events("p1")) == 42
        request_builder.eq.assert_any_call("product_id", "p1")

    def test_set_click_counter_compares_current_value(self, repo, request_builder):
        assert asyncio.run(repo.set_click_counter("p1", 3, expected=5)) is True

        request_builder.update.assert_called_once_with({"clicks": 3})
        request_builder.eq.assert_any_call("clicks", 5)

    def test_set_click_counter_from_null(self, repo, request_builder):
        request_builder.execute.return_value = MagicMock(data=[], count=None)

        assert asyncio.run(repo.set_click_counter("p1", 3, expected=None)) is False
        request_builder.is_.assert_called_once_with("clicks", "null")
