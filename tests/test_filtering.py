"""Tests for the in-memory filter/sort engine and the filter value."""

import random

import pytest
from pydantic import ValidationError

from app.core.filtering import (
    apply_filters,
    filter_and_sort,
    shuffle_products,
    sort_products,
    to_number,
)
from app.schemas.product import ProductFilter, SortMode


@pytest.fixture
def rows():
    return [
        {"id": "1", "product_name": "Wireless Optical Mouse", "category": "Electronics",
         "subcategory": "Accessories", "price": 150000, "sales": 10, "clicks": 3,
         "dikirim_dari": "Jakarta", "item": "Mouse", "created_at": "2024-01-03"},
        {"id": "2", "product_name": "Wireless Keyboard", "category": "Electronics",
         "subcategory": "Accessories", "price": "250000", "sales": 40, "clicks": 9,
         "dikirim_dari": "Bandung", "item": "Keyboard", "created_at": "2024-01-05"},
        {"id": "3", "product_name": "Gaming Chair Pro", "category": "Furniture",
         "subcategory": "Chairs", "price": 1200000, "sales": 2, "clicks": None,
         "dikirim_dari": "Jakarta", "item": "Chair", "created_at": "2024-01-01"},
        {"id": "4", "product_name": "Office Chair", "category": "Furniture",
         "subcategory": "Chairs", "price": None, "sales": "n/a", "clicks": 1,
         "dikirim_dari": None, "item": "Chair", "created_at": None},
        {"id": "5", "product_name": "Gaming Desk", "category": "Furniture",
         "subcategory": "Desks", "price": 800000, "sales": 5, "clicks": 12,
         "dikirim_dari": "Surabaya", "item": "Desk", "created_at": "2024-01-04"},
    ]


def names(rows):
    return [r["product_name"] for r in rows]


class TestToNumber:
    @pytest.mark.parametrize(
        "value,expected",
        [(5, 5.0), (2.5, 2.5), ("120000", 120000.0), (" 7 ", 7.0), (None, 0.0), ("abc", 0.0), (True, 0.0)],
    )
    def test_coercion(self, value, expected):
        assert to_number(value) == expected


class TestApplyFilters:
    def test_search_requires_every_term(self, rows):
        result = apply_filters(rows, ProductFilter(search="wireless mouse"))
        assert names(result) == ["Wireless Optical Mouse"]

    def test_search_gaming_chair(self, rows):
        result = apply_filters(rows, ProductFilter(search="gaming chair"))
        assert names(result) == ["Gaming Chair Pro"]

    def test_search_is_case_insensitive(self, rows):
        result = apply_filters(rows, ProductFilter(search="  WIRELESS  "))
        assert len(result) == 2

    def test_category_and_subcategory(self, rows):
        result = apply_filters(rows, ProductFilter(category="Furniture", subcategory="Chairs"))
        assert names(result) == ["Gaming Chair Pro", "Office Chair"]

    def test_price_bounds_are_inclusive(self, rows):
        result = apply_filters(rows, ProductFilter(price_min=150000, price_max=800000))
        assert names(result) == ["Wireless Optical Mouse", "Wireless Keyboard", "Gaming Desk"]

    def test_missing_price_counts_as_zero(self, rows):
        result = apply_filters(rows, ProductFilter(price_max=0))
        assert names(result) == ["Office Chair"]

    def test_facets(self, rows):
        assert names(apply_filters(rows, ProductFilter(dikirim_dari="Jakarta"))) == [
            "Wireless Optical Mouse",
            "Gaming Chair Pro",
        ]
        assert names(apply_filters(rows, ProductFilter(item="Chair"))) == [
            "Gaming Chair Pro",
            "Office Chair",
        ]

    def test_no_match_is_empty_not_error(self, rows):
        assert apply_filters(rows, ProductFilter(search="refrigerator")) == []

    @pytest.mark.parametrize(
        "extra",
        [
            {"search": "gaming chair"},
            {"category": "Furniture"},
            {"price_min": 200000},
            {"dikirim_dari": "Jakarta"},
            {"item": "Chair"},
        ],
    )
    def test_adding_a_criterion_never_grows_results(self, rows, extra):
        base = ProductFilter(search="gaming")
        narrowed = ProductFilter(**{**base.model_dump(), **extra})

        assert len(apply_filters(rows, narrowed)) <= len(apply_filters(rows, base))


class TestSortProducts:
    def test_harga_termurah_non_decreasing(self, rows):
        prices = [to_number(r["price"]) for r in sort_products(rows, SortMode.HARGA_TERMURAH)]
        assert prices == sorted(prices)

    def test_harga_tertinggi_non_increasing(self, rows):
        prices = [to_number(r["price"]) for r in sort_products(rows, SortMode.HARGA_TERTINGGI)]
        assert prices == sorted(prices, reverse=True)

    def test_cheapest_first_scenario(self):
        products = [
            {"product_name": "A", "price": 100, "sales": 5},
            {"product_name": "B", "price": 50, "sales": 20},
        ]
        result = filter_and_sort(products, ProductFilter(sort_by="harga_termurah"))
        assert names(result) == ["B", "A"]

    def test_terlaris_and_popular(self, rows):
        assert names(sort_products(rows, SortMode.TERLARIS))[0] == "Wireless Keyboard"
        assert names(sort_products(rows, SortMode.POPULAR))[0] == "Gaming Desk"

    def test_default_is_newest_first(self, rows):
        result = sort_products(rows, None)
        assert [r["id"] for r in result] == ["2", "5", "1", "3", "4"]

    def test_sort_is_stable(self):
        products = [{"id": str(i), "price": 10} for i in range(6)]
        result = sort_products(products, SortMode.HARGA_TERMURAH)
        assert [r["id"] for r in result] == [str(i) for i in range(6)]

    def test_rekomendasi_is_a_permutation(self, rows):
        result = sort_products(rows, SortMode.REKOMENDASI, random.Random(7))
        assert sorted(r["id"] for r in result) == ["1", "2", "3", "4", "5"]

    def test_shuffle_does_not_touch_input(self, rows):
        original = list(rows)
        shuffle_products(rows, random.Random(1))
        assert rows == original

    def test_shuffle_is_reproducible_with_seed(self, rows):
        first = shuffle_products(rows, random.Random(42))
        second = shuffle_products(rows, random.Random(42))
        assert first == second


class TestProductFilter:
    def test_blank_values_are_none(self):
        f = ProductFilter(category=" ", item="", sort_by="")
        assert f.category is None
        assert f.item is None
        assert f.sort_mode is None

    def test_unknown_sort_falls_back_to_newest(self):
        assert ProductFilter(sort_by="cheapest").sort_mode is None
        assert ProductFilter(sort_by="HARGA_TERMURAH").sort_mode is SortMode.HARGA_TERMURAH

    def test_subcategory_requires_category(self):
        with pytest.raises(ValidationError):
            ProductFilter(subcategory="Phones")

    def test_price_bounds_validated(self):
        with pytest.raises(ValidationError):
            ProductFilter(price_min=-1)
        with pytest.raises(ValidationError):
            ProductFilter(price_min=500, price_max=100)

    def test_is_immutable(self):
        f = ProductFilter(search="chair")
        with pytest.raises(ValidationError):
            f.search = "desk"

    def test_cache_key_normalizes_search_and_sort(self):
        a = ProductFilter(search="Gaming  Chair", sort_by="harga_termurah")
        b = ProductFilter(search="gaming chair", sort_by=" HARGA_TERMURAH ")
        c = ProductFilter(search="gaming chair")

        assert a.cache_key() == b.cache_key()
        assert a.cache_key() != c.cache_key()
