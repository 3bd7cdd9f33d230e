# app/core/filtering.py
"""
In-memory filter/sort engine for product rows.

Stages (all AND-composed, each narrowing the previous one):
  1. search     : every whitespace-separated term must appear in the name
  2. category   : exact category, then exact subcategory
  3. price      : inclusive [price_min, price_max] after numeric coercion
  4. facets     : exact dikirim_dari / item

Sorting runs after filtering and is always stable. Nothing here raises on
bad data: unparsable numbers count as 0.
"""

import random
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from app.schemas.product import ProductFilter, SortMode

Row = Mapping[str, Any]

# (column, descending) for the sort modes that order by a number
NUMERIC_SORTS: dict[SortMode, tuple[str, bool]] = {
    SortMode.POPULAR: ("clicks", True),
    SortMode.TERLARIS: ("sales", True),
    SortMode.HARGA_TERMURAH: ("price", False),
    SortMode.HARGA_TERTINGGI: ("price", True),
}


def to_number(value: Any) -> float:
    """Coerce a possibly-textual numeric column; missing or bad -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return 0.0


def matches_search(row: Row, terms: Sequence[str]) -> bool:
    name = str(row.get("product_name") or "").lower()
    return all(term in name for term in terms)


def apply_filters(rows: Iterable[Row], filters: ProductFilter) -> list[Row]:
    result = list(rows)

    terms = filters.search_terms
    if terms:
        result = [r for r in result if matches_search(r, terms)]

    if filters.category is not None:
        result = [r for r in result if r.get("category") == filters.category]
        if filters.subcategory is not None:
            result = [r for r in result if r.get("subcategory") == filters.subcategory]

    if filters.price_min is not None:
        result = [r for r in result if to_number(r.get("price")) >= filters.price_min]
    if filters.price_max is not None:
        result = [r for r in result if to_number(r.get("price")) <= filters.price_max]

    if filters.dikirim_dari is not None:
        result = [r for r in result if r.get("dikirim_dari") == filters.dikirim_dari]
    if filters.item is not None:
        result = [r for r in result if r.get("item") == filters.item]

    return result


def shuffle_products(rows: Iterable[Row], rng: random.Random | None = None) -> list[Row]:
    """Fisher-Yates shuffle into a new list."""
    rng = rng or random.Random()
    result = list(rows)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def sort_products(
    rows: Iterable[Row],
    sort_mode: SortMode | None,
    rng: random.Random | None = None,
) -> list[Row]:
    if sort_mode is SortMode.REKOMENDASI:
        # Uniform shuffle, not a quality ranking
        return shuffle_products(rows, rng)

    if sort_mode in NUMERIC_SORTS:
        column, descending = NUMERIC_SORTS[sort_mode]
        return sorted(rows, key=lambda r: to_number(r.get(column)), reverse=descending)

    # newest first; rows without created_at go last
    return sorted(rows, key=lambda r: str(r.get("created_at") or ""), reverse=True)


def filter_and_sort(
    rows: Iterable[Row],
    filters: ProductFilter,
    rng: random.Random | None = None,
) -> list[Row]:
    return sort_products(apply_filters(rows, filters), filters.sort_mode, rng)
