# app/core/hierarchy.py
from collections.abc import Iterable, Mapping
from typing import Any


def build_category_hierarchy(
    rows: Iterable[Mapping[str, Any]],
) -> dict[str, set[str]]:
    """
    Derive category -> {subcategory, ...} from product rows.

    Rows only need `category` and `subcategory`. Rows without a category are
    skipped; a category whose rows have no subcategory maps to an empty set.
    """
    hierarchy: dict[str, set[str]] = {}
    for row in rows:
        category = _clean(row.get("category"))
        if category is None:
            continue
        subcategories = hierarchy.setdefault(category, set())
        subcategory = _clean(row.get("subcategory"))
        if subcategory is not None:
            subcategories.add(subcategory)
    return hierarchy


def hierarchy_to_sorted_lists(
    hierarchy: Mapping[str, Iterable[str]],
) -> dict[str, list[str]]:
    """Alphabetical presentation form of a hierarchy."""
    return {
        category: sorted(hierarchy[category])
        for category in sorted(hierarchy)
    }


def distinct_values(rows: Iterable[Mapping[str, Any]], column: str) -> list[str]:
    """Sorted distinct non-empty values of `column`."""
    values = {_clean(row.get(column)) for row in rows}
    values.discard(None)
    return sorted(values)


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    # Kept verbatim so it still equals the product column for exact filters
    return text if text.strip() else None
