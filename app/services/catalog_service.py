# app/services/catalog_service.py
import asyncio

from app.core.hierarchy import build_category_hierarchy, distinct_values
from app.core.slugs import SlugIndex
from app.schemas.product import CategoryResolution, FacetOptions
from app.services.fetch_coordinator import FetchCoordinator


class CatalogService:
    """
    Navigation facets derived from the product table.

    Responsibilities:
      - category -> subcategory hierarchy (from the category/subcategory
        column query, never from full rows)
      - slug <-> name resolution for category URLs
      - shipping-origin and item options for the filter sidebar
    """

    def __init__(self, coordinator: FetchCoordinator):
        self.coordinator = coordinator

    async def get_hierarchy(self) -> dict[str, set[str]]:
        rows = await self.coordinator.fetch_category_pairs()
        return build_category_hierarchy(rows)

    async def resolve(
        self,
        category_slug: str | None,
        subcategory_slug: str | None = None,
    ) -> CategoryResolution:
        """
        Map URL slugs back to real names.

        Unknown slugs resolve to None with known=False; a subcategory is only
        returned when it belongs to the resolved category.
        """
        hierarchy = await self.get_hierarchy()
        index = SlugIndex.from_hierarchy(hierarchy)

        category = index.resolve_category(category_slug)
        subcategory = index.resolve_subcategory(subcategory_slug)
        if category is None or subcategory not in hierarchy.get(category, set()):
            subcategory = None

        known = category is not None and (not subcategory_slug or subcategory is not None)
        return CategoryResolution(category=category, subcategory=subcategory, known=known)

    async def get_shipping_origins(self) -> list[str]:
        rows = await self.coordinator.fetch_column("dikirim_dari")
        return distinct_values(rows, "dikirim_dari")

    async def get_items(
        self,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> list[str]:
        rows = await self.coordinator.fetch_column("item", category=category, subcategory=subcategory)
        return distinct_values(rows, "item")

    async def get_options(
        self,
        category: str | None = None,
        subcategory: str | None = None,
    ) -> FacetOptions:
        origins, items = await asyncio.gather(
            self.get_shipping_origins(),
            self.get_items(category, subcategory),
        )
        return FacetOptions(shipping_origins=origins, items=items)
