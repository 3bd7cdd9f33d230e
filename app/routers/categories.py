# app/routers/categories.py
from fastapi import APIRouter, Depends, HTTPException, status

from app.core.hierarchy import hierarchy_to_sorted_lists
from app.dependencies import get_catalog_service
from app.schemas.product import CategoryResolution, FacetOptions
from app.services.catalog_service import CatalogService

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=dict[str, list[str]])
async def get_categories(service: CatalogService = Depends(get_catalog_service)):
    """
    Category -> sorted subcategories, for the navigation menu.
    """
    return hierarchy_to_sorted_lists(await service.get_hierarchy())


@router.get("/resolve", response_model=CategoryResolution)
async def resolve_slugs(
    category: str,
    subcategory: str | None = None,
    service: CatalogService = Depends(get_catalog_service),
):
    """
    Turn URL slugs into the names used for filtering.

    `known=false` means the page should render as not found.
    """
    return await service.resolve(category, subcategory)


@router.get("/options", response_model=FacetOptions)
async def get_options(
    category: str | None = None,
    subcategory: str | None = None,
    service: CatalogService = Depends(get_catalog_service),
):
    """Shipping origins and item types for the filter sidebar."""
    if subcategory and not category:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="subcategory requires category",
        )
    return await service.get_options(category, subcategory)
