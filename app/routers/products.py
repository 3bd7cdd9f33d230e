# app/routers/products.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from app.dependencies import get_coordinator, get_product_service
from app.schemas.product import ProductFilter, ProductPage, ProductRead
from app.services.fetch_coordinator import FetchCoordinator
from app.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])


def product_filter(
    search: str = "",
    category: str | None = None,
    subcategory: str | None = None,
    price_min: float | None = None,
    price_max: float | None = None,
    dikirim_dari: str | None = None,
    item: str | None = None,
    sort_by: str | None = None,
) -> ProductFilter:
    """
    Build the filter from query parameters.

    Shared by the storefront listing and the admin listing.
    """
    try:
        return ProductFilter(
            search=search,
            category=category,
            subcategory=subcategory,
            price_min=price_min,
            price_max=price_max,
            dikirim_dari=dikirim_dari,
            item=item,
            sort_by=sort_by,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
        )


@router.get("", response_model=ProductPage)
async def list_products(
    filters: ProductFilter = Depends(product_filter),
    cursor: int = Query(0, ge=0, description="Page number returned as next_cursor"),
    coordinator: FetchCoordinator = Depends(get_coordinator),
):
    """
    One storefront page (PRODUCTS_PER_PAGE rows).

    - Public endpoint.
    - Follow `next_cursor` until it is null for infinite scroll.
    """
    page = await coordinator.fetch_page(filters, cursor)
    return ProductPage(
        items=page.rows,
        page=page.page,
        has_more=page.has_more,
        next_cursor=page.next_page,
    )


@router.get("/featured", response_model=list[ProductRead])
async def list_featured(coordinator: FetchCoordinator = Depends(get_coordinator)):
    """Featured products in curated order (public)."""
    return await coordinator.fetch_featured()


@router.get("/latest", response_model=list[ProductRead])
async def list_latest(
    limit: int = Query(4, ge=1, le=100),
    coordinator: FetchCoordinator = Depends(get_coordinator),
):
    """Newest products for the home page (public)."""
    return await coordinator.fetch_latest(limit)


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
):
    """
    Get a single product by id.

    - Public endpoint.
    """
    return await service.get_product(product_id)
