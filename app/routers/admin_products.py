# app/routers/admin_products.py
from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Response,
    UploadFile,
    status,
)

from app.core.auth import require_admin
from app.dependencies import get_coordinator, get_product_service
from app.routers.products import product_filter
from app.schemas.product import (
    BulkAction,
    BulkRequest,
    BulkResult,
    FeaturedOrder,
    ImportResult,
    ProductCreate,
    ProductFilter,
    ProductList,
    ProductRead,
    ProductUpdate,
)
from app.services.fetch_coordinator import FetchCoordinator
from app.services.product_service import ProductService

router = APIRouter(
    prefix="/admin",
    tags=["Admin Products"],
    dependencies=[Depends(require_admin)],
)

TRUNCATED_HEADER = "X-Catalog-Truncated"


def _flag_truncated(response: Response, truncated: bool) -> None:
    if truncated:
        response.headers[TRUNCATED_HEADER] = "true"


# -------- Listings --------


@router.get("/products", response_model=ProductList)
async def list_all_products(
    response: Response,
    filters: ProductFilter = Depends(product_filter),
    coordinator: FetchCoordinator = Depends(get_coordinator),
):
    """
    Whole catalog for the admin table, filtered and sorted in memory.

    Sets X-Catalog-Truncated when the safety ceiling cut the fetch short.
    """
    result = await coordinator.fetch_all(filters)
    _flag_truncated(response, result.truncated)
    return ProductList(items=result.rows, total=len(result.rows), truncated=result.truncated)


@router.get("/products/non-featured", response_model=list[ProductRead])
async def list_non_featured(coordinator: FetchCoordinator = Depends(get_coordinator)):
    """Candidates for the featured picker."""
    return await coordinator.fetch_non_featured()


@router.get("/products/export")
async def export_products(
    coordinator: FetchCoordinator = Depends(get_coordinator),
    service: ProductService = Depends(get_product_service),
):
    """Download the full catalog as CSV."""
    result = await coordinator.fetch_all()
    response = Response(
        content=service.export_csv(result.rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="products.csv"'},
    )
    _flag_truncated(response, result.truncated)
    return response


# -------- Single product --------


@router.post(
    "/products",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_product(
    payload: ProductCreate,
    service: ProductService = Depends(get_product_service),
):
    return await service.create_product(payload)


@router.patch("/products/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    service: ProductService = Depends(get_product_service),
):
    """
    Partial update: send only the fields to change.

    null or "" clears an optional column.
    """
    return await service.update_product(product_id, payload)


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
):
    await service.delete_product(product_id)
    return None


# -------- Bulk / CSV --------


@router.post("/products/bulk", response_model=BulkResult)
async def bulk_products(
    payload: BulkRequest,
    service: ProductService = Depends(get_product_service),
):
    """
    Apply one action to many products.

    Items are processed in chunks; one failure never stops the others and
    every failure is reported with its product id.
    """
    if payload.action == BulkAction.UPDATE:
        return await service.bulk_update(payload.ids, payload.patch)
    if payload.action == BulkAction.DELETE:
        return await service.bulk_delete(payload.ids)
    return await service.generate_ratings(payload.ids)


@router.post("/products/import", response_model=ImportResult)
async def import_products(
    file: UploadFile = File(...),
    service: ProductService = Depends(get_product_service),
):
    """
    Create products from a CSV whose header row uses the product column names.

    Invalid rows are reported per line and field; valid rows are created.
    """
    raw = await file.read()
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="CSV must be UTF-8 encoded",
        )
    return await service.import_csv(content)


# -------- Featured curation --------


@router.post("/featured/{product_id}", response_model=ProductRead)
async def add_featured(
    product_id: str,
    service: ProductService = Depends(get_product_service),
):
    """Append a product to the end of the featured list."""
    return await service.add_featured(product_id)


@router.delete("/featured/{product_id}", response_model=ProductRead)
async def remove_featured(
    product_id: str,
    service: ProductService = Depends(get_product_service),
):
    return await service.remove_featured(product_id)


@router.put("/featured/order", response_model=BulkResult)
async def reorder_featured(
    payload: FeaturedOrder,
    service: ProductService = Depends(get_product_service),
):
    """featured_order becomes each id's position in `ids`."""
    return await service.reorder_featured(payload.ids)
