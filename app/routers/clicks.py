# app/routers/clicks.py
from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import RedirectResponse

from app.dependencies import get_click_service, get_product_service
from app.schemas.product import ClickAccepted
from app.services.click_service import ClickService
from app.services.product_service import ProductService

router = APIRouter(tags=["Clicks"])


@router.post(
    "/clicks/{product_id}",
    response_model=ClickAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def track_click(
    product_id: str,
    background_tasks: BackgroundTasks,
    clicks: ClickService = Depends(get_click_service),
):
    """
    Record a click without making the visitor wait for it.

    Both writes run after the response is sent; failures are only logged.
    """
    event_id = clicks.new_event_id()
    background_tasks.add_task(clicks.track_in_background, product_id, event_id)
    return ClickAccepted(event_id=event_id, product_id=product_id)


@router.get("/go/{product_id}", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def go_to_affiliate(
    product_id: str,
    background_tasks: BackgroundTasks,
    products: ProductService = Depends(get_product_service),
    clicks: ClickService = Depends(get_click_service),
):
    """
    Redirect to the product's affiliate link and track the click.

    Unknown product -> 404, nothing tracked.
    """
    product = await products.get_product(product_id)
    background_tasks.add_task(clicks.track_in_background, product_id, clicks.new_event_id())
    return RedirectResponse(
        url=product["affiliate_url"],
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
