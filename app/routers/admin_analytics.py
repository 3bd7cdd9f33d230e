# app/routers/admin_analytics.py
from fastapi import APIRouter, Depends

from app.core.auth import require_admin
from app.dependencies import get_analytics_service
from app.schemas.analytics import (
    AnalyticsSummary,
    ClickDrift,
    Period,
    ReconcileResult,
)
from app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/admin/analytics", tags=["Admin Analytics"])


@router.get(
    "",
    response_model=AnalyticsSummary,
    dependencies=[Depends(require_admin)],
)
async def get_click_analytics(
    period: Period = Period.ALL,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Click statistics for the admin dashboard.

    Query params (optional):
      - period: 1d, 7d, 30d or all (default)
    """
    return await service.get_summary(period)


@router.get(
    "/drift",
    response_model=list[ClickDrift],
    dependencies=[Depends(require_admin)],
)
async def get_click_drift(service: AnalyticsService = Depends(get_analytics_service)):
    """Products whose click counter disagrees with the click event log."""
    return await service.find_click_drift()


@router.post(
    "/reconcile",
    response_model=ReconcileResult,
    dependencies=[Depends(require_admin)],
)
async def reconcile_clicks(service: AnalyticsService = Depends(get_analytics_service)):
    """Rewrite drifted click counters from the event log."""
    return await service.reconcile_clicks()
