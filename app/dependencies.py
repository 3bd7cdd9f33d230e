# app/dependencies.py
"""
FastAPI dependency providers.

The backend repository is created once in the lifespan handler and stored
on `app.state`; everything else is built per request on top of it and the
process-wide read cache. Tests override get_backend / get_cache.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status

from app.core.cache import ReadCache
from app.core.config import get_settings
from app.repositories.analytics_repo import AnalyticsRepository
from app.repositories.product_repo import ProductBackend
from app.services.analytics_service import AnalyticsService
from app.services.catalog_service import CatalogService
from app.services.click_service import ClickService
from app.services.fetch_coordinator import FetchCoordinator
from app.services.product_service import ProductService

settings = get_settings()


@lru_cache
def get_cache() -> ReadCache:
    return ReadCache(
        ttl_seconds=settings.CACHE_TTL_SECONDS,
        max_entries=settings.CACHE_MAX_ENTRIES,
    )


def get_backend(request: Request) -> ProductBackend:
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog backend is not connected",
        )
    return backend


def get_coordinator(
    backend: ProductBackend = Depends(get_backend),
    cache: ReadCache = Depends(get_cache),
) -> FetchCoordinator:
    return FetchCoordinator(
        backend,
        cache,
        page_size=settings.PRODUCTS_PER_PAGE,
        window_size=settings.FULL_FETCH_WINDOW,
        max_rows=settings.FULL_FETCH_MAX_ROWS,
        max_event_rows=settings.CLICK_SCAN_MAX_ROWS,
    )


def get_product_service(
    backend: ProductBackend = Depends(get_backend),
    cache: ReadCache = Depends(get_cache),
    coordinator: FetchCoordinator = Depends(get_coordinator),
) -> ProductService:
    return ProductService(backend, cache, coordinator, chunk_size=settings.BULK_CHUNK_SIZE)


def get_catalog_service(
    coordinator: FetchCoordinator = Depends(get_coordinator),
) -> CatalogService:
    return CatalogService(coordinator)


def get_click_service(backend: ProductBackend = Depends(get_backend)) -> ClickService:
    return ClickService(backend)


def get_analytics_service(
    backend: ProductBackend = Depends(get_backend),
    cache: ReadCache = Depends(get_cache),
    coordinator: FetchCoordinator = Depends(get_coordinator),
) -> AnalyticsService:
    return AnalyticsService(AnalyticsRepository(backend), backend, coordinator, cache)
