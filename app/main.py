# app/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.errors import (
    BackendRejected,
    BackendUnavailable,
    CatalogError,
    IncompleteScanError,
    PartialFetchError,
    ProductNotFound,
)
from app.core.supabase_client import supabase_admin, supabase_public
from app.database import build_engine, create_db_and_tables
from app.repositories.product_repo import SupabaseProductRepository

# Routers
from app.routers.products import router as products_router
from app.routers.categories import router as categories_router
from app.routers.clicks import router as clicks_router
from app.routers.admin_products import router as admin_products_router
from app.routers.admin_analytics import router as admin_analytics_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Create the Supabase clients and the catalog repository.
      - Create tables when DATABASE_URL is configured.

    Shutdown:
      - Dispose the bootstrap engine, if any.
    """
    engine = build_engine()
    if engine is not None:
        logger.info("🔄 Startup: Connecting to Supabase Postgres...")
        try:
            create_db_and_tables(engine)
            logger.info("✅ Startup: DB connection OK, tables verified.")
        except Exception as e:
            logger.error(f"❌ Startup: DB connection FAILED: {e}")
            raise

    public_client = await supabase_public()
    admin_client = await supabase_admin()
    app.state.backend = SupabaseProductRepository(
        public_client,
        admin_client,
        row_cap=settings.BACKEND_ROW_CAP,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )
    logger.info("✅ Startup: Supabase catalog client ready.")
    yield

    if engine is not None:
        engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error translation ---

def _error_response(status_code: int, exc: CatalogError, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "retryable": exc.retryable, **extra},
    )


@app.exception_handler(ProductNotFound)
async def product_not_found_handler(request: Request, exc: ProductNotFound):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(BackendRejected)
async def backend_rejected_handler(request: Request, exc: BackendRejected):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc, code=exc.code)


@app.exception_handler(PartialFetchError)
async def partial_fetch_handler(request: Request, exc: PartialFetchError):
    logger.warning(f"Partial fetch returned to client as 503: {exc.message}")
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE, exc, partial_rows=len(exc.rows)
    )


@app.exception_handler(IncompleteScanError)
async def incomplete_scan_handler(request: Request, exc: IncompleteScanError):
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if isinstance(exc, BackendUnavailable):
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)
    logger.error(f"❌ Unhandled catalog error: {exc.message}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


# Versioned API prefix, e.g. /api/v1
app.include_router(products_router, prefix=settings.API_V1_STR)
app.include_router(categories_router, prefix=settings.API_V1_STR)
app.include_router(clicks_router, prefix=settings.API_V1_STR)
app.include_router(admin_products_router, prefix=settings.API_V1_STR)
app.include_router(admin_analytics_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "affiliate-catalog"}
