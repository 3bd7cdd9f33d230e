# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Optional:
      - SUPABASE_SERVICE_ROLE_KEY (admin client for catalog mutations)
      - DATABASE_URL (Supabase Postgres connection string, enables the
        schema bootstrap on startup)
    """

    PROJECT_NAME: str = "Affiliate Catalog API"
    API_V1_STR: str = "/api/v1"

    # Supabase / DB config
    SUPABASE_URL: str
    SUPABASE_KEY: str
    DATABASE_URL: str | None = None

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Service role key bypasses RLS (backend only)
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # Catalog paging
    PRODUCTS_PER_PAGE: int = 20
    BACKEND_ROW_CAP: int = 1000
    FULL_FETCH_WINDOW: int = 1000
    FULL_FETCH_MAX_ROWS: int = 10_000
    CLICK_SCAN_MAX_ROWS: int = 200_000

    # Mutations / IO
    BULK_CHUNK_SIZE: int = 10
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    CACHE_TTL_SECONDS: float = 60.0
    CACHE_MAX_ENTRIES: int = 1024

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
