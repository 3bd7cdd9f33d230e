# app/core/supabase_client.py
from supabase import AsyncClient, acreate_client

from app.core.config import get_settings

settings = get_settings()


async def supabase_public() -> AsyncClient:
    """
    Create an async Supabase client with the anon/public key.

    Use cases:
      - storefront reads (products, categories)
      - click tracking inserts + counter RPC

    Note: This client still respects RLS.
    """
    return await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


async def supabase_admin() -> AsyncClient:
    """
    Create an async Supabase client with the service role key.

    Use cases:
      - catalog mutations from the admin API
      - analytics RPCs

    Falls back to the anon key when SUPABASE_SERVICE_ROLE_KEY is not set,
    in which case the project's RLS policies decide what the admin API
    may write.

    WARNING:
      - Never expose service role key to frontend.
      - Only backend should call this.
    """
    key = settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_KEY
    return await acreate_client(settings.SUPABASE_URL, key)
