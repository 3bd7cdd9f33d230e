# app/database.py
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from app.core.config import get_settings

settings = get_settings()

# ---------------------------------------------------------
# Optional direct Postgres connection, used only to bootstrap
# the schema. Catalog traffic goes through PostgREST.
#
# - sslmode=require   : enforce SSL when running in the cloud
# - pool_size=1       : Supabase Session mode limits the number of clients
# - max_overflow=0    : do not open extra connections beyond the pool
# - pool_pre_ping=True: validate connections before using them
# ---------------------------------------------------------


def with_sslmode(db_url: str) -> str:
    """Append sslmode=require if it is not already present."""
    if "sslmode=" in db_url:
        return db_url
    separator = "&" if "?" in db_url else "?"
    return f"{db_url}{separator}sslmode=require"


def build_engine(db_url: str | None = None) -> Engine | None:
    db_url = db_url or settings.DATABASE_URL
    if not db_url:
        return None
    return create_engine(
        with_sslmode(db_url),
        echo=False,
        pool_pre_ping=True,
        pool_size=1,
        max_overflow=0,
    )


def create_db_and_tables(engine: Engine) -> None:
    """
    Create products / product_analytics if they do not exist.

    The click RPCs (increment_product_click, get_*_by_period) are SQL
    functions managed in Supabase and are not created here.
    """
    # Import models so SQLModel metadata is populated before create_all()
    from app.models import product as _product_models  # noqa: F401

    SQLModel.metadata.create_all(engine)
