"""
Database engine and sessions.

One async engine per process. Sessions keep loaded objects usable after
commit (expire_on_commit=False) because the transition authority returns
the committed parcel and event to its caller.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def _engine_options() -> dict:
    # SQLite drivers reject pool sizing arguments
    if settings.database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    **_engine_options(),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def create_schema() -> None:
    """Create the parcel and event tables if they do not exist."""
    # Registers the mapped tables on Base.metadata
    from backend.app.models import parcel, parcel_event  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """FastAPI dependency yielding one session per request."""
    async with AsyncSessionLocal() as session:
        yield session
