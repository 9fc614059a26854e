"""Async engine and sessions for the property catalog database."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from doro_platform.app.config import get_settings


class Base(DeclarativeBase):
    """Declarative base shared by the catalog tables."""
    pass


def _engine_options(database_url: str) -> dict:
    """Driver-specific engine options (SQLite has no connection pool sizing)."""
    if "sqlite" in database_url:
        return {
            "echo": False,
            "connect_args": {"check_same_thread": False, "timeout": 30},
        }
    return {"echo": False, "pool_size": 5, "max_overflow": 10}


settings = get_settings()

engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency yielding one catalog session per request."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create the catalog tables if missing (local development)."""
    import doro_platform.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Catalog reads run alongside the ingestion writer
    if engine.dialect.name == "sqlite":
        async with engine.connect() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA busy_timeout=30000"))
