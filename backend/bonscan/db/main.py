from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from bonscan.config import settings

Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _database_url() -> str:
    # Convert postgresql:// to postgresql+asyncpg://
    return settings.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)


def get_engine() -> AsyncEngine:
    """
    Zwraca (i przy pierwszym wywołaniu tworzy) silnik bazy.

    Pool sizing i pgbouncer connect_args dotyczą tylko PostgreSQL,
    sqlite (aiosqlite) ich nie przyjmuje.
    """
    global _engine
    if _engine is None:
        url = _database_url()
        if url.startswith("postgresql+asyncpg://"):
            _engine = create_async_engine(
                url,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                echo=settings.ENV == "development",
                connect_args={
                    "statement_cache_size": 0,  # Disable prepared statements for pgbouncer compatibility
                },
            )
        else:
            _engine = create_async_engine(url, echo=settings.ENV == "development")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_factory


async def init_models() -> None:
    """Creates the corrections table when running without migrations (sqlite, local dev)."""
    # Rejestracja modeli w Base.metadata
    from bonscan.categories import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
