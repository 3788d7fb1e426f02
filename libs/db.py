# libs/db.py
"""
Async PostgreSQL engine and the per-request session dependency.
"""

from typing import AsyncIterator
from urllib.parse import quote_plus

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from libs.config import Config


def database_url() -> str:
    """
    DATABASE_URL when set, otherwise a DSN built from the DATABASE_* parts
    so Kubernetes deployments can inject them separately.
    """
    if Config.DATABASE_URL:
        return Config.DATABASE_URL

    password = quote_plus(Config.DATABASE_PASSWORD) if Config.DATABASE_PASSWORD else ""
    return (
        f"postgresql+asyncpg://{Config.DATABASE_USER}:{password}"
        f"@{Config.DATABASE_HOST}:{Config.DATABASE_PORT}/{Config.DATABASE_NAME}"
    )


DATABASE_URL = database_url()

engine = create_async_engine(
    DATABASE_URL,
    echo=Config.DATABASE_ECHO,
    pool_size=Config.DATABASE_POOL_SIZE,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Async session for FastAPI dependency injection."""
    async with AsyncSessionLocal() as session:
        yield session
