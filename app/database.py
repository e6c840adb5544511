"""
Database engine and session management.

Postgres (asyncpg) in deployment; any async SQLAlchemy URL works, which is
how the test suite runs on aiosqlite.
"""

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)

# Stable constraint names so Alembic migrations can drop/alter them
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def get_database_url(url: Optional[str] = None) -> str:
    """Normalize a Postgres URL for asyncpg; other drivers pass through."""
    url = settings.database_url if url is None else url
    if not url:
        return ""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql+asyncpg://"):
        # asyncpg takes ssl via connect_args, not sslmode
        base, _, query = url.partition("?")
        params = [p for p in query.split("&") if p and not p.startswith("sslmode=")]
        url = base + ("?" + "&".join(params) if params else "")
    return url


def _engine_options(url: str) -> dict:
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if url.startswith("postgresql+asyncpg://"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        if "sslmode=require" in settings.database_url:
            options["connect_args"] = {"ssl": "require"}
    return options


def create_engine_if_configured() -> Optional[AsyncEngine]:
    """Create the async engine, or None when DATABASE_URL is unset."""
    url = get_database_url()
    if not url:
        logger.warning("DATABASE_URL not configured. Payment and wallet endpoints disabled.")
        return None
    return create_async_engine(url, **_engine_options(url))


engine = create_engine_if_configured()

async_session_maker = (
    async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    if engine
    else None
)


class Base(DeclarativeBase):
    """Base class for all database models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session.

    One request is one unit of work: a payment capture and every wallet
    credit it causes commit together or not at all.
    """
    if not async_session_maker:
        raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables directly; local development only, deployments use Alembic."""
    if not engine:
        logger.info("Skipping table creation - DATABASE_URL not configured")
        return

    import app.models  # noqa: F401  register tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db() -> None:
    if engine:
        await engine.dispose()
