"""
Database engine and session management.

One request, one session, one transaction: ``session_scope`` commits when the
block exits cleanly and rolls back if anything raised. ``get_session`` is the
same scope as a FastAPI dependency.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.config import get_settings

settings = get_settings()
log = structlog.get_logger()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Async engine for ``url``.

    In-memory SQLite shares one connection, otherwise every session would see
    its own empty database. Server databases get a bounded pool whose
    connections are checked before use.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **kwargs)

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = make_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create all tables (local scripts and tests; deployments run migrations)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def ping(session: AsyncSession) -> None:
    """Round trip to the database. Raises SQLAlchemyError when it is down."""
    await session.execute(text("SELECT 1"))


@asynccontextmanager
async def session_scope(
    factory: Optional[sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            log.debug("db.rollback", error=type(exc).__name__)
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with session_scope() as session:
        yield session
