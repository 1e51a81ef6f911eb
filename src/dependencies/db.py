"""Async SQLAlchemy engine, session factory and the ``get_db`` dependency.

Local ``.env`` files are loaded before settings are read, so a developer can
point ``DATABASE_URL`` at another file without exporting it. Nothing connects
until the first session is used.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated, Any

from dotenv import find_dotenv, load_dotenv
from fastapi import Depends
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import get_settings


LOCAL_ENV_FILES: tuple[str, ...] = (".env", ".env.dev")


def load_local_env() -> None:  # pragma: no cover - side-effect only
    """Fill unset variables from the nearest local env files, if any."""
    for name in LOCAL_ENV_FILES:
        path = find_dotenv(name, usecwd=True)
        if path:
            load_dotenv(path, override=False)


def make_engine(url: str) -> AsyncEngine:
    """Engine for ``url``; in-memory SQLite shares one connection."""
    options: dict[str, Any] = {"future": True, "echo": False}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    return create_async_engine(url, **options)


load_local_env()
engine: AsyncEngine = make_engine(get_settings().DATABASE_URL)
AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def init_models(bind: AsyncEngine | None = None) -> None:
    """Create missing tables; schema migrations are out of scope."""
    import models  # noqa: F401  registers every table on Base.metadata
    from models.base import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request, rolled back if the request fails mid-write."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db)]
