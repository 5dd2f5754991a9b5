from __future__ import annotations

from functools import lru_cache
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from casero_api.core.settings import settings


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """Create an async engine; SQLite gets a busy timeout so concurrent writers wait."""

    url = database_url or settings.database_url
    connect_args: dict[str, object] = {}
    if url.startswith("sqlite"):
        connect_args["timeout"] = 15
    return create_async_engine(url, future=True, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@lru_cache
def get_engine() -> AsyncEngine:
    return build_engine()

