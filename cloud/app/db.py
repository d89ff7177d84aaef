from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from .settings import DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    # sqlite+aiosqlite (local/dev) has no server connections to ping
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True}


engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
