from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from pngfun.config import settings

class Base(DeclarativeBase):
    pass

def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # sqlite connections are bound to the loop that opened them
        return {"poolclass": NullPool, "connect_args": {"timeout": settings.db_command_timeout_seconds}}
    return {
        "pool_timeout": settings.db_pool_timeout_seconds,
        "pool_pre_ping": True,
        "connect_args": {
            "timeout": settings.db_pool_timeout_seconds,
            "command_timeout": settings.db_command_timeout_seconds,
        },
    }

engine = create_async_engine(settings.database_url, future=True, echo=False, **_engine_kwargs(settings.database_url))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

@asynccontextmanager
async def atomic(session: AsyncSession):
    """Commit on success, roll back on any failure."""
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise

def insert_for(session: AsyncSession, model):
    """Dialect-specific INSERT so callers can use ON CONFLICT DO NOTHING."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)

def is_postgres(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name == "postgresql"
