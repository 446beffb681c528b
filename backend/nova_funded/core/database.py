from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

import redis.asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_redis_client: aioredis.Redis | None = None


def get_engine(database_url: str) -> AsyncEngine:
    global _engine
    if _engine is None:
        # Supabase pooler (pgbouncer, transaction mode) не поддерживает prepared statements
        connect_args = {"statement_cache_size": 0} if ":6543/" in database_url else {}
        _engine = create_async_engine(
            database_url,
            echo=False,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=1800,
            connect_args=connect_args,
        )
    return _engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        # expire_on_commit=False: ответы API собираются из объектов уже после коммита
        _session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


def _factory() -> async_sessionmaker[AsyncSession]:
    from nova_funded.core.config import settings
    return get_session_factory(get_engine(settings.database_url_async))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Сессия на запрос: commit в конце, rollback при ошибке."""
    async with _factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """То же, что get_db, для фоновых задач и консольных команд."""
    async with _factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_db() -> bool:
    async with session_scope() as session:
        await session.execute(text("SELECT 1"))
    return True


async def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        from nova_funded.core.config import settings
        _redis_client = aioredis.from_url(
            settings.redis_connection_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=30,
            health_check_interval=30,
        )
    return _redis_client


async def close_db() -> None:
    global _engine, _session_factory, _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
