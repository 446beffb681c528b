"""
Alembic env для NOVA_FUNDED: URL берётся из Settings, online-миграции идут через asyncpg.
"""
import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from nova_funded.core.config import settings
from nova_funded.core.database import Base
import nova_funded.models  # noqa: F401  регистрирует таблицы в Base.metadata

alembic_cfg = context.config
if alembic_cfg.config_file_name is not None:
    fileConfig(alembic_cfg.config_file_name)

target_metadata = Base.metadata
alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)


def _configure(**kwargs) -> None:
    # CHECK-ограничения тарифов и платежей сравниваются вместе с типами
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_offline() -> None:
    """Генерация SQL без подключения: alembic upgrade head --sql."""
    _configure(
        url=settings.database_url_sync,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    section = alembic_cfg.get_section(alembic_cfg.config_ini_section, {})
    section["sqlalchemy.url"] = settings.database_url_async
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
