# alembic/env.py
# Миграции схемы модерации (user_actions, managed_chats, reports, ...)
import asyncio
import os
import sys
from logging.config import fileConfig

from sqlalchemy.engine import Connection

from alembic import context

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from modguard import config as app_config
from modguard.database.models import Base
from modguard.database.session import build_engine
import modguard.database.models_moderation  # noqa: F401

alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

# ALEMBIC_URL перекрывает DATABASE_URL (например, миграции с хоста на БД в docker)
database_url = os.getenv("ALEMBIC_URL") or app_config.DATABASE_URL or alembic_config.get_main_option("sqlalchemy.url")
if not database_url:
    raise RuntimeError("Не задан ни ALEMBIC_URL, ни DATABASE_URL")

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    # compare_type: изменения типов колонок тоже попадают в autogenerate
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def migrate_offline() -> None:
    """Генерация SQL без подключения к базе (alembic upgrade --sql)."""
    _configure(url=database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _migrate_with(connection: Connection) -> None:
    _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
    with context.begin_transaction():
        context.run_migrations()


async def migrate_online() -> None:
    engine = build_engine(database_url)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate_with)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    migrate_offline()
else:
    asyncio.run(migrate_online())
