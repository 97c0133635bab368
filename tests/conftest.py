import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Тестовое окружение: .env.test, без реального DATABASE_URL
os.environ.setdefault("ENVIRONMENT", "testing")

# Гарантируем, что пакет modguard доступен для импортов из тестов
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from aiogram import Bot
from fakeredis import aioredis as fakeredis_aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from modguard.database.models import Base
# Импортируем модели модерации чтобы они зарегистрировались в Base.metadata
import modguard.database.models_moderation  # noqa: F401
from modguard.services.enforcement.health import ChatHealth, ChatHealthCache


@pytest.fixture
async def session_factory(tmp_path):
    """Фабрика сессий на временной SQLite базе (новая база на каждый тест)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
async def fake_redis():
    """fakeredis вместо реального Redis."""
    client = fakeredis_aioredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
def bot_mock():
    """Async mock for aiogram Bot."""
    bot = AsyncMock(spec=Bot)
    bot.me = AsyncMock(return_value=MagicMock(id=999000, username="modguard_bot"))
    bot.ban_chat_member = AsyncMock(return_value=True)
    bot.unban_chat_member = AsyncMock(return_value=True)
    bot.restrict_chat_member = AsyncMock(return_value=True)
    bot.delete_message = AsyncMock(return_value=True)
    bot.delete_messages = AsyncMock(return_value=True)
    bot.send_message = AsyncMock()
    bot.get_chat_member = AsyncMock()
    bot.get_chat_administrators = AsyncMock(return_value=[])
    return bot


@pytest.fixture
def platform_mock():
    """Мок TelegramPlatformOperations: все вызовы успешны."""
    platform = MagicMock()
    platform.ban = AsyncMock()
    platform.unban = AsyncMock()
    platform.restrict = AsyncMock()
    platform.restore_permissions = AsyncMock()
    platform.delete_message = AsyncMock()
    platform.delete_messages = AsyncMock(side_effect=lambda chat_id, ids: len(ids))
    platform.send_message = AsyncMock()
    platform.get_bot_id = AsyncMock(return_value=999000)
    return platform


@pytest.fixture
def healthy_cache():
    """Кэш здоровья, заполняемый вызовом healthy_cache.mark(*chat_ids)."""
    cache = ChatHealthCache()

    def mark(*chat_ids, healthy=True):
        for chat_id in chat_ids:
            cache.set(
                chat_id,
                ChatHealth(is_admin=healthy, can_restrict_members=healthy, can_delete_messages=healthy),
            )
        return cache

    cache.mark = mark
    return cache
