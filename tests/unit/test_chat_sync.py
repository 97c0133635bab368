# tests/unit/test_chat_sync.py
"""
Тесты синхронизации управляемых чатов и их администраторов.
"""

from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock

from aiogram.exceptions import TelegramBadRequest

from modguard.database.repositories import ChatAdminsRepository, ManagedChatsRepository
from modguard.services.chat_sync import ChatSyncService
from modguard.services.enforcement.health import ChatHealthCache, ChatHealthService


def _member(user_id, status="administrator", is_bot=False, username=None):
    return SimpleNamespace(status=status, user=SimpleNamespace(id=user_id, is_bot=is_bot, username=username))


@pytest.fixture
def sync(session_factory, platform_mock):
    platform_mock.get_bot_member = AsyncMock(
        return_value=SimpleNamespace(status="administrator", can_restrict_members=True, can_delete_messages=True)
    )
    platform_mock.get_chat_administrators = AsyncMock(return_value=[
        _member(10, status="creator", username="owner"),
        _member(11, username="helper"),
        _member(999000, is_bot=True),
        _member(555, is_bot=True),
    ])
    chats = ManagedChatsRepository(session_factory)
    admins = ChatAdminsRepository(session_factory)
    health = ChatHealthService(platform_mock, ChatHealthCache(), chats)
    return ChatSyncService(platform_mock, chats, admins, health), chats, admins, health


@pytest.mark.asyncio
async def test_bot_added_registers_chat_admins_and_health(sync):
    service, chats, admins, health = sync

    result = await service.on_bot_added(-100, "New group")

    assert result.can_enforce is True
    assert health.cache.is_healthy(-100) is True
    assert (await chats.get_chat(-100)).chat_name == "New group"
    stored = {a.telegram_id: a.is_creator for a in await admins.get_chat_admins(-100)}
    assert stored == {10: True, 11: False}


@pytest.mark.asyncio
async def test_demoted_admin_is_deactivated(sync, platform_mock):
    service, _, admins, _ = sync
    await service.sync_admins(-100)

    platform_mock.get_chat_administrators.return_value = [_member(10, status="creator")]
    current = await service.sync_admins(-100)

    assert current == [10]
    assert await admins.is_admin(-100, 11) is False
    assert await admins.chats_where_admin(11) == []


@pytest.mark.asyncio
async def test_admin_fetch_failure_keeps_existing_admins(sync, platform_mock):
    service, _, admins, _ = sync
    await service.sync_admins(-100)

    platform_mock.get_chat_administrators.side_effect = TelegramBadRequest(
        method="getChatAdministrators", message="Bad Request: chat not found"
    )

    assert await service.sync_admins(-100) == []
    assert await admins.is_admin(-100, 11) is True


@pytest.mark.asyncio
async def test_bot_removed_deactivates_chat(sync):
    service, chats, _, health = sync
    await service.on_bot_added(-100, "Group")

    await service.on_bot_removed(-100)

    assert await chats.list_active() == []
    assert health.cache.get(-100) is None
