# tests/unit/test_group_handlers.py
"""
Тесты хендлеров групп: вход сообщения в конвейер и события участников.
"""

from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, MagicMock

from aiogram.enums import ChatType

from modguard.handlers.group_events import (
    bot_added_to_group,
    bot_rights_changed,
    bot_removed_from_group,
    member_joined,
)
from modguard.handlers.group_messages import group_message_handler
from modguard.middleware.services import ServicesMiddleware
from modguard.services.moderation.pipeline import PipelineOutcome
from modguard.services.moderation.types import ModerationResult


def _services():
    services = MagicMock()
    services.pipeline.process = AsyncMock(return_value=PipelineOutcome())
    services.chat_sync.on_bot_added = AsyncMock(return_value=SimpleNamespace(can_enforce=True))
    services.chat_sync.on_bot_removed = AsyncMock()
    services.chat_sync.sync_admins = AsyncMock(return_value=[])
    services.health_service.refresh_chat = AsyncMock()
    services.user_actions.is_banned = AsyncMock(return_value=False)
    services.orchestrator.sync_ban_to_chat = AsyncMock(return_value=ModerationResult(success=True, chats_affected=1))
    return services


def _message(text="hello", caption=None, username="alice"):
    message = MagicMock()
    message.message_id = 10
    message.text = text
    message.caption = caption
    message.chat = SimpleNamespace(id=-100, type="supergroup", title="Group")
    message.from_user = SimpleNamespace(id=42, username=username, full_name="Alice A")
    return message


@pytest.mark.asyncio
async def test_text_message_goes_to_pipeline():
    services = _services()

    await group_message_handler(_message(), services)

    sent = services.pipeline.process.await_args.args[0]
    assert (sent.message_id, sent.chat_id, sent.user_id) == (10, -100, 42)
    assert sent.text == "hello"
    assert sent.user_display_name == "@alice"
    assert sent.chat_title == "Group"


@pytest.mark.asyncio
async def test_caption_is_used_as_text():
    services = _services()

    await group_message_handler(_message(text=None, caption="photo caption", username=None), services)

    sent = services.pipeline.process.await_args.args[0]
    assert sent.text == "photo caption"
    assert sent.user_display_name == "Alice A"


@pytest.mark.asyncio
async def test_message_without_text_is_ignored():
    services = _services()

    await group_message_handler(_message(text=None), services)

    services.pipeline.process.assert_not_awaited()


def _chat_event(user_id=42, is_bot=False, chat_type=ChatType.SUPERGROUP):
    return SimpleNamespace(
        chat=SimpleNamespace(id=-100, type=chat_type, title="Group"),
        new_chat_member=SimpleNamespace(user=SimpleNamespace(id=user_id, is_bot=is_bot)),
    )


@pytest.mark.asyncio
async def test_banned_user_joining_gets_ban_synced():
    services = _services()
    services.user_actions.is_banned.return_value = True

    await member_joined(_chat_event(), services)

    services.orchestrator.sync_ban_to_chat.assert_awaited_once_with(42, -100)


@pytest.mark.asyncio
async def test_clean_user_joining_is_left_alone():
    services = _services()

    await member_joined(_chat_event(), services)

    services.orchestrator.sync_ban_to_chat.assert_not_awaited()


@pytest.mark.asyncio
async def test_bot_added_and_removed():
    services = _services()

    await bot_added_to_group(_chat_event(), services)
    await bot_removed_from_group(_chat_event(), services)

    services.chat_sync.on_bot_added.assert_awaited_once_with(-100, "Group")
    services.chat_sync.on_bot_removed.assert_awaited_once_with(-100)


@pytest.mark.asyncio
async def test_bot_added_to_private_chat_is_ignored():
    services = _services()

    await bot_added_to_group(_chat_event(chat_type=ChatType.PRIVATE), services)

    services.chat_sync.on_bot_added.assert_not_awaited()


@pytest.mark.asyncio
async def test_bot_rights_change_resyncs_admins_and_health():
    services = _services()

    await bot_rights_changed(_chat_event(), services)

    services.chat_sync.sync_admins.assert_awaited_once_with(-100)
    services.health_service.refresh_chat.assert_awaited_once_with(-100)


@pytest.mark.asyncio
async def test_bot_rights_change_failure_is_contained():
    services = _services()
    services.chat_sync.sync_admins.side_effect = RuntimeError("db down")

    await bot_rights_changed(_chat_event(), services)

    services.health_service.refresh_chat.assert_not_awaited()


@pytest.mark.asyncio
async def test_middleware_injects_services():
    services = _services()
    handler = AsyncMock(return_value="handled")

    result = await ServicesMiddleware(services)(handler, MagicMock(), {})

    assert result == "handled"
    assert handler.await_args.args[1]["services"] is services
