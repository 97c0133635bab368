# group_events.py
# Добавление/удаление бота из группы и вход участников
import logging

from aiogram import Router, types
from aiogram.enums import ChatType
from aiogram.filters import ChatMemberUpdatedFilter, IS_MEMBER, IS_NOT_MEMBER

from modguard.services.container import ModerationServices

logger = logging.getLogger(__name__)

group_events_router = Router(name="group_events")


@group_events_router.my_chat_member(ChatMemberUpdatedFilter(member_status_changed=IS_NOT_MEMBER >> IS_MEMBER))
async def bot_added_to_group(event: types.ChatMemberUpdated, services: ModerationServices):
    chat = event.chat
    if chat.type == ChatType.PRIVATE:
        return

    logger.info(f"Бот добавлен в группу {chat.title} (ID: {chat.id})")
    try:
        health = await services.chat_sync.on_bot_added(chat.id, chat.title)
    except Exception as e:
        logger.error(f"❌ Ошибка синхронизации группы {chat.id}: {e}")
        return

    if not health.can_enforce:
        logger.warning(f"⚠️ В группе {chat.title} ({chat.id}) у бота нет прав на бан, исполнение выключено")


@group_events_router.my_chat_member(ChatMemberUpdatedFilter(member_status_changed=IS_MEMBER >> IS_MEMBER))
async def bot_rights_changed(event: types.ChatMemberUpdated, services: ModerationServices):
    # Бота повысили/понизили: права и список админов нужно перечитать
    if event.chat.type == ChatType.PRIVATE:
        return
    try:
        await services.chat_sync.sync_admins(event.chat.id)
        await services.health_service.refresh_chat(event.chat.id)
    except Exception as e:
        logger.error(f"❌ Ошибка обновления прав в группе {event.chat.id}: {e}")


@group_events_router.my_chat_member(ChatMemberUpdatedFilter(member_status_changed=IS_MEMBER >> IS_NOT_MEMBER))
async def bot_removed_from_group(event: types.ChatMemberUpdated, services: ModerationServices):
    """
    Удаление бота из группы.

    Группу из БД не удаляем: при повторном добавлении запись реактивируется.
    """
    logger.info(f"🗑️ Бот удалён из группы {event.chat.title} (ID: {event.chat.id})")
    try:
        await services.chat_sync.on_bot_removed(event.chat.id)
    except Exception as e:
        logger.error(f"❌ Ошибка деактивации группы {event.chat.id}: {e}")


@group_events_router.chat_member(ChatMemberUpdatedFilter(member_status_changed=IS_NOT_MEMBER >> IS_MEMBER))
async def member_joined(event: types.ChatMemberUpdated, services: ModerationServices):
    # Забаненный в одном чате не должен попасть в другой управляемый чат
    user = event.new_chat_member.user
    if user.is_bot:
        return
    if not await services.user_actions.is_banned(user.id):
        return

    result = await services.orchestrator.sync_ban_to_chat(user.id, event.chat.id)
    if result.success:
        logger.info(f"🚫 Активный бан {user.id} применён при входе в {event.chat.id}")
    else:
        logger.warning(f"⚠️ Не удалось применить бан {user.id} в {event.chat.id}: {result.error_message}")
