# modguard/services/chat_sync.py
"""
Синхронизация управляемых чатов: запись чата, администраторы, здоровье.

Вызывается при изменении статуса бота в группе (my_chat_member).
"""

import logging
from typing import List

from aiogram.exceptions import TelegramAPIError

from modguard.services.enforcement.health import ChatHealth, ChatHealthService

logger = logging.getLogger(__name__)


class ChatSyncService:
    """
    Args:
        platform: TelegramPlatformOperations
        chats_repository: ManagedChatsRepository
        admins_repository: ChatAdminsRepository
        health_service: ChatHealthService
    """

    def __init__(self, platform, chats_repository, admins_repository, health_service: ChatHealthService):
        self._platform = platform
        self._chats = chats_repository
        self._admins = admins_repository
        self._health = health_service

    async def on_bot_added(self, chat_id: int, title: str) -> ChatHealth:
        chat, created = await self._chats.upsert_chat(chat_id, title)
        logger.info(f"[SYNC] Чат {title} ({chat_id}) {'добавлен' if created else 'реактивирован'}")
        await self.sync_admins(chat_id)
        return await self._health.refresh_chat(chat_id)

    async def on_bot_removed(self, chat_id: int) -> None:
        # Запись чата не удаляем, только выключаем из кросс-чат исполнения
        await self._chats.mark_inactive(chat_id)
        self._health.cache.remove(chat_id)
        logger.info(f"[SYNC] Чат {chat_id} помечен неактивным")

    async def sync_admins(self, chat_id: int) -> List[int]:
        """Обновляет список админов чата; возвращает их telegram id."""
        try:
            members = await self._platform.get_chat_administrators(chat_id)
        except TelegramAPIError as e:
            logger.warning(f"[SYNC] Не удалось получить админов {chat_id}: {e}")
            return []

        bot_id = await self._platform.get_bot_id()
        current = []
        for member in members:
            user = member.user
            if user.is_bot or user.id == bot_id:
                continue
            status = getattr(member.status, "value", member.status)
            await self._admins.upsert_admin(
                chat_id,
                user.id,
                username=user.username,
                is_creator=status == "creator",
            )
            current.append(user.id)

        # Разжалованные админы больше не защищены от исполнения
        for admin in await self._admins.get_chat_admins(chat_id):
            if admin.telegram_id not in current:
                await self._admins.deactivate_admin(chat_id, admin.telegram_id)

        logger.info(f"[SYNC] Админы чата {chat_id}: {len(current)}")
        return current
