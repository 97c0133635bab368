# modguard/services/moderation/handlers/message_handler.py
"""
Сообщения: бэкфилл истории, удаление одного сообщения и
очистка всех сообщений пользователя (задача DeleteUserMessages).
"""

# Импортируем логгер для записи событий
import logging
# Импортируем defaultdict для группировки по чатам
from collections import defaultdict
# Импортируем типы для аннотаций
from typing import Any, Dict, List, Optional

# Импортируем ошибки aiogram
from aiogram.exceptions import TelegramAPIError

from modguard.services.moderation.types import Actor


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


class MessageHandler:
    """
    Args:
        messages: MessagesRepository
        platform: TelegramPlatformOperations
    """

    def __init__(self, messages, platform):
        self._messages = messages
        self._platform = platform

    async def ensure_exists(
        self,
        chat_id: int,
        message_id: int,
        user_id: Optional[int],
        text: Optional[str],
    ) -> bool:
        """
        Гарантирует наличие сообщения в истории.

        Сообщение могло прийти до запуска бота или до сохранения
        в БД, а отчёт и обучающий образец ссылаются на него.

        Returns:
            True если запись была создана сейчас
        """
        _, created = await self._messages.save_message(chat_id, message_id, user_id, text)
        if created:
            logger.debug(f"[MODERATION] Бэкфилл сообщения {message_id} в {chat_id}")
        return created

    async def delete(self, chat_id: int, message_id: int, executor: Actor, reason: Optional[str] = None) -> bool:
        """Удаляет сообщение в чате и помечает его удалённым в истории."""
        try:
            await self._platform.delete_message(chat_id, message_id)
        except TelegramAPIError as e:
            # Сообщение уже удалено или у бота нет прав
            logger.warning(f"[MODERATION] Не удалось удалить сообщение {message_id} в {chat_id}: {e}")
            return False

        try:
            await self._messages.mark_deleted(chat_id, message_id, source=executor.type.value)
        except Exception as e:
            logger.error(f"[MODERATION] Ошибка пометки удаления {message_id} в {chat_id}: {e}")

        logger.info(f"[MODERATION] Сообщение {message_id} в {chat_id} удалено ({executor}): {reason}")
        return True

    async def delete_all_user_messages(self, user_id: int) -> int:
        """
        Удаляет все сохранённые сообщения пользователя во всех чатах.

        Returns:
            Количество удалённых сообщений
        """
        records = await self._messages.list_user_messages(user_id)
        by_chat: Dict[int, List[int]] = defaultdict(list)
        for record in records:
            by_chat[record.chat_id].append(record.message_id)

        total = 0
        for chat_id, message_ids in by_chat.items():
            try:
                deleted = await self._platform.delete_messages(chat_id, message_ids)
            except TelegramAPIError as e:
                logger.warning(f"[MODERATION] Очистка сообщений {user_id} в {chat_id} не удалась: {e}")
                continue
            total += deleted
            for message_id in message_ids:
                await self._messages.mark_deleted(chat_id, message_id, source="cleanup")

        logger.info(f"[MODERATION] Очистка сообщений {user_id}: удалено {total} в {len(by_chat)} чатах")
        return total

    async def handle_cleanup_job(self, payload: Dict[str, Any]) -> None:
        """Обработчик задачи DeleteUserMessages."""
        await self.delete_all_user_messages(int(payload["telegram_user_id"]))
