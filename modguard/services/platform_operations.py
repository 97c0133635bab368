# modguard/services/platform_operations.py
"""
Операции платформы (Telegram Bot API через aiogram).

Один вызов: одно действие в одном чате. Ошибки API
(TelegramAPIError) пробрасываются: их ловит вызывающий код
по каждому чату, чтобы сбой в одном чате не прерывал обход.
Сетевые сбои повторяются через with_retry.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем datetime для работы со временем
from datetime import datetime, timedelta, timezone
# Импортируем asyncio для пауз между чанками
import asyncio
# Импортируем типы для аннотаций
from typing import List, Optional

# Импортируем типы aiogram
from aiogram import Bot
from aiogram.types import ChatPermissions
from aiogram.exceptions import TelegramAPIError

from modguard.utils.retry_utils import with_retry


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Telegram считает ограничение дольше 366 дней бессрочным
MAX_RESTRICTION = timedelta(days=366)

# Ограничения "нельзя ничего" для мута
MUTED_PERMISSIONS = ChatPermissions(
    can_send_messages=False,
    can_send_audios=False,
    can_send_documents=False,
    can_send_photos=False,
    can_send_videos=False,
    can_send_video_notes=False,
    can_send_voice_notes=False,
    can_send_polls=False,
    can_send_other_messages=False,
    can_add_web_page_previews=False,
    can_change_info=False,
    can_invite_users=False,
    can_pin_messages=False,
    can_manage_topics=False,
)

# Стандартные права участника для снятия мута
DEFAULT_MEMBER_PERMISSIONS = ChatPermissions(
    can_send_messages=True,
    can_send_audios=True,
    can_send_documents=True,
    can_send_photos=True,
    can_send_videos=True,
    can_send_video_notes=True,
    can_send_voice_notes=True,
    can_send_polls=True,
    can_send_other_messages=True,
    can_add_web_page_previews=True,
    can_invite_users=True,
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # В БД время хранится naive UTC, aiogram считает naive локальным
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class TelegramPlatformOperations:
    """Обёртка над aiogram Bot с retry и единым интерфейсом для ядра."""

    def __init__(self, bot: Bot):
        self._bot = bot
        self._bot_id: Optional[int] = None

    @property
    def bot(self) -> Bot:
        return self._bot

    async def get_bot_id(self) -> int:
        if self._bot_id is None:
            me = await self._bot.me()
            self._bot_id = me.id
        return self._bot_id

    @with_retry(max_retries=2)
    async def ban(
        self,
        chat_id: int,
        user_id: int,
        until_date: Optional[datetime] = None,
        revoke_messages: bool = True,
    ) -> None:
        # until_date=None: бессрочный бан
        await self._bot.ban_chat_member(
            chat_id=chat_id,
            user_id=user_id,
            until_date=_as_utc(until_date),
            revoke_messages=revoke_messages,
        )

    @with_retry(max_retries=2)
    async def unban(self, chat_id: int, user_id: int, only_if_banned: bool = True) -> None:
        await self._bot.unban_chat_member(
            chat_id=chat_id,
            user_id=user_id,
            only_if_banned=only_if_banned,
        )

    @with_retry(max_retries=2)
    async def restrict(
        self,
        chat_id: int,
        user_id: int,
        permissions: Optional[ChatPermissions] = None,
        until_date: Optional[datetime] = None,
    ) -> None:
        if until_date is None:
            # Мут навсегда (366 дней: максимум Telegram)
            until_date = datetime.now(timezone.utc) + MAX_RESTRICTION
        await self._bot.restrict_chat_member(
            chat_id=chat_id,
            user_id=user_id,
            permissions=permissions or MUTED_PERMISSIONS,
            until_date=_as_utc(until_date),
        )

    async def restore_permissions(self, chat_id: int, user_id: int) -> None:
        await self.restrict(chat_id, user_id, permissions=DEFAULT_MEMBER_PERMISSIONS, until_date=None)

    @with_retry(max_retries=2)
    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._bot.delete_message(chat_id=chat_id, message_id=message_id)

    async def delete_messages(self, chat_id: int, message_ids: List[int]) -> int:
        """
        Удаляет сообщения пачками по 100 (Bot API 6.5+).

        Returns:
            int: Количество успешно удалённых сообщений
        """
        if not message_ids:
            return 0

        deleted_count = 0
        for i in range(0, len(message_ids), 100):
            chunk = message_ids[i:i + 100]
            try:
                await self._bot.delete_messages(chat_id=chat_id, message_ids=chunk)
                deleted_count += len(chunk)
            except TelegramAPIError as e:
                # Если пачкой не вышло: удаляем по одному
                logger.warning(f"delete_messages не удалось в {chat_id} ({e}), удаляем по одному")
                for msg_id in chunk:
                    try:
                        await self._bot.delete_message(chat_id=chat_id, message_id=msg_id)
                        deleted_count += 1
                    except TelegramAPIError as inner:
                        # Сообщение уже удалено или недоступно
                        logger.debug(f"Сообщение {msg_id} в {chat_id} не удалено: {inner}")
            # Небольшая задержка чтобы не упереться в лимиты
            await asyncio.sleep(0.1)
        return deleted_count

    @with_retry(max_retries=2)
    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: Optional[int] = None,
    ):
        return await self._bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode="HTML",
            reply_to_message_id=reply_to_message_id,
            disable_web_page_preview=True,
        )

    async def get_bot_member(self, chat_id: int):
        """Членство самого бота в чате (для проверки здоровья)."""
        bot_id = await self.get_bot_id()
        return await self._bot.get_chat_member(chat_id=chat_id, user_id=bot_id)

    @with_retry(max_retries=2)
    async def get_chat_administrators(self, chat_id: int):
        return await self._bot.get_chat_administrators(chat_id=chat_id)
