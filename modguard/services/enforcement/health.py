# ═══════════════════════════════════════════════════════════════════════════
# ЗДОРОВЬЕ УПРАВЛЯЕМЫХ ЧАТОВ
# ═══════════════════════════════════════════════════════════════════════════
# Кэш "chat_id → последний известный статус прав бота".
# Пишет фоновый обход (ChatHealthService.refresh), читает
# EnforcementExecutor. Отсутствующая запись = "не применять".
# ═══════════════════════════════════════════════════════════════════════════

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from aiogram.exceptions import TelegramAPIError

from modguard.database.models import utcnow

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class ChatHealth:
    """
    Снимок прав бота в чате.

    Attributes:
        is_admin: Бот: администратор (или создатель)
        can_restrict_members: Может банить/ограничивать участников
        can_delete_messages: Может удалять сообщения
        checked_at: Время проверки
        error: Текст ошибки API, если проверка не удалась
    """
    is_admin: bool = False
    can_restrict_members: bool = False
    can_delete_messages: bool = False
    checked_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def can_enforce(self) -> bool:
        # Для бана/мута нужны админка и право ограничивать
        return self.is_admin and self.can_restrict_members and self.error is None

    @property
    def status(self) -> str:
        return HEALTHY if self.can_enforce else UNHEALTHY


class ChatHealthCache:
    """Потокобезопасный кэш здоровья чатов; создаётся один раз при старте процесса."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[int, ChatHealth] = {}

    def set(self, chat_id: int, health: ChatHealth) -> None:
        with self._lock:
            self._entries[chat_id] = health

    def get(self, chat_id: int) -> Optional[ChatHealth]:
        with self._lock:
            return self._entries.get(chat_id)

    def remove(self, chat_id: int) -> None:
        with self._lock:
            self._entries.pop(chat_id, None)

    def is_healthy(self, chat_id: int) -> bool:
        health = self.get(chat_id)
        return health is not None and health.can_enforce

    def filter_healthy(self, chat_ids: Iterable[int]) -> List[int]:
        """Оставляет только чаты, где бот точно может применять действия."""
        with self._lock:
            return [
                chat_id for chat_id in chat_ids
                if chat_id in self._entries and self._entries[chat_id].can_enforce
            ]


def health_from_member(member) -> ChatHealth:
    """Строит ChatHealth из ChatMember бота (aiogram)."""
    status = getattr(member, "status", None)
    status = getattr(status, "value", status)

    if status == "creator":
        # Создатель чата может всё
        return ChatHealth(is_admin=True, can_restrict_members=True, can_delete_messages=True, checked_at=utcnow())

    if status == "administrator":
        return ChatHealth(
            is_admin=True,
            can_restrict_members=bool(getattr(member, "can_restrict_members", False)),
            can_delete_messages=bool(getattr(member, "can_delete_messages", False)),
            checked_at=utcnow(),
        )

    return ChatHealth(checked_at=utcnow())


class ChatHealthService:
    """
    Фоновый пересчёт здоровья чатов.

    Args:
        platform: TelegramPlatformOperations (нужен get_bot_member)
        cache: ChatHealthCache
        chats_repository: ManagedChatsRepository
    """

    def __init__(self, platform, cache: ChatHealthCache, chats_repository):
        self._platform = platform
        self._cache = cache
        self._chats_repository = chats_repository

    @property
    def cache(self) -> ChatHealthCache:
        return self._cache

    async def refresh_chat(self, chat_id: int) -> ChatHealth:
        try:
            member = await self._platform.get_bot_member(chat_id)
            health = health_from_member(member)
        except TelegramAPIError as e:
            logger.warning(f"[HEALTH] Не удалось проверить права бота в {chat_id}: {e}")
            health = ChatHealth(checked_at=utcnow(), error=str(e))

        self._cache.set(chat_id, health)

        try:
            await self._chats_repository.update_health_status(chat_id, health.status)
        except Exception as e:
            # Кэш уже обновлён, запись статуса в БД вторична
            logger.error(f"[HEALTH] Ошибка сохранения статуса чата {chat_id}: {e}")

        if not health.can_enforce:
            logger.warning(
                f"[HEALTH] Чат {chat_id} нездоров: admin={health.is_admin}, "
                f"can_restrict={health.can_restrict_members}, error={health.error}"
            )
        return health

    async def refresh(self, chat_ids: Iterable[int]) -> Dict[int, ChatHealth]:
        results = {}
        for chat_id in chat_ids:
            results[chat_id] = await self.refresh_chat(chat_id)
        return results

    async def refresh_all(self) -> Dict[int, ChatHealth]:
        chats = await self._chats_repository.list_active()
        results = await self.refresh([chat.chat_id for chat in chats])

        healthy = sum(1 for h in results.values() if h.can_enforce)
        logger.info(f"[HEALTH] Проверено чатов: {len(results)}, здоровых: {healthy}")
        return results

    async def run_periodic(self, interval_seconds: int) -> None:
        """Бесконечный цикл обхода; останавливается отменой задачи."""
        while True:
            try:
                await self.refresh_all()
            except Exception as e:
                logger.error(f"[HEALTH] Ошибка фонового обхода: {e}")
            await asyncio.sleep(interval_seconds)
