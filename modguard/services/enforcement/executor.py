# modguard/services/enforcement/executor.py
"""
Кросс-чатовое применение действий.

Применяет бан/мут/разбан во всех управляемых чатах:
- Глобальная защита админов (админ хотя бы в одном чате: не трогаем нигде)
- Пропуск чатов, где у бота нет прав (по кэшу здоровья)
- Сбой в одном чате не прерывает обход остальных
- Планирование очистки сообщений после бана с подавлением дубликатов

Применение best-effort: частичный успех (5 из 7 чатов):
нормальный итог, ничего не откатывается.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем enum для типов действий
import enum
# Импортируем dataclass для описания действий и результатов
from dataclasses import dataclass, field
# Импортируем datetime для работы со временем
from datetime import datetime
# Импортируем типы для аннотаций
from typing import Dict, List, Optional, Tuple

# Импортируем ошибки aiogram
from aiogram.exceptions import TelegramAPIError

from modguard.config import CLEANUP_JOB_DELAY_SECONDS
from modguard.services.enforcement.cleanup_dedup import CleanupJobDeduplicator
from modguard.services.enforcement.health import ChatHealthCache
from modguard.services.enforcement.job_scheduler import DELETE_USER_MESSAGES_JOB


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# ОПИСАНИЕ ДЕЙСТВИЯ
# ═══════════════════════════════════════════════════════════════════════════
class EnforcementActionType(str, enum.Enum):
    BAN = "ban"
    RESTRICT = "restrict"
    UNBAN = "unban"
    RESTORE = "restore"
    KICK = "kick"


# Действия, от которых админы защищены глобально
PUNITIVE_ACTIONS = frozenset({
    EnforcementActionType.BAN,
    EnforcementActionType.RESTRICT,
    EnforcementActionType.KICK,
})


@dataclass(frozen=True)
class EnforcementAction:
    """
    Что применить в каждом чате.

    Attributes:
        action_type: Вид действия
        until_date: Окончание бана/мута (None: бессрочно)
        reason: Причина (для логов)
    """
    action_type: EnforcementActionType
    until_date: Optional[datetime] = None
    reason: Optional[str] = None

    @classmethod
    def ban(cls, until_date: Optional[datetime] = None, reason: Optional[str] = None) -> "EnforcementAction":
        return cls(EnforcementActionType.BAN, until_date=until_date, reason=reason)

    @classmethod
    def restrict(cls, until_date: Optional[datetime] = None, reason: Optional[str] = None) -> "EnforcementAction":
        return cls(EnforcementActionType.RESTRICT, until_date=until_date, reason=reason)

    @classmethod
    def unban(cls, reason: Optional[str] = None) -> "EnforcementAction":
        return cls(EnforcementActionType.UNBAN, reason=reason)

    @classmethod
    def restore(cls, reason: Optional[str] = None) -> "EnforcementAction":
        return cls(EnforcementActionType.RESTORE, reason=reason)

    @classmethod
    def kick(cls, reason: Optional[str] = None) -> "EnforcementAction":
        return cls(EnforcementActionType.KICK, reason=reason)

    @property
    def is_punitive(self) -> bool:
        return self.action_type in PUNITIVE_ACTIONS


@dataclass(frozen=True)
class EnforcementResult:
    """
    Итог применения по всем чатам.

    Attributes:
        success_count: В скольких чатах действие применено
        failed_chats: {chat_id: текст ошибки}
        skipped_count: Пропущено чатов по здоровью
        admin_protected: Применение отменено: пользователь админ
        total_active: Активных управляемых чатов
        cleanup_scheduled: Запланирована ли очистка сообщений
    """
    success_count: int = 0
    failed_chats: Dict[int, str] = field(default_factory=dict)
    skipped_count: int = 0
    admin_protected: bool = False
    total_active: int = 0
    cleanup_scheduled: bool = False

    @property
    def fail_count(self) -> int:
        return len(self.failed_chats)

    @property
    def chats_affected(self) -> int:
        return self.success_count


# ═══════════════════════════════════════════════════════════════════════════
# ИСПОЛНИТЕЛЬ
# ═══════════════════════════════════════════════════════════════════════════
class EnforcementExecutor:
    """
    Args:
        chats_repository: list_active() -> [ManagedChat]
        admins_repository: chats_where_admin(user_id) -> [chat_id]
        platform: TelegramPlatformOperations
        health_cache: ChatHealthCache
        scheduler: объект с методом schedule(job_name, payload, delay_seconds)
        deduplicator: CleanupJobDeduplicator
        cleanup_delay_seconds: задержка задачи очистки
    """

    def __init__(
        self,
        chats_repository,
        admins_repository,
        platform,
        health_cache: ChatHealthCache,
        scheduler,
        deduplicator: Optional[CleanupJobDeduplicator] = None,
        cleanup_delay_seconds: int = CLEANUP_JOB_DELAY_SECONDS,
    ):
        self._chats_repository = chats_repository
        self._admins_repository = admins_repository
        self._platform = platform
        self._health_cache = health_cache
        self._scheduler = scheduler
        self._deduplicator = deduplicator or CleanupJobDeduplicator()
        self._cleanup_delay_seconds = cleanup_delay_seconds

    async def apply_across_managed_chats(self, user_id: int, action: EnforcementAction) -> EnforcementResult:
        # ═══════════════════════════════════════════════════════════
        # ШАГ 1: АКТИВНЫЕ ЧАТЫ
        # ═══════════════════════════════════════════════════════════
        active_chats = await self._chats_repository.list_active()
        active_ids = [chat.chat_id for chat in active_chats]

        # ═══════════════════════════════════════════════════════════
        # ШАГ 2: ЗАЩИТА АДМИНОВ (глобально, а не по чату)
        # ═══════════════════════════════════════════════════════════
        if action.is_punitive:
            admin_chats = await self._admins_repository.chats_where_admin(user_id)
            if admin_chats:
                logger.info(
                    f"[ENFORCE] Пропуск {action.action_type.value} для {user_id}: "
                    f"админ в {len(admin_chats)} управляемых чатах"
                )
                return EnforcementResult(admin_protected=True, total_active=len(active_ids))

        # ═══════════════════════════════════════════════════════════
        # ШАГ 3: ФИЛЬТР ПО ЗДОРОВЬЮ
        # ═══════════════════════════════════════════════════════════
        actionable = self._health_cache.filter_healthy(active_ids)
        actionable_set = set(actionable)
        skipped = [chat_id for chat_id in active_ids if chat_id not in actionable_set]
        if skipped:
            logger.warning(
                f"[ENFORCE] Пропущено {len(skipped)} нездоровых чатов для {action.action_type.value}: "
                f"{', '.join(str(c) for c in skipped)}. У бота нет прав (админ + бан участников)."
            )

        logger.info(
            f"[ENFORCE] Применяем {action.action_type.value} к {user_id} в {len(actionable)} чатах "
            f"({len(skipped)} пропущено по здоровью)"
        )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 4: ПРИМЕНЯЕМ В КАЖДОМ ЧАТЕ НЕЗАВИСИМО
        # ═══════════════════════════════════════════════════════════
        success_count = 0
        failed_chats: Dict[int, str] = {}

        for chat_id in actionable:
            ok, error = await self.apply_to_chat(chat_id, user_id, action)
            if ok:
                success_count += 1
            else:
                failed_chats[chat_id] = error

        logger.info(
            f"[ENFORCE] {action.action_type.value} для {user_id}: "
            f"{success_count}/{len(actionable)} успешно, {len(failed_chats)} ошибок"
        )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 5: ОЧИСТКА СООБЩЕНИЙ ПОСЛЕ БАНА
        # ═══════════════════════════════════════════════════════════
        # Пользователь нигде не забанен: его сообщения не трогаем
        cleanup_scheduled = False
        if action.action_type == EnforcementActionType.BAN and success_count > 0:
            cleanup_scheduled = await self.schedule_message_cleanup(user_id)

        return EnforcementResult(
            success_count=success_count,
            failed_chats=failed_chats,
            skipped_count=len(skipped),
            total_active=len(active_ids),
            cleanup_scheduled=cleanup_scheduled,
        )

    async def apply_to_chat(self, chat_id: int, user_id: int, action: EnforcementAction) -> Tuple[bool, Optional[str]]:
        """
        Применяет действие в одном чате.

        Returns:
            (успех, текст ошибки)
        """
        try:
            if action.action_type == EnforcementActionType.BAN:
                await self._platform.ban(chat_id, user_id, until_date=action.until_date)
            elif action.action_type == EnforcementActionType.RESTRICT:
                await self._platform.restrict(chat_id, user_id, until_date=action.until_date)
            elif action.action_type == EnforcementActionType.UNBAN:
                await self._platform.unban(chat_id, user_id, only_if_banned=True)
            elif action.action_type == EnforcementActionType.RESTORE:
                await self._platform.restore_permissions(chat_id, user_id)
            elif action.action_type == EnforcementActionType.KICK:
                # Кик = бан и сразу разбан, чтобы мог вернуться
                await self._platform.ban(chat_id, user_id, revoke_messages=False)
                await self._platform.unban(chat_id, user_id, only_if_banned=True)
            logger.debug(f"[ENFORCE] {action.action_type.value} {user_id} в {chat_id}: ок")
            return True, None
        except TelegramAPIError as e:
            logger.error(f"[ENFORCE] Ошибка {action.action_type.value} {user_id} в {chat_id}: {e}")
            return False, str(e)
        except Exception as e:
            # Любой сбой в одном чате не должен прерывать обход остальных
            logger.error(f"[ENFORCE] Непредвиденная ошибка {action.action_type.value} {user_id} в {chat_id}: {e}")
            return False, str(e)

    async def schedule_message_cleanup(self, user_id: int) -> bool:
        """
        Планирует удаление всех сообщений пользователя во всех чатах.

        Не чаще одной задачи на пользователя в окне дедупликации.

        Returns:
            True если задача запланирована сейчас
        """
        if not self._deduplicator.try_acquire(user_id):
            logger.debug(f"[ENFORCE] Очистка для {user_id} уже запланирована недавно, пропуск")
            return False

        try:
            job_id = await self._scheduler.schedule(
                DELETE_USER_MESSAGES_JOB,
                {"telegram_user_id": user_id},
                delay_seconds=self._cleanup_delay_seconds,
            )
        except Exception as e:
            # Бан уже применён, задача очистки вторична
            self._deduplicator.release(user_id)
            logger.warning(f"[ENFORCE] Не удалось запланировать очистку сообщений {user_id}: {e}")
            return False

        logger.info(
            f"[ENFORCE] Запланирована очистка сообщений {user_id} "
            f"через {self._cleanup_delay_seconds}с (job {job_id})"
        )
        return True

    async def active_chat_ids(self) -> List[int]:
        return [chat.chat_id for chat in await self._chats_repository.list_active()]
