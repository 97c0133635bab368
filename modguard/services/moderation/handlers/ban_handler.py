# modguard/services/moderation/handlers/ban_handler.py
"""
Атомарные действия бана.

Каждое действие: применение через EnforcementExecutor по всем
управляемым чатам + запись в журнал user_actions. Доверие, аудит
и уведомления сюда не входят, их собирает оркестратор.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем replace для копии результата
from dataclasses import replace
# Импортируем datetime для временного бана
from datetime import timedelta
# Импортируем типы для аннотаций
from typing import Any, Dict, Optional

from modguard.database.models import utcnow
from modguard.services.enforcement.executor import EnforcementAction, EnforcementResult
from modguard.services.enforcement.job_scheduler import TEMPBAN_EXPIRY_JOB
from modguard.services.moderation.handlers.outcome import HandlerOutcome
from modguard.services.moderation.types import Actor, UserActionType


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

ADMIN_PROTECTED_ERROR = "User is an administrator in a managed chat"


def outcome_from_enforcement(result: EnforcementResult, action_label: str) -> HandlerOutcome:
    """
    Переводит итог кросс-чатового применения в результат действия.

    Частичный успех: успех. Отказ: только защита админа или
    ни одного успешного чата при наличии попыток.
    """
    if result.admin_protected:
        return HandlerOutcome.failed(ADMIN_PROTECTED_ERROR)
    if result.fail_count > 0 and result.success_count == 0:
        return HandlerOutcome.failed(
            f"{action_label} failed in all {result.fail_count} attempted chats",
            chats_failed=result.fail_count,
        )
    return HandlerOutcome.ok(chats_affected=result.success_count, chats_failed=result.fail_count)


class BanHandler:
    """
    Args:
        user_actions: UserActionsRepository
        enforcement: EnforcementExecutor
        scheduler: RedisJobScheduler (для истечения временного бана)
    """

    def __init__(self, user_actions, enforcement, scheduler=None):
        self._user_actions = user_actions
        self._enforcement = enforcement
        self._scheduler = scheduler

    async def _record(self, user_id: int, action_type: UserActionType, executor: Actor, **fields) -> bool:
        """
        Запись в журнал после применения на платформе.

        Действие уже применено на платформе: ошибка БД только
        логируется, результат False.
        """
        try:
            await self._user_actions.add_action(user_id, action_type, executor, **fields)
            return True
        except Exception as e:
            logger.error(
                f"[MODERATION] {action_type.value} для {user_id} применён, но запись в журнал не сохранена: {e}"
            )
            return False

    async def ban(
        self,
        user_id: int,
        executor: Actor,
        reason: str,
        message_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> HandlerOutcome:
        result = await self._enforcement.apply_across_managed_chats(
            user_id, EnforcementAction.ban(reason=reason)
        )
        outcome = outcome_from_enforcement(result, "Ban")
        if not outcome.success:
            logger.warning(f"[MODERATION] Бан {user_id} не выполнен: {outcome.error_message}")
            return outcome

        persisted = await self._record(
            user_id,
            UserActionType.BAN,
            executor,
            reason=reason,
            message_id=message_id,
            chat_id=chat_id,
        )
        logger.info(
            f"[MODERATION] {user_id} забанен ({executor}): {outcome.chats_affected} чатов, "
            f"{outcome.chats_failed} ошибок. Причина: {reason}"
        )
        return replace(outcome, record_persisted=persisted)

    async def temp_ban(
        self,
        user_id: int,
        executor: Actor,
        duration: timedelta,
        reason: str,
        message_id: Optional[int] = None,
    ) -> HandlerOutcome:
        expires_at = utcnow() + duration
        result = await self._enforcement.apply_across_managed_chats(
            user_id, EnforcementAction.ban(until_date=expires_at, reason=reason)
        )
        outcome = outcome_from_enforcement(result, "Temporary ban")
        if not outcome.success:
            return outcome

        persisted = await self._record(
            user_id,
            UserActionType.BAN,
            executor,
            reason=reason,
            message_id=message_id,
            expires_at=expires_at,
        )

        if self._scheduler is not None:
            try:
                await self._scheduler.schedule(
                    TEMPBAN_EXPIRY_JOB,
                    {"telegram_user_id": user_id, "expires_at": expires_at.isoformat()},
                    delay_seconds=int(duration.total_seconds()),
                )
            except Exception as e:
                # Платформа сама снимет бан по until_date
                logger.warning(f"[MODERATION] Не удалось запланировать окончание бана {user_id}: {e}")

        logger.info(f"[MODERATION] {user_id} временно забанен до {expires_at:%Y-%m-%d %H:%M} ({executor})")
        return HandlerOutcome.ok(
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            expires_at=expires_at,
            record_persisted=persisted,
        )

    async def unban(self, user_id: int, executor: Actor, reason: Optional[str] = None) -> HandlerOutcome:
        result = await self._enforcement.apply_across_managed_chats(
            user_id, EnforcementAction.unban(reason=reason)
        )
        outcome = outcome_from_enforcement(result, "Unban")
        if not outcome.success:
            return outcome

        persisted = await self._record(user_id, UserActionType.UNBAN, executor, reason=reason)
        logger.info(f"[MODERATION] {user_id} разбанен ({executor}) в {outcome.chats_affected} чатах")
        return replace(outcome, record_persisted=persisted)

    async def kick_from_chat(
        self,
        user_id: int,
        chat_id: int,
        executor: Actor,
        reason: Optional[str] = None,
    ) -> HandlerOutcome:
        """Кик из одного чата: бан и сразу разбан, пользователь может вернуться."""
        ok, error = await self._enforcement.apply_to_chat(chat_id, user_id, EnforcementAction.kick(reason=reason))
        if not ok:
            return HandlerOutcome.failed(error or "Kick failed", chats_failed=1)
        logger.info(f"[MODERATION] {user_id} кикнут из {chat_id} ({executor}): {reason}")
        return HandlerOutcome.ok(chats_affected=1)

    async def sync_ban_to_chat(self, user_id: int, chat_id: int) -> HandlerOutcome:
        """Применяет действующий бан в новом управляемом чате."""
        active_ban = await self._user_actions.get_active_ban(user_id)
        if active_ban is None:
            return HandlerOutcome.failed("User has no active ban")

        action = EnforcementAction.ban(until_date=active_ban.expires_at, reason=active_ban.reason)
        ok, error = await self._enforcement.apply_to_chat(chat_id, user_id, action)
        if not ok:
            return HandlerOutcome.failed(error or "Ban sync failed", chats_failed=1)
        logger.info(f"[MODERATION] Бан {user_id} синхронизирован в чат {chat_id}")
        return HandlerOutcome.ok(chats_affected=1)

    async def handle_tempban_expiry(self, payload: Dict[str, Any]) -> None:
        """Обработчик задачи TempbanExpiry."""
        user_id = int(payload["telegram_user_id"])
        if await self._user_actions.is_banned(user_id):
            # Поверх временного бана уже стоит другой (например, постоянный)
            logger.info(f"[MODERATION] Окончание временного бана {user_id}: действует другой бан, пропуск")
            return

        result = await self._enforcement.apply_across_managed_chats(user_id, EnforcementAction.unban())
        logger.info(
            f"[MODERATION] Временный бан {user_id} истёк "
            f"(до {payload.get('expires_at')}), снят в {result.success_count} чатах"
        )
