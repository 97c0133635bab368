# modguard/services/moderation/handlers/restrict_handler.py
"""
Ограничения (мут).

chat_id=0: глобальное ограничение во всех управляемых чатах,
иначе: только в указанном чате.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем datetime для срока ограничения
from datetime import timedelta
# Импортируем типы для аннотаций
from typing import Optional

from modguard.database.models import utcnow
from modguard.services.enforcement.executor import EnforcementAction
from modguard.services.moderation.handlers.ban_handler import outcome_from_enforcement
from modguard.services.moderation.handlers.outcome import HandlerOutcome
from modguard.services.moderation.types import Actor, UserActionType


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Идентификатор "все чаты" в журнале ограничений
GLOBAL_CHAT_ID = 0


class RestrictHandler:
    """
    Args:
        user_actions: UserActionsRepository
        enforcement: EnforcementExecutor
    """

    def __init__(self, user_actions, enforcement):
        self._user_actions = user_actions
        self._enforcement = enforcement

    async def restrict(
        self,
        user_id: int,
        chat_id: int,
        executor: Actor,
        duration: Optional[timedelta] = None,
        reason: Optional[str] = None,
        message_id: Optional[int] = None,
    ) -> HandlerOutcome:
        expires_at = utcnow() + duration if duration else None
        action = EnforcementAction.restrict(until_date=expires_at, reason=reason)

        # ═══════════════════════════════════════════════════════════
        # ПРИМЕНЕНИЕ: ГЛОБАЛЬНО ИЛИ В ОДНОМ ЧАТЕ
        # ═══════════════════════════════════════════════════════════
        if chat_id == GLOBAL_CHAT_ID:
            result = await self._enforcement.apply_across_managed_chats(user_id, action)
            outcome = outcome_from_enforcement(result, "Restriction")
        else:
            ok, error = await self._enforcement.apply_to_chat(chat_id, user_id, action)
            outcome = (
                HandlerOutcome.ok(chats_affected=1)
                if ok
                else HandlerOutcome.failed(error or "Restriction failed", chats_failed=1)
            )

        if not outcome.success:
            logger.warning(f"[MODERATION] Ограничение {user_id} (чат {chat_id}) не выполнено: {outcome.error_message}")
            return outcome

        await self._user_actions.add_action(
            user_id,
            UserActionType.RESTRICT,
            executor,
            reason=reason,
            message_id=message_id,
            chat_id=chat_id,
            expires_at=expires_at,
        )
        logger.info(
            f"[MODERATION] {user_id} ограничен ({executor}) "
            f"{'глобально' if chat_id == GLOBAL_CHAT_ID else f'в {chat_id}'} "
            f"до {expires_at or 'бессрочно'}"
        )
        return HandlerOutcome.ok(
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            expires_at=expires_at,
        )

    async def restore_permissions(
        self,
        user_id: int,
        chat_id: Optional[int],
        executor: Actor,
        reason: Optional[str] = None,
    ) -> HandlerOutcome:
        """Снимает ограничение; chat_id=None: во всех чатах."""
        if chat_id is None:
            result = await self._enforcement.apply_across_managed_chats(user_id, EnforcementAction.restore(reason=reason))
            outcome = outcome_from_enforcement(result, "Restore permissions")
        else:
            ok, error = await self._enforcement.apply_to_chat(chat_id, user_id, EnforcementAction.restore(reason=reason))
            outcome = (
                HandlerOutcome.ok(chats_affected=1)
                if ok
                else HandlerOutcome.failed(error or "Restore permissions failed", chats_failed=1)
            )

        if not outcome.success:
            return outcome

        expired = await self._user_actions.expire_restrictions(user_id, chat_id)
        logger.info(f"[MODERATION] Права {user_id} восстановлены ({executor}), закрыто ограничений: {expired}")
        return outcome
