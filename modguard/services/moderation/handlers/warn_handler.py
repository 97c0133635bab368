# modguard/services/moderation/handlers/warn_handler.py
"""Предупреждения: запись в журнал и подсчёт действующих."""

import logging
from datetime import datetime
from typing import Optional

from modguard.services.moderation.handlers.outcome import HandlerOutcome
from modguard.services.moderation.types import Actor, UserActionType

logger = logging.getLogger(__name__)


class WarnHandler:
    def __init__(self, user_actions):
        self._user_actions = user_actions

    async def warn(
        self,
        user_id: int,
        executor: Actor,
        reason: Optional[str] = None,
        message_id: Optional[int] = None,
        chat_id: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> HandlerOutcome:
        await self._user_actions.add_action(
            user_id,
            UserActionType.WARN,
            executor,
            reason=reason,
            message_id=message_id,
            chat_id=chat_id,
            expires_at=expires_at,
        )
        # Считаем после записи, чтобы новое предупреждение вошло в счёт
        count = await self._user_actions.get_active_warning_count(user_id)
        logger.info(f"[MODERATION] Предупреждение {user_id} ({executor}), всего действующих: {count}")
        return HandlerOutcome.ok(warning_count=count)
