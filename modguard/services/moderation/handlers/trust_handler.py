# modguard/services/moderation/handlers/trust_handler.py
"""
Доверие пользователя.

Статус не хранится флагом: это последняя неистёкшая запись
TRUST/UNTRUST в журнале user_actions.
"""

import logging
from typing import Optional

from modguard.services.moderation.handlers.outcome import HandlerOutcome
from modguard.services.moderation.types import Actor, UserActionType

logger = logging.getLogger(__name__)


class TrustHandler:
    def __init__(self, user_actions):
        self._user_actions = user_actions

    async def trust(self, user_id: int, executor: Actor, reason: Optional[str] = None) -> HandlerOutcome:
        await self._user_actions.add_action(user_id, UserActionType.TRUST, executor, reason=reason)
        logger.info(f"[MODERATION] {user_id} отмечен доверенным ({executor})")
        return HandlerOutcome.ok()

    async def untrust(self, user_id: int, executor: Actor, reason: Optional[str] = None) -> HandlerOutcome:
        await self._user_actions.add_action(user_id, UserActionType.UNTRUST, executor, reason=reason)
        logger.info(f"[MODERATION] Доверие {user_id} снято ({executor})")
        return HandlerOutcome.ok()

    async def is_trusted(self, user_id: int) -> bool:
        return await self._user_actions.is_trusted(user_id)
