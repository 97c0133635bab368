# modguard/services/moderation/handlers/audit_handler.py
"""Журнал аудита. Ошибка записи не отменяет действие модерации."""

import logging
from typing import Optional

from modguard.services.moderation.types import Actor

logger = logging.getLogger(__name__)

# Типы событий аудита
EVENT_USER_BANNED = "user_banned"
EVENT_USER_TEMP_BANNED = "user_temp_banned"
EVENT_USER_UNBANNED = "user_unbanned"
EVENT_USER_WARNED = "user_warned"
EVENT_USER_TRUSTED = "user_trusted"
EVENT_USER_UNTRUSTED = "user_untrusted"
EVENT_USER_RESTRICTED = "user_restricted"
EVENT_PERMISSIONS_RESTORED = "permissions_restored"
EVENT_USER_KICKED = "user_kicked"
EVENT_MESSAGE_DELETED = "message_deleted"


class AuditHandler:
    def __init__(self, audit_repository):
        self._audit_repository = audit_repository

    async def log(
        self,
        event_type: str,
        actor: Actor,
        target_user_id: Optional[int] = None,
        value: Optional[str] = None,
    ) -> bool:
        try:
            await self._audit_repository.log_event(event_type, actor, target_user_id=target_user_id, value=value)
            return True
        except Exception as e:
            logger.error(f"[MODERATION] Ошибка записи аудита {event_type} для {target_user_id}: {e}")
            return False
