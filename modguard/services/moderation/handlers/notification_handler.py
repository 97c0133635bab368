# modguard/services/moderation/handlers/notification_handler.py
"""Уведомления о действиях модерации (всегда best-effort)."""

import logging
from typing import Optional

from modguard.services.moderation.types import Actor
from modguard.utils.html_utils import escape_html

logger = logging.getLogger(__name__)


class NotificationHandler:
    """Args: notifications: NotificationService"""

    def __init__(self, notifications):
        self._notifications = notifications

    async def notify_admins_ban(
        self,
        user_id: int,
        chat_id: Optional[int],
        executor: Actor,
        reason: Optional[str],
        chats_affected: int,
    ) -> bool:
        if chat_id is None:
            # Без чата некому адресовать ЛС, пишем только в канал логов
            text = self._ban_text(user_id, executor, reason, chats_affected)
            return await self._notifications.post_to_journal(text)
        try:
            result = await self._notifications.notify_admins(
                chat_id,
                "User banned",
                self._ban_text(user_id, executor, reason, chats_affected),
            )
            return result.success
        except Exception as e:
            logger.error(f"[MODERATION] Ошибка уведомления админов о бане {user_id}: {e}")
            return False

    async def notify_user_warned(self, user_id: int, chat_id: Optional[int], reason: Optional[str], warning_count: int) -> bool:
        text = f"⚠️ You have received a warning ({warning_count} active)."
        if reason:
            text += f"\nReason: {escape_html(reason)}"
        return await self._notify_user(user_id, chat_id, text)

    async def notify_user_temp_banned(self, user_id: int, chat_id: Optional[int], reason: Optional[str], expires_at) -> bool:
        text = f"⛔ You have been temporarily banned until {expires_at:%Y-%m-%d %H:%M} UTC."
        if reason:
            text += f"\nReason: {escape_html(reason)}"
        return await self._notify_user(user_id, chat_id, text)

    async def _notify_user(self, user_id: int, chat_id: Optional[int], text: str) -> bool:
        try:
            result = await self._notifications.notify_user(user_id, chat_id, text)
            return result.success
        except Exception as e:
            logger.error(f"[MODERATION] Ошибка уведомления пользователя {user_id}: {e}")
            return False

    @staticmethod
    def _ban_text(user_id: int, executor: Actor, reason: Optional[str], chats_affected: int) -> str:
        return (
            f"User <code>{user_id}</code> was banned by {escape_html(executor.display_name)} "
            f"in {chats_affected} chats.\n"
            f"Reason: {escape_html(reason or '-')}"
        )
