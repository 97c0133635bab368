# modguard/services/notifications.py
"""
Уведомления пользователей и администраторов.

MessagingService: доставка одному пользователю: сначала личное
сообщение, при неудаче упоминание в чате.
NotificationService: уведомления о действиях модерации: пользователю,
связанным администраторам чата и в канал логов.

Ни один метод не бросает исключений: уведомление вторично
по отношению к действию модерации.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем dataclass для результатов
from dataclasses import dataclass
# Импортируем типы для аннотаций
from typing import Awaitable, Callable, Optional

# Импортируем ошибки aiogram
from aiogram.exceptions import TelegramAPIError

from modguard.utils.html_utils import escape_html, user_link
from modguard.utils.logger import send_formatted_log


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Способы доставки
DELIVERY_PRIVATE_DM = "private_dm"
DELIVERY_CHAT_MENTION = "chat_mention"
DELIVERY_FAILED = "failed"


@dataclass(frozen=True)
class SendResult:
    success: bool
    delivery_method: str
    error_message: Optional[str] = None


@dataclass(frozen=True)
class NotificationResult:
    """
    Attributes:
        success: Доставлено хотя бы одному адресату
        delivered_count: Сколько адресатов получили сообщение
        failed_count: Скольким доставить не удалось
        journal_posted: Запись в канал логов отправлена
    """
    success: bool
    delivered_count: int = 0
    failed_count: int = 0
    journal_posted: bool = False
    error_message: Optional[str] = None


class MessagingService:
    """Args: platform: TelegramPlatformOperations"""

    def __init__(self, platform):
        self._platform = platform

    async def send_to_user(
        self,
        user_id: int,
        chat_id: Optional[int],
        text: str,
        reply_to_message_id: Optional[int] = None,
    ) -> SendResult:
        # ═══════════════════════════════════════════════════════════
        # ПОПЫТКА 1: ЛИЧНОЕ СООБЩЕНИЕ
        # ═══════════════════════════════════════════════════════════
        try:
            await self._platform.send_message(user_id, text)
            return SendResult(success=True, delivery_method=DELIVERY_PRIVATE_DM)
        except TelegramAPIError as e:
            # Пользователь не начинал диалог с ботом или заблокировал его
            logger.debug(f"ЛС пользователю {user_id} не доставлено: {e}")
            dm_error = str(e)
        except Exception as e:
            logger.error(f"Ошибка отправки ЛС пользователю {user_id}: {e}")
            dm_error = str(e)

        if chat_id is None:
            return SendResult(success=False, delivery_method=DELIVERY_FAILED, error_message=dm_error)

        # ═══════════════════════════════════════════════════════════
        # ПОПЫТКА 2: УПОМИНАНИЕ В ЧАТЕ
        # ═══════════════════════════════════════════════════════════
        try:
            await self._platform.send_message(
                chat_id,
                f"{user_link(user_id)}, {text}",
                reply_to_message_id=reply_to_message_id,
            )
            return SendResult(success=True, delivery_method=DELIVERY_CHAT_MENTION)
        except Exception as e:
            logger.warning(f"Не удалось уведомить {user_id} ни в ЛС, ни в чате {chat_id}: {e}")
            return SendResult(success=False, delivery_method=DELIVERY_FAILED, error_message=str(e))


class NotificationService:
    """
    Args:
        messaging: MessagingService
        admins_repository: ChatAdminsRepository
        platform: TelegramPlatformOperations (ЛС администраторам)
        journal_sender: корутина отправки в канал логов
    """

    def __init__(
        self,
        messaging: MessagingService,
        admins_repository,
        platform,
        journal_sender: Callable[[str], Awaitable[bool]] = send_formatted_log,
    ):
        self._messaging = messaging
        self._admins_repository = admins_repository
        self._platform = platform
        self._journal_sender = journal_sender

    async def notify_user(
        self,
        user_id: int,
        chat_id: Optional[int],
        text: str,
        reply_to_message_id: Optional[int] = None,
    ) -> NotificationResult:
        result = await self._messaging.send_to_user(user_id, chat_id, text, reply_to_message_id)
        if result.success:
            logger.debug(f"Уведомление {user_id} доставлено ({result.delivery_method})")
            return NotificationResult(success=True, delivered_count=1)
        return NotificationResult(success=False, failed_count=1, error_message=result.error_message)

    async def notify_admins(self, chat_id: int, subject: str, text: str) -> NotificationResult:
        """ЛС каждому связанному администратору чата + запись в канал логов."""
        body = f"<b>{escape_html(subject)}</b>\n\n{text}"

        try:
            admins = await self._admins_repository.get_chat_admins(chat_id)
        except Exception as e:
            logger.error(f"Ошибка загрузки администраторов чата {chat_id}: {e}")
            admins = []

        delivered = 0
        failed = 0
        for admin in admins:
            # ЛС только тем, кто привязал аккаунт (начал диалог с ботом)
            if not admin.is_linked:
                continue
            try:
                await self._platform.send_message(admin.telegram_id, body)
                delivered += 1
            except TelegramAPIError as e:
                failed += 1
                logger.warning(f"Не удалось уведомить администратора {admin.telegram_id} чата {chat_id}: {e}")
            except Exception as e:
                failed += 1
                logger.error(f"Ошибка уведомления администратора {admin.telegram_id}: {e}")

        journal_posted = await self.post_to_journal(body)

        return NotificationResult(
            success=delivered > 0 or journal_posted,
            delivered_count=delivered,
            failed_count=failed,
            journal_posted=journal_posted,
        )

    async def post_to_journal(self, html_text: str) -> bool:
        try:
            return bool(await self._journal_sender(html_text))
        except Exception as e:
            logger.error(f"Ошибка отправки в канал логов: {e}")
            return False
