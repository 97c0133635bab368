# modguard/services/moderation/orchestrator.py
"""
Оркестратор модерации.

Собирает атомарные действия в транзакции по политике:
- бан всегда снимает доверие (только если бан удался)
- N предупреждений ведут к автобану (если включено в настройках чата)
- пометка спама = бэкфилл + удаление + бан + обучающий образец

Правила ошибок:
- Отказ основного действия: success=False и прекращение глагола
- Отказ вторичного действия (доверие, аудит, уведомление, образец):
  запись в лог и отдельное поле результата, success не меняется
- Служебные аккаунты платформы отклоняются до любого обработчика

Ни один глагол не бросает исключения для ожидаемых отказов.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем datetime для сроков
from datetime import timedelta
# Импортируем типы для аннотаций
from typing import Awaitable, Optional

from modguard.config import is_system_account
from modguard.services.moderation.config_service import ModerationConfigService
from modguard.services.moderation.handlers import (
    AuditHandler,
    BanHandler,
    GLOBAL_CHAT_ID,
    HandlerOutcome,
    MessageHandler,
    NotificationHandler,
    RestrictHandler,
    TrainingHandler,
    TrustHandler,
    WarnHandler,
)
from modguard.services.moderation.handlers import audit_handler as audit
from modguard.services.moderation.handlers.training_handler import (
    SOURCE_AUTO,
    SOURCE_MANUAL,
    determine_if_training_worthy,
)
from modguard.services.moderation.types import (
    Actor,
    BanResult,
    CheckName,
    ContentDetectionResult,
    DeleteResult,
    MarkAsSpamResult,
    ModerationResult,
    RestrictResult,
    TempBanResult,
    TrustResult,
    UnbanResult,
    WarnResult,
)


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

SYSTEM_ACCOUNT_ERROR = "Cannot perform moderation actions on platform system account (channel/anonymous posts)"


class ModerationOrchestrator:
    """
    Args:
        ban_handler: BanHandler
        warn_handler: WarnHandler
        trust_handler: TrustHandler
        restrict_handler: RestrictHandler
        message_handler: MessageHandler
        audit_handler: AuditHandler
        notification_handler: NotificationHandler
        training_handler: TrainingHandler
        config_service: ModerationConfigService
    """

    def __init__(
        self,
        ban_handler: BanHandler,
        warn_handler: WarnHandler,
        trust_handler: TrustHandler,
        restrict_handler: RestrictHandler,
        message_handler: MessageHandler,
        audit_handler: AuditHandler,
        notification_handler: NotificationHandler,
        training_handler: TrainingHandler,
        config_service: ModerationConfigService,
    ):
        self._ban = ban_handler
        self._warn = warn_handler
        self._trust = trust_handler
        self._restrict = restrict_handler
        self._messages = message_handler
        self._audit = audit_handler
        self._notifications = notification_handler
        self._training = training_handler
        self._config = config_service

    # ═══════════════════════════════════════════════════════════
    # ВСПОМОГАТЕЛЬНЫЕ
    # ═══════════════════════════════════════════════════════════
    @staticmethod
    def _system_account_guard(user_id: int) -> Optional[str]:
        if is_system_account(user_id):
            logger.warning(f"[MODERATION] Действие над служебным аккаунтом {user_id} заблокировано")
            return SYSTEM_ACCOUNT_ERROR
        return None

    @staticmethod
    async def _primary(label: str, action: Awaitable[HandlerOutcome]) -> HandlerOutcome:
        """Основное действие: неожиданная ошибка превращается в отказ."""
        try:
            return await action
        except Exception as e:
            logger.error(f"[MODERATION] Ошибка основного действия {label}: {e}")
            return HandlerOutcome.failed(f"{label} failed: {e}")

    @staticmethod
    async def _secondary(label: str, action: Awaitable) -> bool:
        """Вторичное действие: результат: только флаг успеха."""
        try:
            result = await action
        except Exception as e:
            logger.error(f"[MODERATION] Ошибка вторичного действия {label}: {e}")
            return False
        if isinstance(result, HandlerOutcome):
            return result.success
        return bool(result)

    # ═══════════════════════════════════════════════════════════
    # БАН
    # ═══════════════════════════════════════════════════════════
    async def ban(
        self,
        user_id: int,
        executor: Actor,
        reason: str,
        message_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> BanResult:
        error = self._system_account_guard(user_id)
        if error:
            return BanResult.failure(error)

        outcome = await self._primary(
            "ban", self._ban.ban(user_id, executor, reason, message_id=message_id, chat_id=chat_id)
        )
        if not outcome.success:
            return BanResult.failure(
                outcome.error_message or "Ban failed",
                chats_failed=outcome.chats_failed,
            )

        # Забаненный не может оставаться доверенным
        trust_removed = await self._secondary(
            "untrust", self._trust.untrust(user_id, executor, f"Trust revoked due to ban: {reason}")
        )

        await self._audit.log(audit.EVENT_USER_BANNED, executor, user_id, reason)
        await self._secondary(
            "notify admins",
            self._notifications.notify_admins_ban(user_id, chat_id, executor, reason, outcome.chats_affected),
        )

        return BanResult(
            success=True,
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            trust_removed=trust_removed,
        )

    async def temp_ban(
        self,
        user_id: int,
        executor: Actor,
        duration: timedelta,
        reason: str,
        message_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> TempBanResult:
        error = self._system_account_guard(user_id)
        if error:
            return TempBanResult.failure(error)

        outcome = await self._primary(
            "temp_ban", self._ban.temp_ban(user_id, executor, duration, reason, message_id=message_id)
        )
        if not outcome.success:
            return TempBanResult.failure(outcome.error_message or "Temporary ban failed", chats_failed=outcome.chats_failed)

        await self._audit.log(
            audit.EVENT_USER_TEMP_BANNED, executor, user_id, f"{reason} (until {outcome.expires_at:%Y-%m-%d %H:%M})"
        )
        await self._secondary(
            "notify user",
            self._notifications.notify_user_temp_banned(user_id, chat_id, reason, outcome.expires_at),
        )

        return TempBanResult(
            success=True,
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            expires_at=outcome.expires_at,
        )

    async def unban(
        self,
        user_id: int,
        executor: Actor,
        reason: Optional[str] = None,
        restore_trust: bool = False,
    ) -> UnbanResult:
        error = self._system_account_guard(user_id)
        if error:
            return UnbanResult.failure(error)

        outcome = await self._primary("unban", self._ban.unban(user_id, executor, reason))
        if not outcome.success:
            return UnbanResult.failure(outcome.error_message or "Unban failed", chats_failed=outcome.chats_failed)

        await self._audit.log(audit.EVENT_USER_UNBANNED, executor, user_id, reason)

        trust_restored = False
        if restore_trust:
            # Разбан как исправление ложного срабатывания
            trust_restored = await self._secondary(
                "restore trust",
                self._trust.trust(user_id, executor, "Trust restored after unban (false positive correction)"),
            )
            if trust_restored:
                await self._audit.log(audit.EVENT_USER_TRUSTED, executor, user_id, "restored after unban")

        return UnbanResult(
            success=True,
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            trust_restored=trust_restored,
        )

    # ═══════════════════════════════════════════════════════════
    # ПРЕДУПРЕЖДЕНИЯ
    # ═══════════════════════════════════════════════════════════
    async def warn(
        self,
        user_id: int,
        executor: Actor,
        reason: Optional[str] = None,
        message_id: Optional[int] = None,
        chat_id: Optional[int] = None,
    ) -> WarnResult:
        error = self._system_account_guard(user_id)
        if error:
            return WarnResult.failure(error)

        outcome = await self._primary(
            "warn", self._warn.warn(user_id, executor, reason, message_id=message_id, chat_id=chat_id)
        )
        if not outcome.success:
            return WarnResult.failure(outcome.error_message or "Warn failed")

        count = outcome.warning_count
        await self._audit.log(audit.EVENT_USER_WARNED, executor, user_id, reason)
        await self._secondary("notify user", self._notifications.notify_user_warned(user_id, chat_id, reason, count))

        # ═══════════════════════════════════════════════════════════
        # АВТОБАН ПО ПОРОГУ ПРЕДУПРЕЖДЕНИЙ
        # ═══════════════════════════════════════════════════════════
        warning_config = await self._config.get_warning_config(chat_id if chat_id is not None else GLOBAL_CHAT_ID)
        if not warning_config.should_auto_ban(count):
            return WarnResult(success=True, warning_count=count)

        logger.warning(
            f"[MODERATION] Автобан {user_id}: {count} предупреждений при пороге {warning_config.auto_ban_threshold}"
        )
        ban_result = await self.ban(
            user_id,
            Actor.auto_ban(),
            warning_config.format_reason(count),
            message_id=message_id,
            chat_id=chat_id,
        )
        if not ban_result.success:
            logger.error(f"[MODERATION] Автобан {user_id} по порогу не выполнен: {ban_result.error_message}")
            return WarnResult(success=True, warning_count=count)

        return WarnResult(
            success=True,
            warning_count=count,
            auto_ban_triggered=True,
            chats_affected=ban_result.chats_affected,
            chats_failed=ban_result.chats_failed,
        )

    # ═══════════════════════════════════════════════════════════
    # ДОВЕРИЕ
    # ═══════════════════════════════════════════════════════════
    async def trust(self, user_id: int, executor: Actor, reason: Optional[str] = None) -> TrustResult:
        error = self._system_account_guard(user_id)
        if error:
            return TrustResult.failure(error)

        outcome = await self._primary("trust", self._trust.trust(user_id, executor, reason))
        if not outcome.success:
            return TrustResult.failure(outcome.error_message or "Trust failed")

        await self._audit.log(audit.EVENT_USER_TRUSTED, executor, user_id, reason)
        return TrustResult(success=True)

    async def untrust(self, user_id: int, executor: Actor, reason: Optional[str] = None) -> TrustResult:
        error = self._system_account_guard(user_id)
        if error:
            return TrustResult.failure(error)

        outcome = await self._primary("untrust", self._trust.untrust(user_id, executor, reason))
        if not outcome.success:
            return TrustResult.failure(outcome.error_message or "Untrust failed")

        await self._audit.log(audit.EVENT_USER_UNTRUSTED, executor, user_id, reason)
        return TrustResult(success=True)

    # ═══════════════════════════════════════════════════════════
    # ОГРАНИЧЕНИЯ
    # ═══════════════════════════════════════════════════════════
    async def restrict(
        self,
        user_id: int,
        executor: Actor,
        reason: Optional[str] = None,
        duration: Optional[timedelta] = None,
        chat_id: Optional[int] = None,
        message_id: Optional[int] = None,
    ) -> RestrictResult:
        error = self._system_account_guard(user_id)
        if error:
            return RestrictResult.failure(error)

        # None: глобальное ограничение, в журнале это чат 0
        target_chat_id = GLOBAL_CHAT_ID if chat_id is None else chat_id

        outcome = await self._primary(
            "restrict",
            self._restrict.restrict(
                user_id, target_chat_id, executor, duration=duration, reason=reason, message_id=message_id
            ),
        )
        if not outcome.success:
            return RestrictResult.failure(
                outcome.error_message or "Restriction failed",
                chats_failed=outcome.chats_failed,
                chat_id=target_chat_id,
            )

        await self._audit.log(audit.EVENT_USER_RESTRICTED, executor, user_id, reason)
        return RestrictResult(
            success=True,
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            chat_id=target_chat_id,
            expires_at=outcome.expires_at,
        )

    async def restore_user_permissions(
        self,
        user_id: int,
        executor: Actor,
        chat_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> RestrictResult:
        error = self._system_account_guard(user_id)
        if error:
            return RestrictResult.failure(error)

        outcome = await self._primary(
            "restore permissions", self._restrict.restore_permissions(user_id, chat_id, executor, reason)
        )
        if not outcome.success:
            return RestrictResult.failure(
                outcome.error_message or "Restore permissions failed",
                chats_failed=outcome.chats_failed,
                chat_id=chat_id,
            )

        await self._audit.log(audit.EVENT_PERMISSIONS_RESTORED, executor, user_id, reason)
        return RestrictResult(
            success=True,
            chats_affected=outcome.chats_affected,
            chats_failed=outcome.chats_failed,
            chat_id=chat_id,
        )

    async def kick_user_from_chat(
        self,
        user_id: int,
        chat_id: int,
        executor: Actor,
        reason: Optional[str] = None,
    ) -> ModerationResult:
        error = self._system_account_guard(user_id)
        if error:
            return ModerationResult.failure(error)

        outcome = await self._primary("kick", self._ban.kick_from_chat(user_id, chat_id, executor, reason))
        if not outcome.success:
            return ModerationResult.failure(outcome.error_message or "Kick failed", chats_failed=outcome.chats_failed)

        await self._audit.log(audit.EVENT_USER_KICKED, executor, user_id, reason)
        return ModerationResult(success=True, chats_affected=outcome.chats_affected)

    async def sync_ban_to_chat(self, user_id: int, chat_id: int) -> ModerationResult:
        error = self._system_account_guard(user_id)
        if error:
            return ModerationResult.failure(error)

        outcome = await self._primary("sync ban", self._ban.sync_ban_to_chat(user_id, chat_id))
        if not outcome.success:
            return ModerationResult.failure(outcome.error_message or "Ban sync failed", chats_failed=outcome.chats_failed)
        return ModerationResult(success=True, chats_affected=outcome.chats_affected)

    # ═══════════════════════════════════════════════════════════
    # СООБЩЕНИЯ
    # ═══════════════════════════════════════════════════════════
    async def delete_message(
        self,
        message_id: int,
        chat_id: int,
        user_id: int,
        executor: Actor,
        reason: Optional[str] = None,
    ) -> DeleteResult:
        """Удаление считается успешным даже если сообщение уже удалено."""
        error = self._system_account_guard(user_id)
        if error:
            return DeleteResult.failure(error)

        deleted = await self._secondary(
            "delete message", self._messages.delete(chat_id, message_id, executor, reason or "Manual message deletion")
        )
        await self._audit.log(audit.EVENT_MESSAGE_DELETED, executor, user_id, f"{chat_id}:{message_id}")
        return DeleteResult(success=True, chats_affected=1 if deleted else 0, message_deleted=deleted)

    async def mark_as_spam_and_ban(
        self,
        message_id: int,
        user_id: int,
        chat_id: int,
        executor: Actor,
        reason: str,
        message_text: Optional[str] = None,
    ) -> MarkAsSpamResult:
        error = self._system_account_guard(user_id)
        if error:
            return MarkAsSpamResult.failure(error)

        # ═══════════════════════════════════════════════════════════
        # ШАГ 1: БЭКФИЛЛ СООБЩЕНИЯ
        # ═══════════════════════════════════════════════════════════
        await self._secondary(
            "backfill message", self._messages.ensure_exists(chat_id, message_id, user_id, message_text)
        )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 2: УДАЛЕНИЕ (best-effort)
        # ═══════════════════════════════════════════════════════════
        message_deleted = await self._secondary(
            "delete message", self._messages.delete(chat_id, message_id, executor, reason)
        )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 3: БАН (основное действие)
        # ═══════════════════════════════════════════════════════════
        ban_result = await self.ban(user_id, executor, reason, message_id=message_id, chat_id=chat_id)
        if not ban_result.success:
            return MarkAsSpamResult.failure(
                ban_result.error_message or "Ban failed",
                chats_failed=ban_result.chats_failed,
                message_deleted=message_deleted,
            )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 4: ОБУЧАЮЩИЙ ОБРАЗЕЦ (ручное решение всегда годится)
        # ═══════════════════════════════════════════════════════════
        training_created = await self._secondary(
            "training sample",
            self._training.create_sample(
                message_text,
                is_spam=True,
                added_by=executor,
                source=SOURCE_MANUAL,
                message_id=message_id,
            ),
        )

        return MarkAsSpamResult(
            success=True,
            chats_affected=ban_result.chats_affected,
            chats_failed=ban_result.chats_failed,
            message_deleted=message_deleted,
            trust_removed=ban_result.trust_removed,
            training_sample_created=training_created,
        )

    async def record_detection_sample(
        self,
        message_text: Optional[str],
        result: ContentDetectionResult,
        message_id: Optional[int] = None,
    ) -> bool:
        """
        Обучающий образец по автоматическому решению.

        Сохраняется только уверенная детекция (determine_if_training_worthy).
        """
        if not determine_if_training_worthy(result):
            logger.debug(f"[MODERATION] Детекция сообщения {message_id} недостаточно уверенная для обучения")
            return False

        ai_check = result.find_check(CheckName.OPENAI)
        confidence = ai_check.confidence if ai_check is not None else result.net_confidence
        return await self._secondary(
            "training sample",
            self._training.create_sample(
                message_text,
                is_spam=True,
                added_by=Actor.auto_detection(),
                source=SOURCE_AUTO,
                confidence=confidence,
                message_id=message_id,
            ),
        )
