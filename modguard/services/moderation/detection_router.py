# modguard/services/moderation/detection_router.py
"""
Маршрутизатор результатов детекции.

По результату движка выбирает ОДНО действие (первое совпадение):
1. Жёсткая блокировка (UrlBlocklist = Spam): бан везде + удаление
2. Вредонос (любая проверка = Malware): удаление + отчёт, без бана
3. Вето AI (OpenAI = Review): отчёт на ручную проверку
4. Уверенный спам (net > 50, OpenAI ≥ 85% и Spam): автобан + удаление
5. Пограничный случай (net > 0): отчёт на ручную проверку
6. Иначе: ничего

route(): чистое решение без побочных эффектов.
handle(): исполнение решения; никогда не бросает исключений.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем enum для видов действий
import enum
# Импортируем dataclass для решения
from dataclasses import dataclass
# Импортируем типы для аннотаций
from typing import List, Optional, Sequence

from modguard.services.moderation.config_service import DetectionThresholds
from modguard.services.moderation.types import (
    Actor,
    CheckName,
    CheckResponse,
    CheckResultType,
    ContentDetectionResult,
    ModerationMessage,
    format_violations,
)
from modguard.utils.html_utils import escape_html, safe_format_html, truncate
from modguard.utils.logger import fire_and_forget, format_auto_ban_log


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

HARD_BLOCK_REASON = "Hard block policy violation (automated spam filter)"
CRITICAL_VIOLATION_REASON = "Critical check violation"
# Сколько сработавших проверок показывать в сводке автобана
TOP_CHECKS_IN_SUMMARY = 3
MESSAGE_PREVIEW_LENGTH = 200
MALWARE_ALERT_TEMPLATE = (
    "Malware was detected in chat '{chat}' and the message was deleted.\n\n"
    "User: {user}\n"
    "Detection: {details}\n\n"
    "The user was NOT auto-banned (malware upload may be accidental). Please review the report."
)


class RoutedAction(str, enum.Enum):
    HARD_BLOCK = "hard_block"
    MALWARE = "malware"
    AI_REVIEW = "ai_review"
    AUTO_BAN = "auto_ban"
    REVIEW = "review"
    NONE = "none"


@dataclass(frozen=True)
class RoutingDecision:
    """
    Attributes:
        action: Выбранное действие
        reason: Текст причины (в отчёт, журнал, причину бана)
        trigger: Проверка, определившая решение
    """
    action: RoutedAction
    reason: Optional[str] = None
    trigger: Optional[CheckResponse] = None


def route(result: ContentDetectionResult, thresholds: DetectionThresholds = DetectionThresholds()) -> RoutingDecision:
    """Выбирает действие по результату детекции (первое совпадение по приоритету)."""
    net = result.net_confidence

    # ═══════════════════════════════════════════════════════════
    # 1. ЖЁСТКАЯ БЛОКИРОВКА: без порогов и без вето AI
    # ═══════════════════════════════════════════════════════════
    for check in result.check_results:
        if check.is_named(CheckName.URL_BLOCKLIST) and check.result == CheckResultType.SPAM:
            return RoutingDecision(RoutedAction.HARD_BLOCK, HARD_BLOCK_REASON, check)

    # ═══════════════════════════════════════════════════════════
    # 2. ВРЕДОНОС: удаляем, но не баним (загрузка могла быть случайной)
    # ═══════════════════════════════════════════════════════════
    malware = result.checks_with_result(CheckResultType.MALWARE)
    if malware:
        return RoutingDecision(RoutedAction.MALWARE, f"MALWARE DETECTED: {malware[0].details}", malware[0])

    ai_check = result.find_check(CheckName.OPENAI)

    # ═══════════════════════════════════════════════════════════
    # 3. ВЕТО AI: ручная проверка вместо автобана
    # ═══════════════════════════════════════════════════════════
    if ai_check is not None and ai_check.result == CheckResultType.REVIEW:
        return RoutingDecision(RoutedAction.AI_REVIEW, f"OpenAI flagged for review - Net: {net}", ai_check)

    # ═══════════════════════════════════════════════════════════
    # 4. УВЕРЕННЫЙ СПАМ: автобан
    # ═══════════════════════════════════════════════════════════
    ai_confident = ai_check is not None and ai_check.confidence >= thresholds.confident_threshold
    if net > thresholds.auto_ban_threshold and ai_confident and ai_check.result == CheckResultType.SPAM:
        return RoutingDecision(
            RoutedAction.AUTO_BAN,
            f"Auto-ban: High confidence spam (Net: {net}, OpenAI: {ai_check.confidence}%)",
            ai_check,
        )

    # ═══════════════════════════════════════════════════════════
    # 5. ПОГРАНИЧНЫЙ СЛУЧАЙ: отчёт
    # ═══════════════════════════════════════════════════════════
    if net > thresholds.review_threshold:
        if net > thresholds.auto_ban_threshold:
            ai_confidence = ai_check.confidence if ai_check is not None else 0
            reason = (
                f"OpenAI uncertain (<{thresholds.confident_threshold}%) - "
                f"Net: {net}, OpenAI: {ai_confidence}%"
            )
        else:
            reason = f"Borderline detection - Net: {net}"
        return RoutingDecision(RoutedAction.REVIEW, reason, ai_check)

    return RoutingDecision(RoutedAction.NONE)


def describe_checks(result: ContentDetectionResult) -> str:
    """Построчное описание проверок для заметок отчёта."""
    lines = []
    for check in result.check_results:
        line = f"{check.check_name}: {check.result.value} ({check.confidence}%)"
        if check.details:
            line += f" - {check.details}"
        lines.append(line)
    return "\n".join(lines) if lines else "No check results"


def build_report_notes(reason: str, result: ContentDetectionResult) -> str:
    """Заметки отчёта: причина, детали детекции, net и max уверенность."""
    return (
        f"{reason}\n"
        f"\n"
        f"Detection Details:\n"
        f"{describe_checks(result)}\n"
        f"\n"
        f"Net Confidence: {result.net_confidence}\n"
        f"Max Confidence: {result.max_confidence}"
    )


def top_spam_checks(result: ContentDetectionResult, limit: int = TOP_CHECKS_IN_SUMMARY) -> List[CheckResponse]:
    spam_checks = result.checks_with_result(CheckResultType.SPAM)
    return sorted(spam_checks, key=lambda c: c.confidence, reverse=True)[:limit]


class DetectionRouter:
    """
    Args:
        orchestrator: ModerationOrchestrator
        reports_repository: ReportsRepository
        config_service: ModerationConfigService
        notifications: NotificationService (админы, канал логов)
        messaging: MessagingService (ЛС пользователю)
        enforcement: EnforcementExecutor (число управляемых чатов для сводки)
    """

    def __init__(self, orchestrator, reports_repository, config_service, notifications, messaging, enforcement):
        self._orchestrator = orchestrator
        self._reports = reports_repository
        self._config = config_service
        self._notifications = notifications
        self._messaging = messaging
        self._enforcement = enforcement

    async def decide(self, message: ModerationMessage, result: ContentDetectionResult) -> RoutingDecision:
        thresholds = await self._config.get_detection_thresholds(message.chat_id)
        return route(result, thresholds)

    async def handle(self, message: ModerationMessage, result: ContentDetectionResult) -> RoutingDecision:
        """Выполняет решение маршрутизации; ошибки только логируются."""
        try:
            decision = await self.decide(message, result)
        except Exception as e:
            logger.error(f"[ROUTER] Ошибка маршрутизации сообщения {message.message_id} в {message.chat_id}: {e}")
            return RoutingDecision(RoutedAction.NONE)

        if decision.action == RoutedAction.NONE:
            return decision

        logger.info(
            f"[ROUTER] Сообщение {message.message_id} от {message.user_id} в {message.chat_id}: "
            f"{decision.action.value} ({decision.reason})"
        )

        try:
            if decision.action == RoutedAction.HARD_BLOCK:
                await self._handle_hard_block(message, decision)
            elif decision.action == RoutedAction.MALWARE:
                await self._handle_malware(message, result, decision)
            elif decision.action == RoutedAction.AUTO_BAN:
                await self._handle_auto_ban(message, result, decision)
            else:
                await self._create_report(message, result, decision.reason)
        except Exception as e:
            logger.error(
                f"[ROUTER] Ошибка выполнения {decision.action.value} для сообщения "
                f"{message.message_id} в {message.chat_id}: {e}"
            )
        return decision

    # ═══════════════════════════════════════════════════════════
    # ИСПОЛНЕНИЕ РЕШЕНИЙ
    # ═══════════════════════════════════════════════════════════
    async def _handle_hard_block(self, message: ModerationMessage, decision: RoutingDecision) -> None:
        logger.warning(
            f"[ROUTER] Жёсткая блокировка {message.user_label} в {message.chat_label}: "
            f"{decision.trigger.details if decision.trigger else ''}"
        )
        ban_result = await self._orchestrator.ban(
            message.user_id,
            Actor.auto_detection(),
            decision.reason,
            message_id=message.message_id,
            chat_id=message.chat_id,
        )
        if not ban_result.success:
            logger.warning(f"[ROUTER] Бан по жёсткой блокировке не выполнен: {ban_result.error_message}")

        await self._orchestrator.delete_message(
            message.message_id,
            message.chat_id,
            message.user_id,
            Actor.auto_detection(),
            decision.reason,
        )

    async def _handle_malware(
        self,
        message: ModerationMessage,
        result: ContentDetectionResult,
        decision: RoutingDecision,
    ) -> None:
        details = decision.trigger.details if decision.trigger else None
        await self._orchestrator.delete_message(
            message.message_id,
            message.chat_id,
            message.user_id,
            Actor.file_scanner(),
            f"Malware detected: {details}",
        )
        await self._create_report(message, result, decision.reason)

        text = safe_format_html(
            MALWARE_ALERT_TEMPLATE,
            chat=message.chat_label,
            user=message.user_label,
            details=details or "-",
        )
        await self._notifications.notify_admins(message.chat_id, "Malware Detected and Removed", text)

    async def _handle_auto_ban(
        self,
        message: ModerationMessage,
        result: ContentDetectionResult,
        decision: RoutingDecision,
    ) -> None:
        ban_result = await self._orchestrator.ban(
            message.user_id,
            Actor.auto_detection(),
            decision.reason,
            message_id=message.message_id,
            chat_id=message.chat_id,
        )
        if not ban_result.success:
            logger.warning(f"[ROUTER] Автобан {message.user_id} не выполнен: {ban_result.error_message}")

        delete_result = await self._orchestrator.delete_message(
            message.message_id,
            message.chat_id,
            message.user_id,
            Actor.auto_detection(),
            f"Auto-ban triggered (net confidence: {result.net_confidence}%, OpenAI confirmed)",
        )

        if ban_result.success:
            await self._orchestrator.record_detection_sample(message.text, result, message_id=message.message_id)

            total_chats = len(await self._enforcement.active_chat_ids())
            summary = format_auto_ban_log(
                user_id=message.user_id,
                username=message.user_display_name,
                chat_id=message.chat_id,
                chat_name=message.chat_title,
                message_preview=truncate(message.text, MESSAGE_PREVIEW_LENGTH),
                top_checks=[(c.check_name, c.confidence, c.details) for c in top_spam_checks(result)],
                banned_count=ban_result.chats_affected,
                total_chats=total_chats,
                message_deleted=delete_result.message_deleted,
            )
            # Сводка в канал логов не задерживает обработку сообщения
            fire_and_forget(self._notifications.post_to_journal(summary), name=f"auto-ban-summary-{message.user_id}")

    async def _create_report(self, message: ModerationMessage, result: ContentDetectionResult, reason: str) -> None:
        report = await self._reports.create_report(
            message_id=message.message_id,
            chat_id=message.chat_id,
            admin_notes=build_report_notes(reason, result),
            reported_by_name=Actor.auto_detection().display_name,
        )
        logger.info(f"[ROUTER] Создан отчёт #{report.id} для сообщения {message.message_id} в {message.chat_id}: {reason}")

    # ═══════════════════════════════════════════════════════════
    # НАРУШЕНИЕ КРИТИЧЕСКИХ ПРОВЕРОК (доверенные/админы)
    # ═══════════════════════════════════════════════════════════
    async def handle_critical_check_violation(self, message: ModerationMessage, violations: Sequence[str]) -> None:
        """Удаление + уведомление пользователя. Ни бана, ни предупреждения."""
        logger.warning(
            f"[ROUTER] Нарушение критических проверок {message.user_label} в {message.chat_label}: "
            f"{'; '.join(violations)}"
        )
        try:
            await self._orchestrator.delete_message(
                message.message_id,
                message.chat_id,
                message.user_id,
                Actor.auto_detection(),
                CRITICAL_VIOLATION_REASON,
            )
        except Exception as e:
            logger.error(f"[ROUTER] Не удалось удалить сообщение {message.message_id} в {message.chat_id}: {e}")

        notice = (
            "⚠️ Your message was deleted due to security policy violations:\n\n"
            f"{escape_html(format_violations(violations))}\n\n"
            "These checks apply to all users regardless of trust status."
        )
        send_result = await self._messaging.send_to_user(message.user_id, message.chat_id, notice)
        if send_result.success:
            logger.info(f"[ROUTER] Уведомление о нарушении отправлено {message.user_id} ({send_result.delivery_method})")
        else:
            logger.warning(f"[ROUTER] Не удалось уведомить {message.user_id} о нарушении: {send_result.error_message}")
