# Общие помощники для тестов модерации
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from modguard.database.models import ManagedChat
from modguard.database.repositories import (
    AuditRepository,
    ChatAdminsRepository,
    ManagedChatsRepository,
    MessagesRepository,
    ModerationConfigRepository,
    ReportsRepository,
    TrainingSamplesRepository,
    UserActionsRepository,
)
from modguard.services.enforcement.executor import EnforcementExecutor
from modguard.services.moderation.check_gate import CheckGate
from modguard.services.moderation.config_service import ModerationConfigService
from modguard.services.moderation.detection_router import DetectionRouter
from modguard.services.moderation.handlers import (
    AuditHandler,
    BanHandler,
    MessageHandler,
    NotificationHandler,
    RestrictHandler,
    TrainingHandler,
    TrustHandler,
    WarnHandler,
)
from modguard.services.moderation.orchestrator import ModerationOrchestrator
from modguard.services.moderation.pipeline import ModerationPipeline
from modguard.services.moderation.types import CheckResponse, CheckResultType, ContentDetectionResult
from modguard.services.notifications import MessagingService, NotificationService


def make_chats_repo(*chat_ids):
    """Мок ManagedChatsRepository с заданным списком активных чатов."""
    repo = MagicMock()
    repo.list_active = AsyncMock(return_value=[ManagedChat(chat_id=c, is_active=True) for c in chat_ids])
    return repo


def make_admins_repo(*admin_chat_ids):
    """Мок ChatAdminsRepository: пользователь админ в admin_chat_ids."""
    repo = MagicMock()
    repo.chats_where_admin = AsyncMock(return_value=list(admin_chat_ids))
    repo.is_admin = AsyncMock(return_value=bool(admin_chat_ids))
    repo.get_chat_admins = AsyncMock(return_value=[])
    return repo


def make_result(net, checks=(), is_spam=None, max_confidence=None):
    """
    Собирает ContentDetectionResult.

    checks: кортежи (имя, результат, уверенность[, детали]).
    """
    responses = []
    for check in checks:
        name, result, confidence = check[:3]
        details = check[3] if len(check) > 3 else None
        responses.append(CheckResponse(name, CheckResultType(result), confidence, details))
    if max_confidence is None:
        max_confidence = max([c.confidence for c in responses] or [0])
    return ContentDetectionResult(
        is_spam=net > 0 if is_spam is None else is_spam,
        net_confidence=net,
        max_confidence=max_confidence,
        check_results=tuple(responses),
    )


def build_stack(session_factory, platform, health_cache, scheduler, detection_engine=None, journal=None):
    """
    Граф сервисов модерации на реальных репозиториях (SQLite)
    и моке платформы. Канал логов: AsyncMock (journal).
    """
    journal = journal or AsyncMock(return_value=True)

    s = SimpleNamespace(platform=platform, health_cache=health_cache, scheduler=scheduler, journal=journal)
    s.user_actions = UserActionsRepository(session_factory)
    s.chats = ManagedChatsRepository(session_factory)
    s.admins = ChatAdminsRepository(session_factory)
    s.messages = MessagesRepository(session_factory)
    s.audit = AuditRepository(session_factory)
    s.reports = ReportsRepository(session_factory)
    s.samples = TrainingSamplesRepository(session_factory)
    s.config_repo = ModerationConfigRepository(session_factory)
    s.config_service = ModerationConfigService(s.config_repo)

    s.enforcement = EnforcementExecutor(s.chats, s.admins, platform, health_cache, scheduler)
    s.messaging = MessagingService(platform)
    s.notifications = NotificationService(s.messaging, s.admins, platform, journal_sender=journal)

    s.ban_handler = BanHandler(s.user_actions, s.enforcement, scheduler)
    s.message_handler = MessageHandler(s.messages, platform)
    s.orchestrator = ModerationOrchestrator(
        ban_handler=s.ban_handler,
        warn_handler=WarnHandler(s.user_actions),
        trust_handler=TrustHandler(s.user_actions),
        restrict_handler=RestrictHandler(s.user_actions, s.enforcement),
        message_handler=s.message_handler,
        audit_handler=AuditHandler(s.audit),
        notification_handler=NotificationHandler(s.notifications),
        training_handler=TrainingHandler(s.samples),
        config_service=s.config_service,
    )

    if detection_engine is None:
        detection_engine = MagicMock()
        detection_engine.check = AsyncMock()
    s.engine = detection_engine
    s.gate = CheckGate(s.user_actions, s.admins, s.config_service, s.engine)
    s.router = DetectionRouter(s.orchestrator, s.reports, s.config_service, s.notifications, s.messaging, s.enforcement)
    s.pipeline = ModerationPipeline(s.messages, s.gate, s.router)
    return s
