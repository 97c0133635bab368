# modguard/services/container.py
"""
Сборка графа сервисов модерации.

Всё разделяемое состояние процесса (кэш здоровья, карта дедупликации
очистки) создаётся здесь один раз и передаётся явно.
"""

from dataclasses import dataclass

from aiogram import Bot
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from modguard.config import CLEANUP_DEDUP_WINDOW_SECONDS, CLEANUP_JOB_DELAY_SECONDS
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
from modguard.services.chat_sync import ChatSyncService
from modguard.services.detection_client import HttpDetectionEngine
from modguard.services.enforcement.cleanup_dedup import CleanupJobDeduplicator
from modguard.services.enforcement.executor import EnforcementExecutor
from modguard.services.enforcement.health import ChatHealthCache, ChatHealthService
from modguard.services.enforcement.job_scheduler import (
    DELETE_USER_MESSAGES_JOB,
    TEMPBAN_EXPIRY_JOB,
    JobWorker,
    RedisJobScheduler,
)
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
from modguard.services.notifications import MessagingService, NotificationService
from modguard.services.platform_operations import TelegramPlatformOperations


@dataclass
class ModerationServices:
    platform: TelegramPlatformOperations
    user_actions: UserActionsRepository
    chats: ManagedChatsRepository
    admins: ChatAdminsRepository
    health_cache: ChatHealthCache
    health_service: ChatHealthService
    scheduler: RedisJobScheduler
    worker: JobWorker
    enforcement: EnforcementExecutor
    orchestrator: ModerationOrchestrator
    router: DetectionRouter
    pipeline: ModerationPipeline
    chat_sync: ChatSyncService


def build_services(
    bot: Bot,
    session_factory: async_sessionmaker,
    redis: Redis,
    detection_engine=None,
) -> ModerationServices:
    platform = TelegramPlatformOperations(bot)

    # Репозитории
    user_actions = UserActionsRepository(session_factory)
    chats = ManagedChatsRepository(session_factory)
    admins = ChatAdminsRepository(session_factory)
    messages = MessagesRepository(session_factory)
    audit = AuditRepository(session_factory)
    reports = ReportsRepository(session_factory)
    samples = TrainingSamplesRepository(session_factory)
    config_service = ModerationConfigService(ModerationConfigRepository(session_factory))

    # Исполнение по всем чатам
    health_cache = ChatHealthCache()
    health_service = ChatHealthService(platform, health_cache, chats)
    scheduler = RedisJobScheduler(redis)
    enforcement = EnforcementExecutor(
        chats,
        admins,
        platform,
        health_cache,
        scheduler,
        deduplicator=CleanupJobDeduplicator(window_seconds=CLEANUP_DEDUP_WINDOW_SECONDS),
        cleanup_delay_seconds=CLEANUP_JOB_DELAY_SECONDS,
    )

    # Уведомления
    messaging = MessagingService(platform)
    notifications = NotificationService(messaging, admins, platform)

    # Атомарные действия и оркестратор
    ban_handler = BanHandler(user_actions, enforcement, scheduler)
    message_handler = MessageHandler(messages, platform)
    orchestrator = ModerationOrchestrator(
        ban_handler=ban_handler,
        warn_handler=WarnHandler(user_actions),
        trust_handler=TrustHandler(user_actions),
        restrict_handler=RestrictHandler(user_actions, enforcement),
        message_handler=message_handler,
        audit_handler=AuditHandler(audit),
        notification_handler=NotificationHandler(notifications),
        training_handler=TrainingHandler(samples),
        config_service=config_service,
    )

    # Гейт, маршрутизатор, конвейер
    gate = CheckGate(user_actions, admins, config_service, detection_engine or HttpDetectionEngine())
    router = DetectionRouter(orchestrator, reports, config_service, notifications, messaging, enforcement)
    pipeline = ModerationPipeline(messages, gate, router)

    # Фоновые задачи
    worker = JobWorker(scheduler)
    worker.register(DELETE_USER_MESSAGES_JOB, message_handler.handle_cleanup_job)
    worker.register(TEMPBAN_EXPIRY_JOB, ban_handler.handle_tempban_expiry)

    return ModerationServices(
        platform=platform,
        user_actions=user_actions,
        chats=chats,
        admins=admins,
        health_cache=health_cache,
        health_service=health_service,
        scheduler=scheduler,
        worker=worker,
        enforcement=enforcement,
        orchestrator=orchestrator,
        router=router,
        pipeline=pipeline,
        chat_sync=ChatSyncService(platform, chats, admins, health_service),
    )
