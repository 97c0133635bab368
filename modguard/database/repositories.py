# modguard/database/repositories.py
"""
Репозитории модерации.

Каждый репозиторий получает фабрику сессий (async_sessionmaker)
и открывает короткую сессию на один вызов. Ядро модерации только
читает и дописывает записи, ничего не кэширует между операциями.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from modguard.database.models import ManagedChat, ChatAdmin, MessageRecord, utcnow
from modguard.database.models_moderation import (
    UserActionRecord,
    UserActionType,
    AuditLogEntry,
    Report,
    ReportStatus,
    TrainingSample,
    ModerationConfig,
)

logger = logging.getLogger(__name__)


def _not_expired(now: datetime):
    """Условие "запись не истекла" для user_actions."""
    return (UserActionRecord.expires_at.is_(None)) | (UserActionRecord.expires_at > now)


# ============================================================
# ЖУРНАЛ ДЕЙСТВИЙ НАД ПОЛЬЗОВАТЕЛЯМИ
# ============================================================
class UserActionsRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def add_action(
        self,
        user_id: int,
        action_type: UserActionType,
        issued_by,
        reason: Optional[str] = None,
        message_id: Optional[int] = None,
        chat_id: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> UserActionRecord:
        """Дописывает запись в журнал (issued_by: Actor)."""
        actor_type, actor_id, actor_name = issued_by.to_db()
        record = UserActionRecord(
            user_id=user_id,
            action_type=action_type,
            chat_id=chat_id,
            message_id=message_id,
            issued_by_type=actor_type,
            issued_by_id=actor_id,
            issued_by_name=actor_name,
            issued_at=utcnow(),
            expires_at=expires_at,
            reason=reason,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return record

    async def _latest_of(
        self,
        user_id: int,
        action_types: Sequence[UserActionType],
    ) -> Optional[UserActionRecord]:
        now = utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserActionRecord)
                .where(
                    UserActionRecord.user_id == user_id,
                    UserActionRecord.action_type.in_(list(action_types)),
                    _not_expired(now),
                )
                .order_by(UserActionRecord.issued_at.desc(), UserActionRecord.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def is_trusted(self, user_id: int) -> bool:
        # Последняя неистёкшая запись TRUST/UNTRUST определяет статус
        latest = await self._latest_of(user_id, (UserActionType.TRUST, UserActionType.UNTRUST))
        return latest is not None and latest.action_type == UserActionType.TRUST

    async def get_active_ban(self, user_id: int) -> Optional[UserActionRecord]:
        latest = await self._latest_of(user_id, (UserActionType.BAN, UserActionType.UNBAN))
        if latest is not None and latest.action_type == UserActionType.BAN:
            return latest
        return None

    async def is_banned(self, user_id: int) -> bool:
        return await self.get_active_ban(user_id) is not None

    async def get_active_warning_count(self, user_id: int) -> int:
        """
        Количество действующих предупреждений.

        Считаются неистёкшие WARN после последнего UNBAN
        (разбан обнуляет счётчик).
        """
        now = utcnow()
        last_unban = await self._latest_of(user_id, (UserActionType.UNBAN,))
        async with self._session_factory() as session:
            query = select(func.count(UserActionRecord.id)).where(
                UserActionRecord.user_id == user_id,
                UserActionRecord.action_type == UserActionType.WARN,
                _not_expired(now),
            )
            if last_unban is not None:
                query = query.where(UserActionRecord.issued_at >= last_unban.issued_at)
            result = await session.execute(query)
            return int(result.scalar_one() or 0)

    async def get_active_restrictions(self, user_id: int) -> List[UserActionRecord]:
        now = utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserActionRecord).where(
                    UserActionRecord.user_id == user_id,
                    UserActionRecord.action_type == UserActionType.RESTRICT,
                    _not_expired(now),
                )
            )
            return list(result.scalars().all())

    async def expire_restrictions(self, user_id: int, chat_id: Optional[int] = None) -> int:
        """Помечает ограничения истёкшими (chat_id=None: все)."""
        now = utcnow()
        async with self._session_factory() as session:
            stmt = (
                update(UserActionRecord)
                .where(
                    UserActionRecord.user_id == user_id,
                    UserActionRecord.action_type == UserActionType.RESTRICT,
                    _not_expired(now),
                )
                .values(expires_at=now)
            )
            if chat_id is not None:
                stmt = stmt.where(UserActionRecord.chat_id == chat_id)
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def list_for_user(self, user_id: int) -> List[UserActionRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserActionRecord)
                .where(UserActionRecord.user_id == user_id)
                .order_by(UserActionRecord.issued_at, UserActionRecord.id)
            )
            return list(result.scalars().all())


# ============================================================
# УПРАВЛЯЕМЫЕ ЧАТЫ
# ============================================================
class ManagedChatsRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def list_active(self) -> List[ManagedChat]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ManagedChat)
                .where(ManagedChat.is_active.is_(True), ManagedChat.is_deleted.is_(False))
                .order_by(ManagedChat.chat_id)
            )
            return list(result.scalars().all())

    async def get_chat(self, chat_id: int) -> Optional[ManagedChat]:
        async with self._session_factory() as session:
            result = await session.execute(select(ManagedChat).where(ManagedChat.chat_id == chat_id))
            return result.scalar_one_or_none()

    async def upsert_chat(self, chat_id: int, chat_name: Optional[str] = None) -> Tuple[ManagedChat, bool]:
        """
        Создаёт запись чата при первом взаимодействии или реактивирует.

        Returns:
            (чат, создан_ли_заново)
        """
        async with self._session_factory() as session:
            result = await session.execute(select(ManagedChat).where(ManagedChat.chat_id == chat_id))
            chat = result.scalar_one_or_none()
            created = chat is None
            if created:
                chat = ManagedChat(chat_id=chat_id, chat_name=chat_name, is_active=True)
                session.add(chat)
            else:
                chat.is_active = True
                chat.is_deleted = False
                if chat_name:
                    chat.chat_name = chat_name
            await session.commit()
            await session.refresh(chat)
            return chat, created

    async def mark_inactive(self, chat_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ManagedChat).where(ManagedChat.chat_id == chat_id).values(is_active=False)
            )
            await session.commit()

    async def update_health_status(self, chat_id: int, status: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ManagedChat)
                .where(ManagedChat.chat_id == chat_id)
                .values(health_status=status, last_health_check=utcnow())
            )
            await session.commit()


# ============================================================
# АДМИНИСТРАТОРЫ ЧАТОВ
# ============================================================
class ChatAdminsRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def is_admin(self, chat_id: int, user_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatAdmin.id).where(
                    ChatAdmin.chat_id == chat_id,
                    ChatAdmin.telegram_id == user_id,
                    ChatAdmin.is_active.is_(True),
                )
            )
            return result.first() is not None

    async def chats_where_admin(self, user_id: int) -> List[int]:
        """Чаты, где пользователь админ; учитываются только активные управляемые чаты."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatAdmin.chat_id)
                .join(ManagedChat, ManagedChat.chat_id == ChatAdmin.chat_id)
                .where(
                    ChatAdmin.telegram_id == user_id,
                    ChatAdmin.is_active.is_(True),
                    ManagedChat.is_active.is_(True),
                    ManagedChat.is_deleted.is_(False),
                )
            )
            return [row[0] for row in result.all()]

    async def get_chat_admins(self, chat_id: int) -> List[ChatAdmin]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatAdmin).where(ChatAdmin.chat_id == chat_id, ChatAdmin.is_active.is_(True))
            )
            return list(result.scalars().all())

    async def upsert_admin(
        self,
        chat_id: int,
        telegram_id: int,
        username: Optional[str] = None,
        is_creator: bool = False,
        is_linked: Optional[bool] = None,
    ) -> ChatAdmin:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ChatAdmin).where(ChatAdmin.chat_id == chat_id, ChatAdmin.telegram_id == telegram_id)
            )
            admin = result.scalar_one_or_none()
            if admin is None:
                admin = ChatAdmin(
                    chat_id=chat_id,
                    telegram_id=telegram_id,
                    username=username,
                    is_creator=is_creator,
                    is_linked=bool(is_linked),
                )
                session.add(admin)
            else:
                admin.is_active = True
                admin.is_creator = is_creator
                if username:
                    admin.username = username
                if is_linked is not None:
                    admin.is_linked = is_linked
            await session.commit()
            await session.refresh(admin)
            return admin

    async def deactivate_admin(self, chat_id: int, telegram_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ChatAdmin)
                .where(ChatAdmin.chat_id == chat_id, ChatAdmin.telegram_id == telegram_id)
                .values(is_active=False)
            )
            await session.commit()


# ============================================================
# ИСТОРИЯ СООБЩЕНИЙ
# ============================================================
class MessagesRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_message(self, chat_id: int, message_id: int) -> Optional[MessageRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MessageRecord).where(
                    MessageRecord.chat_id == chat_id,
                    MessageRecord.message_id == message_id,
                )
            )
            return result.scalar_one_or_none()

    async def save_message(
        self,
        chat_id: int,
        message_id: int,
        user_id: Optional[int],
        text: Optional[str],
    ) -> Tuple[MessageRecord, bool]:
        """Сохраняет сообщение если его ещё нет; возвращает (запись, создана_ли)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(MessageRecord).where(
                    MessageRecord.chat_id == chat_id,
                    MessageRecord.message_id == message_id,
                )
            )
            record = result.scalar_one_or_none()
            if record is not None:
                return record, False
            record = MessageRecord(chat_id=chat_id, message_id=message_id, user_id=user_id, text=text)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return record, True

    async def mark_deleted(self, chat_id: int, message_id: int, source: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(MessageRecord)
                .where(MessageRecord.chat_id == chat_id, MessageRecord.message_id == message_id)
                .values(deleted_at=utcnow(), deletion_source=source)
            )
            await session.commit()

    async def list_user_messages(self, user_id: int, include_deleted: bool = False) -> List[MessageRecord]:
        async with self._session_factory() as session:
            query = select(MessageRecord).where(MessageRecord.user_id == user_id)
            if not include_deleted:
                query = query.where(MessageRecord.deleted_at.is_(None))
            result = await session.execute(query.order_by(MessageRecord.chat_id, MessageRecord.message_id))
            return list(result.scalars().all())


# ============================================================
# АУДИТ
# ============================================================
class AuditRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def log_event(
        self,
        event_type: str,
        actor,
        target_user_id: Optional[int] = None,
        value: Optional[str] = None,
    ) -> AuditLogEntry:
        actor_type, actor_id, actor_name = actor.to_db()
        entry = AuditLogEntry(
            event_type=event_type,
            actor_type=actor_type,
            actor_id=actor_id,
            actor_name=actor_name,
            target_user_id=target_user_id,
            value=value,
        )
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()
            await session.refresh(entry)
        return entry

    async def list_for_user(self, user_id: int) -> List[AuditLogEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditLogEntry)
                .where(AuditLogEntry.target_user_id == user_id)
                .order_by(AuditLogEntry.id)
            )
            return list(result.scalars().all())


# ============================================================
# ОТЧЁТЫ
# ============================================================
class ReportsRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def create_report(
        self,
        message_id: int,
        chat_id: int,
        admin_notes: str,
        reported_by_name: str = "Auto-Detection",
        reported_by_user_id: Optional[int] = None,
        is_automated: bool = True,
    ) -> Report:
        report = Report(
            message_id=message_id,
            chat_id=chat_id,
            reported_by_user_id=reported_by_user_id,
            reported_by_name=reported_by_name,
            status=ReportStatus.PENDING,
            is_automated=is_automated,
            admin_notes=admin_notes,
        )
        async with self._session_factory() as session:
            session.add(report)
            await session.commit()
            await session.refresh(report)
        return report

    async def list_pending(self, chat_id: Optional[int] = None) -> List[Report]:
        async with self._session_factory() as session:
            query = select(Report).where(Report.status == ReportStatus.PENDING)
            if chat_id is not None:
                query = query.where(Report.chat_id == chat_id)
            result = await session.execute(query.order_by(Report.id))
            return list(result.scalars().all())


# ============================================================
# ОБУЧАЮЩАЯ ВЫБОРКА
# ============================================================
class TrainingSamplesRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def add_sample(
        self,
        message_text: str,
        is_spam: bool,
        source: str,
        added_by,
        confidence: Optional[float] = None,
        message_id: Optional[int] = None,
        content_hash: Optional[str] = None,
    ) -> TrainingSample:
        actor_type, actor_id, _ = added_by.to_db()
        sample = TrainingSample(
            message_text=message_text,
            is_spam=is_spam,
            source=source,
            confidence=confidence,
            added_by_type=actor_type,
            added_by_id=actor_id,
            message_id=message_id,
            content_hash=content_hash,
        )
        async with self._session_factory() as session:
            session.add(sample)
            await session.commit()
            await session.refresh(sample)
        return sample

    async def list_samples(self, is_spam: Optional[bool] = None) -> List[TrainingSample]:
        async with self._session_factory() as session:
            query = select(TrainingSample)
            if is_spam is not None:
                query = query.where(TrainingSample.is_spam.is_(is_spam))
            result = await session.execute(query.order_by(TrainingSample.id))
            return list(result.scalars().all())


# ============================================================
# НАСТРОЙКИ МОДЕРАЦИИ
# ============================================================
class ModerationConfigRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_config(self, chat_id: int) -> Optional[ModerationConfig]:
        async with self._session_factory() as session:
            return await session.get(ModerationConfig, chat_id)

    async def upsert_config(self, chat_id: int, **values) -> ModerationConfig:
        async with self._session_factory() as session:
            config = await session.get(ModerationConfig, chat_id)
            if config is None:
                config = ModerationConfig(chat_id=chat_id)
                session.add(config)
            for key, value in values.items():
                # Неизвестные ключи пропускаем
                if not hasattr(ModerationConfig, key):
                    logger.warning(f"Неизвестная настройка модерации: {key}")
                    continue
                setattr(config, key, value)
            await session.commit()
            await session.refresh(config)
            return config


def chat_ids(chats: Iterable[ManagedChat]) -> List[int]:
    return [c.chat_id for c in chats]
