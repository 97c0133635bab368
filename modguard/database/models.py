from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Boolean, Text, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# 🏠 Управляемые чаты
# Запись создаётся при первом взаимодействии бота с чатом,
# is_active=False когда бота удалили из чата.
# health_status пересчитывается фоновым обходом (ChatHealthService)
class ManagedChat(Base):
    __tablename__ = "managed_chats"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, unique=True, nullable=False, index=True)
    chat_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    # "unknown" / "healthy" / "unhealthy"
    health_status = Column(String(20), default="unknown", nullable=False)
    last_health_check = Column(DateTime, nullable=True)
    added_at = Column(DateTime, default=utcnow)


# 👮 Администраторы управляемых чатов
# Используется для глобальной защиты админов и для рассылки уведомлений.
# is_linked: админ связал свой Telegram с панелью и получает DM
class ChatAdmin(Base):
    __tablename__ = "chat_admins"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, nullable=False)
    telegram_id = Column(BigInteger, nullable=False)
    username = Column(String, nullable=True)
    is_creator = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_linked = Column(Boolean, default=False, nullable=False)
    promoted_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("chat_id", "telegram_id", name="uq_chat_admin"),
        Index("ix_chat_admins_telegram_id", "telegram_id"),
    )


# 💬 История сообщений (минимум, нужный для модерации)
class MessageRecord(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    message_id = Column(BigInteger, nullable=False)
    chat_id = Column(BigInteger, nullable=False)
    user_id = Column(BigInteger, nullable=True)
    text = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=utcnow)
    deleted_at = Column(DateTime, nullable=True)
    deletion_source = Column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("chat_id", "message_id", name="uq_message_chat"),
        Index("ix_messages_user_id", "user_id"),
    )
