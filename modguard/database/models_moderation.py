# Импорт функции для создания колонок таблицы
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Boolean, Enum as SQLEnum, Text, Index, Float
# Импорт базового класса для всех моделей
from modguard.database.models import Base, utcnow
# Импорт enum для типобезопасного определения констант
import enum


# ============================================================
# ENUM ТИПЫ ДЛЯ ДЕЙСТВИЙ МОДЕРАЦИИ
# ============================================================

# Тип записи в журнале действий над пользователем
class UserActionType(str, enum.Enum):
    # Бан во всех управляемых чатах (expires_at задан для временного бана)
    BAN = "BAN"
    # Предупреждение
    WARN = "WARN"
    # Пользователь помечен доверенным (проверки пропускаются)
    TRUST = "TRUST"
    # Доверие снято
    UNTRUST = "UNTRUST"
    # Бан снят
    UNBAN = "UNBAN"
    # Ограничение (мут) в одном чате или глобально (chat_id=0)
    RESTRICT = "RESTRICT"


# Статус отчёта для ручной проверки админом
class ReportStatus(str, enum.Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    DISMISSED = "DISMISSED"


# ============================================================
# ЖУРНАЛ ДЕЙСТВИЙ НАД ПОЛЬЗОВАТЕЛЯМИ (append-only)
# ============================================================
# Текущий статус (бан/доверие/число предупреждений) вычисляется
# из последних неистёкших записей, отдельных флагов нет.
class UserActionRecord(Base):
    __tablename__ = "user_actions"

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, nullable=False)
    action_type = Column(
        SQLEnum(UserActionType, name="user_action_type_enum", native_enum=False),
        nullable=False,
    )
    # Для RESTRICT: чат ограничения (0 = все чаты)
    chat_id = Column(BigInteger, nullable=True)
    message_id = Column(BigInteger, nullable=True)
    # Сериализованный Actor (см. services/moderation/types.py)
    issued_by_type = Column(String(30), nullable=False)
    issued_by_id = Column(String(64), nullable=True)
    issued_by_name = Column(String, nullable=True)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_user_actions_user_type", "user_id", "action_type"),
    )


# ============================================================
# АУДИТ
# ============================================================
class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    # USER_BANNED, USER_WARNED, USER_TRUSTED, MESSAGE_DELETED, ...
    event_type = Column(String(50), nullable=False)
    actor_type = Column(String(30), nullable=False)
    actor_id = Column(String(64), nullable=True)
    actor_name = Column(String, nullable=True)
    target_user_id = Column(BigInteger, nullable=True)
    value = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# ============================================================
# ОТЧЁТЫ ДЛЯ РУЧНОЙ ПРОВЕРКИ
# ============================================================
class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True)
    message_id = Column(BigInteger, nullable=False)
    chat_id = Column(BigInteger, nullable=False)
    # None: отчёт создан системой
    reported_by_user_id = Column(BigInteger, nullable=True)
    reported_by_name = Column(String, nullable=True)
    reported_at = Column(DateTime, default=utcnow)
    status = Column(
        SQLEnum(ReportStatus, name="report_status_enum", native_enum=False),
        default=ReportStatus.PENDING,
        nullable=False,
    )
    is_automated = Column(Boolean, default=False, nullable=False)
    admin_notes = Column(Text, nullable=True)


# ============================================================
# ОБУЧАЮЩАЯ ВЫБОРКА
# ============================================================
class TrainingSample(Base):
    __tablename__ = "training_samples"

    id = Column(Integer, primary_key=True)
    message_text = Column(Text, nullable=False)
    is_spam = Column(Boolean, nullable=False)
    # "manual" / "auto_detection"
    source = Column(String(30), nullable=False)
    confidence = Column(Float, nullable=True)
    added_by_type = Column(String(30), nullable=True)
    added_by_id = Column(String(64), nullable=True)
    added_at = Column(DateTime, default=utcnow)
    message_id = Column(BigInteger, nullable=True)
    # SimHash в hex (16 символов)
    content_hash = Column(String(16), nullable=True, index=True)


# ============================================================
# НАСТРОЙКИ МОДЕРАЦИИ ДЛЯ ЧАТА
# ============================================================
# chat_id=0: глобальные настройки, остальные: переопределения чата
class ModerationConfig(Base):
    __tablename__ = "moderation_config"

    chat_id = Column(BigInteger, primary_key=True)
    # Пороги маршрутизации детекций
    auto_ban_threshold = Column(Integer, default=50, nullable=False)
    review_threshold = Column(Integer, default=0, nullable=False)
    confident_threshold = Column(Integer, default=85, nullable=False)
    # Проверки, которые выполняются даже для доверенных (через запятую)
    critical_checks = Column(Text, nullable=True)
    # Автобан за предупреждения
    warn_auto_ban_enabled = Column(Boolean, default=False, nullable=False)
    warn_auto_ban_threshold = Column(Integer, default=3, nullable=False)
    warn_auto_ban_reason = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
