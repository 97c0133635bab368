# modguard/services/moderation/types.py
"""
Общие типы конвейера модерации.

Все значения неизменяемые (frozen dataclass): переход состояния:
это новый объект через dataclasses.replace, а не мутация.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Тип записи журнала действий живёт рядом с моделью БД
from modguard.database.models_moderation import UserActionType

__all__ = [
    "Actor",
    "ActorType",
    "UserActionType",
    "CheckName",
    "CheckResultType",
    "CheckResponse",
    "ContentCheckRequest",
    "ContentDetectionResult",
    "GateResult",
    "ModerationMessage",
    "ModerationResult",
    "BanResult",
    "WarnResult",
    "TrustResult",
    "RestrictResult",
    "UnbanResult",
    "TempBanResult",
    "DeleteResult",
    "MarkAsSpamResult",
    "format_violations",
]


# ============================================================
# ACTOR: КТО ВЫПОЛНИЛ ДЕЙСТВИЕ
# ============================================================
class ActorType(str, enum.Enum):
    SYSTEM = "system"
    TELEGRAM_USER = "telegram_user"
    WEB_USER = "web_user"
    AUTO_DETECTION = "auto_detection"
    AUTO_BAN = "auto_ban"
    FILE_SCANNER = "file_scanner"


@dataclass(frozen=True)
class Actor:
    """
    Идентичность инициатора действия модерации.

    Создаётся через фабричные методы в точке вызова:
        Actor.telegram_user(123, "@admin")
        Actor.auto_ban()

    Attributes:
        type: Вид актора
        id: Идентификатор (telegram id, id веб-пользователя) если есть
        name: Отображаемое имя, email или имя системного компонента
    """
    type: ActorType
    id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def system(cls, name: str) -> "Actor":
        return cls(ActorType.SYSTEM, name=name)

    @classmethod
    def telegram_user(cls, user_id: int, display_name: Optional[str] = None) -> "Actor":
        return cls(ActorType.TELEGRAM_USER, id=str(user_id), name=display_name)

    @classmethod
    def web_user(cls, user_id: str, email: Optional[str] = None) -> "Actor":
        return cls(ActorType.WEB_USER, id=str(user_id), name=email)

    @classmethod
    def auto_detection(cls) -> "Actor":
        return cls(ActorType.AUTO_DETECTION)

    @classmethod
    def auto_ban(cls) -> "Actor":
        return cls(ActorType.AUTO_BAN)

    @classmethod
    def file_scanner(cls) -> "Actor":
        return cls(ActorType.FILE_SCANNER)

    @property
    def display_name(self) -> str:
        if self.type == ActorType.TELEGRAM_USER:
            return self.name or f"id{self.id}"
        if self.type == ActorType.WEB_USER:
            return self.name or f"web:{self.id}"
        if self.type == ActorType.SYSTEM:
            return self.name or "System"
        # Автоматические акторы показываем по типу
        return {
            ActorType.AUTO_DETECTION: "Auto-Detection",
            ActorType.AUTO_BAN: "Auto-Ban",
            ActorType.FILE_SCANNER: "File Scanner",
        }[self.type]

    def to_db(self) -> Tuple[str, Optional[str], Optional[str]]:
        """Раскладывает актора в колонки (type, id, name)."""
        return self.type.value, self.id, self.name

    @classmethod
    def from_db(cls, actor_type: str, actor_id: Optional[str], actor_name: Optional[str]) -> "Actor":
        return cls(ActorType(actor_type), id=actor_id, name=actor_name)

    def __str__(self) -> str:
        return self.display_name


# ============================================================
# РЕЗУЛЬТАТЫ ДВИЖКА ДЕТЕКЦИИ
# ============================================================
class CheckResultType(str, enum.Enum):
    SPAM = "Spam"
    HAM = "Ham"
    REVIEW = "Review"
    MALWARE = "Malware"


class CheckName:
    """Имена проверок движка, на которые опирается маршрутизация."""
    # Блок-лист URL: жёсткая блокировка без порогов
    URL_BLOCKLIST = "UrlBlocklist"
    # AI-классификатор, имеет право вето
    OPENAI = "OpenAI"
    # Сканер файлов (вирусы)
    FILE_SCANNING = "FileScanning"


@dataclass(frozen=True)
class CheckResponse:
    """Результат одной проверки движка (confidence 0–100)."""
    check_name: str
    result: CheckResultType
    confidence: int = 0
    details: Optional[str] = None

    def is_named(self, name: str) -> bool:
        # Имена проверок сравниваются без учёта регистра
        return self.check_name.lower() == name.lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckResponse":
        return cls(
            check_name=str(data.get("check_name") or data.get("checkName") or ""),
            result=CheckResultType(data.get("result", CheckResultType.HAM.value)),
            confidence=int(data.get("confidence") or 0),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class ContentDetectionResult:
    """
    Итог движка детекции по одному сообщению.

    net_confidence: знаковая агрегированная оценка (положительная
    за спам), может быть отрицательной.
    """
    is_spam: bool
    net_confidence: int = 0
    max_confidence: int = 0
    check_results: Tuple[CheckResponse, ...] = ()

    def __post_init__(self):
        # Движок может вернуть None вместо списка: считаем пустым
        if self.check_results is None:
            object.__setattr__(self, "check_results", ())
        elif not isinstance(self.check_results, tuple):
            object.__setattr__(self, "check_results", tuple(self.check_results))

    def find_check(self, name: str) -> Optional[CheckResponse]:
        """Первая проверка с таким именем (без учёта регистра) или None."""
        for check in self.check_results:
            if check.is_named(name):
                return check
        return None

    def checks_with_result(self, result: CheckResultType) -> List[CheckResponse]:
        return [c for c in self.check_results if c.result == result]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentDetectionResult":
        raw_checks = data.get("check_results")
        if raw_checks is None:
            raw_checks = data.get("checkResults") or []
        return cls(
            is_spam=bool(data.get("is_spam", data.get("isSpam", False))),
            net_confidence=int(data.get("net_confidence", data.get("netConfidence", 0)) or 0),
            max_confidence=int(data.get("max_confidence", data.get("maxConfidence", 0)) or 0),
            check_results=tuple(CheckResponse.from_dict(c) for c in raw_checks),
        )


# ============================================================
# ЗАПРОС НА ПРОВЕРКУ И РЕЗУЛЬТАТ ГЕЙТА
# ============================================================
@dataclass(frozen=True)
class ContentCheckRequest:
    user_id: int
    chat_id: int
    message_text: Optional[str]
    is_user_trusted: bool = False
    is_user_admin: bool = False
    message_id: Optional[int] = None

    def with_user_status(self, is_trusted: bool, is_admin: bool) -> "ContentCheckRequest":
        return replace(self, is_user_trusted=is_trusted, is_user_admin=is_admin)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "message_id": self.message_id,
            "message_text": self.message_text,
            "is_user_trusted": self.is_user_trusted,
            "is_user_admin": self.is_user_admin,
        }


@dataclass(frozen=True)
class GateResult:
    """
    Решение гейта по одному сообщению.

    Если spam_check_skipped=True и нарушений критических проверок нет,
    spam_result всегда None: полная детекция не запрашивалась
    (или её результат не нужен).
    """
    is_user_trusted: bool
    is_user_admin: bool
    spam_check_skipped: bool
    skip_reason: Optional[str] = None
    critical_check_violations: Tuple[str, ...] = ()
    spam_result: Optional[ContentDetectionResult] = None

    @property
    def has_critical_violations(self) -> bool:
        return len(self.critical_check_violations) > 0

    @property
    def needs_routing(self) -> bool:
        return not self.spam_check_skipped or self.has_critical_violations


# ============================================================
# СООБЩЕНИЕ ДЛЯ МАРШРУТИЗАЦИИ
# ============================================================
@dataclass(frozen=True)
class ModerationMessage:
    """Срез входящего сообщения, достаточный для модерации."""
    message_id: int
    chat_id: int
    user_id: int
    text: Optional[str] = None
    chat_title: Optional[str] = None
    user_display_name: Optional[str] = None

    @classmethod
    def from_aiogram(cls, message) -> "ModerationMessage":
        user = message.from_user
        display = None
        if user is not None:
            display = f"@{user.username}" if user.username else user.full_name
        return cls(
            message_id=message.message_id,
            chat_id=message.chat.id,
            user_id=user.id if user else 0,
            text=message.text or message.caption,
            chat_title=message.chat.title,
            user_display_name=display,
        )

    @property
    def user_label(self) -> str:
        return self.user_display_name or f"id{self.user_id}"

    @property
    def chat_label(self) -> str:
        return self.chat_title or str(self.chat_id)


# ============================================================
# РЕЗУЛЬТАТЫ ДЕЙСТВИЙ ОРКЕСТРАТОРА
# ============================================================
@dataclass(frozen=True)
class ModerationResult:
    """
    Базовый результат глагола модерации.

    Оркестратор никогда не бросает исключение для ожидаемых отказов,
    вместо этого success=False и error_message.
    """
    success: bool = False
    chats_affected: int = 0
    chats_failed: int = 0
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, error_message: str, **kwargs):
        return cls(success=False, error_message=error_message, **kwargs)


@dataclass(frozen=True)
class BanResult(ModerationResult):
    trust_removed: bool = False
    message_deleted: bool = False
    training_sample_created: bool = False


@dataclass(frozen=True)
class WarnResult(ModerationResult):
    warning_count: int = 0
    auto_ban_triggered: bool = False


@dataclass(frozen=True)
class TrustResult(ModerationResult):
    pass


@dataclass(frozen=True)
class RestrictResult(ModerationResult):
    chat_id: Optional[int] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class UnbanResult(ModerationResult):
    trust_restored: bool = False


@dataclass(frozen=True)
class TempBanResult(ModerationResult):
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class DeleteResult(ModerationResult):
    message_deleted: bool = False


@dataclass(frozen=True)
class MarkAsSpamResult(ModerationResult):
    message_deleted: bool = False
    trust_removed: bool = False
    training_sample_created: bool = False


def format_violations(violations: Sequence[str]) -> str:
    """Нумерованный список нарушений для уведомления пользователя."""
    return "\n".join(f"{i}. {v}" for i, v in enumerate(violations, start=1))
