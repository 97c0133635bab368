# modguard/services/moderation/handlers/outcome.py
"""Результат атомарного действия (внутренний контракт обработчиков)."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class HandlerOutcome:
    """
    Attributes:
        success: Действие выполнено
        chats_affected: В скольких чатах применено
        chats_failed: В скольких чатах не удалось
        error_message: Причина отказа
        expires_at: Окончание временного действия
        warning_count: Число действующих предупреждений (для warn)
        record_persisted: Запись в журнал user_actions сохранена
    """
    success: bool
    chats_affected: int = 0
    chats_failed: int = 0
    error_message: Optional[str] = None
    expires_at: Optional[datetime] = None
    warning_count: int = 0
    record_persisted: bool = True

    @classmethod
    def ok(cls, **kwargs) -> "HandlerOutcome":
        return cls(success=True, **kwargs)

    @classmethod
    def failed(cls, error_message: str, **kwargs) -> "HandlerOutcome":
        return cls(success=False, error_message=error_message, **kwargs)
