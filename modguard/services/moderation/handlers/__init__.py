# ============================================================
# АТОМАРНЫЕ ДЕЙСТВИЯ МОДЕРАЦИИ
# ============================================================
# Каждый обработчик делает одно действие и ничего не знает
# о политике. Составные транзакции собирает оркестратор.
# ============================================================

from .outcome import HandlerOutcome
from .ban_handler import BanHandler, outcome_from_enforcement
from .warn_handler import WarnHandler
from .trust_handler import TrustHandler
from .restrict_handler import RestrictHandler, GLOBAL_CHAT_ID
from .message_handler import MessageHandler
from .audit_handler import AuditHandler
from .notification_handler import NotificationHandler
from .training_handler import TrainingHandler, determine_if_training_worthy

__all__ = [
    "HandlerOutcome",
    "BanHandler",
    "outcome_from_enforcement",
    "WarnHandler",
    "TrustHandler",
    "RestrictHandler",
    "GLOBAL_CHAT_ID",
    "MessageHandler",
    "AuditHandler",
    "NotificationHandler",
    "TrainingHandler",
    "determine_if_training_worthy",
]
