# modguard/services/moderation/config_service.py
"""
Сервис настроек модерации для чата.

Порядок поиска: настройки чата → глобальные (chat_id=0) → значения
по умолчанию. Ошибка загрузки никогда не выходит наружу: логируем
и возвращаем значения по умолчанию.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем dataclass для неизменяемых настроек
from dataclasses import dataclass
# Импортируем типы для аннотаций
from typing import FrozenSet, Optional

# Импортируем репозиторий настроек
from modguard.database.repositories import ModerationConfigRepository


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# ID записи глобальных настроек
GLOBAL_CONFIG_CHAT_ID = 0

# Значения по умолчанию
DEFAULT_AUTO_BAN_THRESHOLD = 50
DEFAULT_REVIEW_THRESHOLD = 0
DEFAULT_CONFIDENT_THRESHOLD = 85
DEFAULT_WARN_AUTO_BAN_THRESHOLD = 3
DEFAULT_WARN_AUTO_BAN_REASON = "Exceeded warning threshold ({count}/{threshold} warnings)"


@dataclass(frozen=True)
class DetectionThresholds:
    """Пороги маршрутизации результата детекции."""
    # NetConfidence выше этого значения (вместе с уверенным AI): автобан
    auto_ban_threshold: int = DEFAULT_AUTO_BAN_THRESHOLD
    # NetConfidence выше этого значения: отчёт на ручную проверку
    review_threshold: int = DEFAULT_REVIEW_THRESHOLD
    # Уверенность AI-классификатора, при которой он считается уверенным
    confident_threshold: int = DEFAULT_CONFIDENT_THRESHOLD


@dataclass(frozen=True)
class WarningConfig:
    """Настройки автобана по количеству предупреждений."""
    auto_ban_enabled: bool = False
    auto_ban_threshold: int = DEFAULT_WARN_AUTO_BAN_THRESHOLD
    auto_ban_reason: str = DEFAULT_WARN_AUTO_BAN_REASON

    def should_auto_ban(self, warning_count: int) -> bool:
        return self.auto_ban_enabled and self.auto_ban_threshold > 0 and warning_count >= self.auto_ban_threshold

    def format_reason(self, warning_count: int) -> str:
        try:
            return self.auto_ban_reason.format(count=warning_count, threshold=self.auto_ban_threshold)
        except (KeyError, IndexError, ValueError) as e:
            # Кривой шаблон в настройках: используем стандартный
            logger.warning(f"Некорректный шаблон причины автобана {self.auto_ban_reason!r}: {e}")
            return DEFAULT_WARN_AUTO_BAN_REASON.format(count=warning_count, threshold=self.auto_ban_threshold)


def parse_check_names(raw: Optional[str]) -> FrozenSet[str]:
    """'UrlBlocklist, FileScanning' -> {'urlblocklist', 'filescanning'}"""
    if not raw:
        return frozenset()
    return frozenset(name.strip().lower() for name in raw.split(",") if name.strip())


class ModerationConfigService:
    """Чтение настроек модерации с откатом к значениям по умолчанию."""

    def __init__(self, repository: ModerationConfigRepository):
        self._repository = repository

    async def _load(self, chat_id: int):
        # Сначала настройки чата, затем глобальные
        config = await self._repository.get_config(chat_id)
        if config is None and chat_id != GLOBAL_CONFIG_CHAT_ID:
            config = await self._repository.get_config(GLOBAL_CONFIG_CHAT_ID)
        return config

    async def get_detection_thresholds(self, chat_id: int) -> DetectionThresholds:
        try:
            config = await self._load(chat_id)
        except Exception as e:
            logger.error(f"Не удалось загрузить пороги детекции для чата {chat_id}, используем стандартные: {e}")
            return DetectionThresholds()

        if config is None:
            return DetectionThresholds()

        return DetectionThresholds(
            auto_ban_threshold=config.auto_ban_threshold if config.auto_ban_threshold is not None else DEFAULT_AUTO_BAN_THRESHOLD,
            review_threshold=config.review_threshold if config.review_threshold is not None else DEFAULT_REVIEW_THRESHOLD,
            confident_threshold=config.confident_threshold if config.confident_threshold is not None else DEFAULT_CONFIDENT_THRESHOLD,
        )

    async def critical_check_names(self, chat_id: int) -> FrozenSet[str]:
        """Имена проверок (в нижнем регистре), которые нельзя обойти доверием."""
        try:
            config = await self._load(chat_id)
        except Exception as e:
            logger.error(f"Не удалось загрузить критические проверки для чата {chat_id}: {e}")
            return frozenset()
        if config is None:
            return frozenset()
        return parse_check_names(config.critical_checks)

    async def get_warning_config(self, chat_id: int) -> WarningConfig:
        try:
            config = await self._load(chat_id)
        except Exception as e:
            logger.error(f"Не удалось загрузить настройки предупреждений для чата {chat_id}: {e}")
            return WarningConfig()

        if config is None:
            return WarningConfig()

        return WarningConfig(
            auto_ban_enabled=bool(config.warn_auto_ban_enabled),
            auto_ban_threshold=config.warn_auto_ban_threshold or 0,
            auto_ban_reason=config.warn_auto_ban_reason or DEFAULT_WARN_AUTO_BAN_REASON,
        )
