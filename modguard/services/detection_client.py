# ============================================================
# КЛИЕНТ ДВИЖКА ДЕТЕКЦИИ
# ============================================================
# Движок детекции: внешний сервис (чёрный ящик). Принимает
# сообщение со статусом пользователя и возвращает оценку по
# каждой проверке и агрегированные net/max уверенности.
#
# POST {DETECTION_ENGINE_URL}
#   -> {"user_id", "chat_id", "message_id", "message_text",
#       "is_user_trusted", "is_user_admin"}
#   <- {"is_spam", "net_confidence", "max_confidence",
#       "check_results": [{"check_name", "result", "confidence", "details"}]}
# ============================================================

# Импортируем aiohttp для асинхронных HTTP запросов
import aiohttp
# Импортируем logging для логирования ошибок
import logging
# Импортируем типы для аннотаций
from typing import Optional

from modguard.config import DETECTION_ENGINE_TIMEOUT, DETECTION_ENGINE_URL
from modguard.services.moderation.types import ContentCheckRequest, ContentDetectionResult

# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


class DetectionEngineError(Exception):
    """Движок детекции недоступен или вернул некорректный ответ."""


class HttpDetectionEngine:
    """
    HTTP-клиент движка детекции.

    Args:
        url: Адрес эндпоинта проверки
        timeout_seconds: Общий таймаут запроса
        session: Внешняя aiohttp-сессия (если не передана: создаётся на запрос)
    """

    def __init__(
        self,
        url: str = DETECTION_ENGINE_URL,
        timeout_seconds: float = DETECTION_ENGINE_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session

    async def check(self, request: ContentCheckRequest) -> ContentDetectionResult:
        """
        Отправляет сообщение на проверку.

        Raises:
            DetectionEngineError: при сетевой ошибке, не-200 ответе
                или ответе, который не удалось разобрать
        """
        try:
            if self._session is not None:
                data = await self._post(self._session, request)
            else:
                async with aiohttp.ClientSession(timeout=self._timeout) as session:
                    data = await self._post(session, request)
        except aiohttp.ClientError as e:
            raise DetectionEngineError(f"Ошибка запроса к движку детекции: {e}") from e

        try:
            return ContentDetectionResult.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise DetectionEngineError(f"Некорректный ответ движка детекции: {e}") from e

    async def _post(self, session: aiohttp.ClientSession, request: ContentCheckRequest) -> dict:
        async with session.post(self._url, json=request.to_dict(), timeout=self._timeout) as response:
            if response.status != 200:
                text = await response.text()
                logger.warning(f"[DETECTION] Движок вернул статус {response.status}: {text[:200]}")
                raise DetectionEngineError(f"HTTP {response.status}")
            return await response.json()
