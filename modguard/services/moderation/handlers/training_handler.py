# modguard/services/moderation/handlers/training_handler.py
"""
Обучающая выборка движка детекции.

Новый образец не вставляется, если в выборке того же класса уже
есть почти такой же текст (SimHash-префильтр + Jaccard ≥ 0.90).
"""

# Импортируем логгер для записи событий
import logging
# Импортируем типы для аннотаций
from typing import Optional

from modguard.services.moderation.types import Actor, CheckName, ContentDetectionResult
from modguard.services.similarity import SampleView, SimHashService, TrainingDataDeduplicationService


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# AI-классификатор должен быть уверен не меньше чем на столько
TRAINING_AI_MIN_CONFIDENCE = 85
# Без AI-классификатора: порог по net_confidence (строго больше)
TRAINING_NET_MIN_CONFIDENCE = 80

SOURCE_MANUAL = "manual"
SOURCE_AUTO = "auto_detection"


def determine_if_training_worthy(result: Optional[ContentDetectionResult]) -> bool:
    """
    Годится ли автоматическое решение как обучающий пример.

    Если AI-классификатор участвовал: решает только его уверенность,
    иначе агрегированная оценка.
    """
    if result is None:
        return False
    ai_check = result.find_check(CheckName.OPENAI)
    if ai_check is not None:
        return ai_check.confidence >= TRAINING_AI_MIN_CONFIDENCE
    return result.net_confidence > TRAINING_NET_MIN_CONFIDENCE


class TrainingHandler:
    """
    Args:
        samples: TrainingSamplesRepository
        dedup: TrainingDataDeduplicationService
    """

    def __init__(self, samples, dedup: Optional[TrainingDataDeduplicationService] = None):
        self._samples = samples
        self._dedup = dedup or TrainingDataDeduplicationService()
        self._simhash = SimHashService()

    async def create_sample(
        self,
        message_text: Optional[str],
        is_spam: bool,
        added_by: Actor,
        source: str = SOURCE_MANUAL,
        confidence: Optional[float] = None,
        message_id: Optional[int] = None,
    ) -> bool:
        """
        Добавляет образец в выборку.

        Returns:
            True если образец сохранён; False если текст пустой,
            почти-дубликат или произошла ошибка
        """
        if not message_text or not message_text.strip():
            logger.debug("[TRAINING] Пустой текст, образец не создан")
            return False

        try:
            existing = [SampleView.from_row(row) for row in await self._samples.list_samples(is_spam=is_spam)]
            duplicate = self._dedup.find_near_duplicate(message_text, existing)
            if duplicate is not None:
                logger.info(f"[TRAINING] Образец пропущен: почти-дубликат образца #{duplicate.id}")
                return False

            content_hash = self._simhash.to_hex(self._simhash.compute_hash(message_text))
            sample = await self._samples.add_sample(
                message_text=message_text,
                is_spam=is_spam,
                source=source,
                added_by=added_by,
                confidence=confidence,
                message_id=message_id,
                content_hash=content_hash,
            )
            logger.info(f"[TRAINING] Добавлен образец #{sample.id} ({'spam' if is_spam else 'ham'}, {added_by})")
            return True
        except Exception as e:
            logger.error(f"[TRAINING] Ошибка создания обучающего образца: {e}")
            return False
