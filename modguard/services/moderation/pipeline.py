# modguard/services/moderation/pipeline.py
"""
Обработка одного сообщения группы от начала до конца.

сохранение → гейт (статус + детекция) → маршрутизатор → оркестратор

Каждое сообщение: независимая единица работы. Ни одно исключение
не выходит за границу process(), кроме отмены задачи.
"""

# Импортируем asyncio для CancelledError
import asyncio
# Импортируем логгер для записи событий
import logging
# Импортируем dataclass для результата
from dataclasses import dataclass
# Импортируем типы для аннотаций
from typing import Optional

from modguard.services.moderation.check_gate import CheckGate
from modguard.services.moderation.detection_router import DetectionRouter, RoutingDecision
from modguard.services.moderation.types import ContentCheckRequest, GateResult, ModerationMessage


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOutcome:
    gate: Optional[GateResult] = None
    decision: Optional[RoutingDecision] = None
    critical_violation_handled: bool = False
    error: Optional[str] = None


class ModerationPipeline:
    """
    Args:
        messages_repository: MessagesRepository (история сообщений для очистки)
        gate: CheckGate
        router: DetectionRouter
    """

    def __init__(self, messages_repository, gate: CheckGate, router: DetectionRouter):
        self._messages = messages_repository
        self._gate = gate
        self._router = router

    async def process(self, message: ModerationMessage) -> PipelineOutcome:
        # Сохраняем сообщение до проверки: очистка после бана ищет его в истории
        try:
            await self._messages.save_message(message.chat_id, message.message_id, message.user_id, message.text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[MODERATION] Не удалось сохранить сообщение {message.message_id} в {message.chat_id}: {e}")

        request = ContentCheckRequest(
            user_id=message.user_id,
            chat_id=message.chat_id,
            message_text=message.text,
            message_id=message.message_id,
        )

        try:
            gate_result = await self._gate.evaluate(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[MODERATION] Проверка сообщения {message.message_id} от {message.user_id} "
                f"в {message.chat_id} не выполнена: {e}"
            )
            return PipelineOutcome(error=str(e))

        if gate_result.has_critical_violations:
            try:
                await self._router.handle_critical_check_violation(message, gate_result.critical_check_violations)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[MODERATION] Ошибка обработки нарушения критических проверок: {e}")
                return PipelineOutcome(gate=gate_result, error=str(e))
            return PipelineOutcome(gate=gate_result, critical_violation_handled=True)

        if gate_result.spam_check_skipped or gate_result.spam_result is None:
            return PipelineOutcome(gate=gate_result)

        # handle() сам логирует и гасит ошибки исполнения
        decision = await self._router.handle(message, gate_result.spam_result)
        return PipelineOutcome(gate=gate_result, decision=decision)
