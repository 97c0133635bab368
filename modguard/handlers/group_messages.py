# ============================================================
# СООБЩЕНИЯ В ГРУППАХ: ЕДИНАЯ ТОЧКА ВХОДА
# ============================================================
# Каждое сообщение группы проходит конвейер модерации:
# гейт → детекция → маршрутизатор → оркестратор → исполнение.
# Хендлер только собирает ModerationMessage и ничего не решает.
# ============================================================

# Импортируем Router и фильтры
from aiogram import Router, F
# Импортируем типы сообщений
from aiogram.types import Message
# Импортируем логгер
import logging

from modguard.services.container import ModerationServices
from modguard.services.moderation.types import ModerationMessage

# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

group_messages_router = Router(name="group_messages")


@group_messages_router.message(F.chat.type.in_({"group", "supergroup"}))
async def group_message_handler(message: Message, services: ModerationServices):
    moderation_message = ModerationMessage.from_aiogram(message)

    # Сервисные сообщения без текста и подписи движку не нужны
    if not moderation_message.text:
        return

    outcome = await services.pipeline.process(moderation_message)
    if outcome.error:
        logger.warning(
            f"[MODERATION] Сообщение {message.message_id} в {message.chat.id} не проверено: {outcome.error}"
        )
