from aiogram.dispatcher.middlewares.base import BaseMiddleware
from aiogram.types import TelegramObject
from typing import Callable, Awaitable, Dict, Any


class ServicesMiddleware(BaseMiddleware):
    def __init__(self, services):
        super().__init__()
        self.services = services  # граф сервисов модерации, один на процесс

    async def __call__(
            self,
            handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
            event: TelegramObject,
            data: Dict[str, Any],
    ) -> Any:
        data["services"] = self.services  # передаем сервисы в хендлер через context data
        return await handler(event, data)
