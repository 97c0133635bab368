# Импорт всех роутеров для удобного подключения
from aiogram import Router

from .group_events import group_events_router
from .group_messages import group_messages_router

# Объединяем все роутеры в один
handlers_router = Router(name="handlers")
handlers_router.include_router(group_events_router)
handlers_router.include_router(group_messages_router)

__all__ = ["handlers_router"]
