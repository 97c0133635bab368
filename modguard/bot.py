import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.redis import RedisStorage
from aiogram.client.session.aiohttp import AiohttpSession

# ВАЖНО: сначала загружаем конфиг (.env), потом инициализируем Redis
from modguard import config
from modguard.config import BOT_TOKEN, HEALTH_SWEEP_INTERVAL_SECONDS, REDIS_URL
from modguard.services.redis_conn import redis, test_connection

from modguard.database.session import async_session, init_db
from modguard.handlers import handlers_router
from modguard.middleware.services import ServicesMiddleware
from modguard.services.container import build_services
from modguard.utils.logger import setup_logging

logger = logging.getLogger(__name__)


# главная асинхронная функция, запускающая бота
async def main():
    setup_logging()
    config.validate_required()
    logger.info(f"🔧 Конфигурация: {config.describe()}")

    # Redis обязателен: через него идут фоновые задачи очистки и снятия банов
    if not await test_connection():
        raise RuntimeError(f"Redis недоступен: {REDIS_URL}")
    storage = RedisStorage(redis=redis)

    # ✅ создаём таблицы в БД на основе моделей (если они не существуют)
    await init_db()

    # ✅ Создание бота по токену из .env
    session = AiohttpSession(timeout=60.0)
    bot = Bot(token=BOT_TOKEN, session=session)

    services = build_services(bot, async_session, redis)

    # ✅ Создание диспетчера с хранилищем состояний
    dp = Dispatcher(storage=storage)
    dp.update.middleware(ServicesMiddleware(services))
    dp.include_router(handlers_router)

    # Кэш здоровья пуст до первого обхода, а пустая запись = "не применять"
    await services.health_service.refresh_all()

    background = [
        asyncio.create_task(services.health_service.run_periodic(HEALTH_SWEEP_INTERVAL_SECONDS), name="health-sweep"),
        asyncio.create_task(services.worker.run_forever(), name="job-worker"),
    ]

    logger.info("🤖 Бот успешно запущен и готов к работе.")
    try:
        logger.info("🔄 Запуск в режиме polling...")
        # Удаление вебхука перед запуском поллинга
        await bot.delete_webhook(drop_pending_updates=True)
        await dp.start_polling(
            bot,
            allowed_updates=["message", "chat_member", "my_chat_member"],
        )
    finally:
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await bot.session.close()
        await redis.aclose()


if __name__ == "__main__":
    asyncio.run(main())
