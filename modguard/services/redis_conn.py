from redis.asyncio import Redis
import logging

from modguard.config import REDIS_URL

logger = logging.getLogger(__name__)

try:
    # Клиент создаётся лениво: соединение открывается при первой команде
    redis = Redis.from_url(REDIS_URL, decode_responses=True)
except Exception as e:
    logger.error(f"❌ Критическая ошибка Redis при инициализации: {e}")
    redis = None


async def test_connection() -> bool:
    if redis is None:
        return False
    try:
        await redis.ping()
        logger.info(f"✅ Соединение с Redis ({REDIS_URL}) установлено")
        return True
    except Exception as e:
        logger.error(f"❌ Ошибка подключения к Redis ({REDIS_URL}): {e}")
        return False
