import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine

from modguard.config import DATABASE_URL
from modguard.database.models import Base
# Импортируем модели модерации чтобы они зарегистрировались в Base.metadata
import modguard.database.models_moderation  # noqa: F401

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    """Создаёт движок; для SQLite параметры пула не применяются."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,  # Проверка соединения перед использованием
        pool_recycle=3600,   # Переподключение каждый час
    )


# создаем движок и фабрику сессий лениво: DATABASE_URL нужен только при запуске бота
engine = build_engine(DATABASE_URL) if DATABASE_URL else None
async_session = async_sessionmaker(engine, expire_on_commit=False) if engine else None


async def init_db(db_engine: AsyncEngine = None):
    """Инициализация базы данных"""
    db_engine = db_engine or engine
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ База данных инициализирована")
