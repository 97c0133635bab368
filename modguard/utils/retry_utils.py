# ============================================================
# RETRY UTILS - ПОВТОР ВЫЗОВОВ TELEGRAM API ПРИ СЕТЕВЫХ ОШИБКАХ
# ============================================================
# Повторяются только сетевые сбои и rate limit. Ошибки API
# (нет прав, пользователь не найден) пробрасываются сразу:
# их обрабатывает вызывающий код (по чату, по side effect).
# ============================================================

import asyncio
import logging
from typing import TypeVar, Callable, Awaitable
from functools import wraps

from aiogram.exceptions import TelegramNetworkError, TelegramRetryAfter

logger = logging.getLogger(__name__)

# Тип для возвращаемого значения
T = TypeVar('T')

# Сколько раз подряд готовы ждать rate limit прежде чем сдаться
MAX_RATE_LIMIT_WAITS = 3


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    **kwargs
) -> T:
    """
    Вызывает корутинную функцию с retry при сетевых ошибках.

    Принимает функцию, а не готовую корутину: корутину нельзя
    await-ить повторно.

    Args:
        func: Асинхронная функция
        max_retries: Максимальное количество повторных попыток
        delay: Начальная задержка между попытками (секунды)
        backoff: Множитель задержки для каждой следующей попытки

    Returns:
        Результат функции

    Raises:
        Последнее исключение если все попытки неудачны

    Example:
        await retry_call(bot.ban_chat_member, chat_id, user_id, max_retries=2)
    """
    current_delay = delay
    attempt = 0
    rate_limit_waits = 0

    while True:
        try:
            return await func(*args, **kwargs)
        except TelegramRetryAfter as e:
            # Telegram просит подождать: не считаем как попытку
            rate_limit_waits += 1
            if rate_limit_waits > MAX_RATE_LIMIT_WAITS:
                logger.error(f"[Retry] {getattr(func, '__name__', func)}: rate limit не снимается, сдаёмся")
                raise
            wait_time = e.retry_after + 1
            logger.warning(f"[Retry] Telegram rate limit. Ожидание {wait_time}с...")
            await asyncio.sleep(wait_time)
        except TelegramNetworkError as e:
            if attempt >= max_retries:
                logger.error(
                    f"[Retry] Все {max_retries + 1} попыток исчерпаны. "
                    f"Последняя ошибка: {e}"
                )
                raise
            attempt += 1
            logger.warning(
                f"[Retry] Сетевая ошибка (попытка {attempt}/{max_retries + 1}): {e}. "
                f"Повтор через {current_delay:.1f}с..."
            )
            await asyncio.sleep(current_delay)
            current_delay *= backoff


def with_retry(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0
) -> Callable:
    """
    Декоратор для автоматического retry при сетевых ошибках.

    Example:
        @with_retry(max_retries=3)
        async def ban(self, chat_id, user_id):
            await self._bot.ban_chat_member(chat_id, user_id)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_call(
                func, *args,
                max_retries=max_retries, delay=delay, backoff=backoff,
                **kwargs
            )
        return wrapper
    return decorator
