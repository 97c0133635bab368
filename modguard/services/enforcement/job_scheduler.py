# modguard/services/enforcement/job_scheduler.py
"""
Отложенные фоновые задачи поверх Redis.

Задача: JSON в ключе modguard:job:<id>, время запуска: score
в sorted set modguard:jobs:due. Воркер забирает созревшие задачи
и вызывает зарегистрированный обработчик по имени.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Имена задач
DELETE_USER_MESSAGES_JOB = "DeleteUserMessages"
TEMPBAN_EXPIRY_JOB = "TempbanExpiry"

DUE_KEY = "modguard:jobs:due"
JOB_KEY_PREFIX = "modguard:job:"
# Задача живёт в Redis не дольше суток после запланированного времени
JOB_TTL_SECONDS = 86400

JobHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class RedisJobScheduler:
    """
    Планировщик задач.

    Args:
        redis: Асинхронный клиент redis (decode_responses=True)
        clock: Источник unix-времени (для тестов)
    """

    def __init__(self, redis: Redis, clock: Optional[Callable[[], float]] = None):
        self._redis = redis
        self._clock = clock or time.time

    async def schedule(self, job_name: str, payload: Dict[str, Any], delay_seconds: int = 0) -> str:
        """
        Ставит задачу в очередь.

        Returns:
            ID задачи (для логов)
        """
        job_id = uuid.uuid4().hex
        run_at = self._clock() + max(0, delay_seconds)
        body = json.dumps({
            "id": job_id,
            "name": job_name,
            "payload": payload,
            "run_at": run_at,
        })

        # Тело задачи и индекс по времени пишем одной транзакцией
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(f"{JOB_KEY_PREFIX}{job_id}", body, ex=int(delay_seconds) + JOB_TTL_SECONDS)
            pipe.zadd(DUE_KEY, {job_id: run_at})
            await pipe.execute()

        logger.info(f"[JOBS] Запланирована задача {job_name} ({job_id}) через {delay_seconds}с")
        return job_id

    async def pop_due(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Забирает созревшие задачи (каждую получает ровно один воркер)."""
        now = self._clock()
        job_ids = await self._redis.zrangebyscore(DUE_KEY, "-inf", now, start=0, num=limit)

        jobs = []
        for job_id in job_ids:
            # zrem возвращает 1 только одному из конкурирующих воркеров
            removed = await self._redis.zrem(DUE_KEY, job_id)
            if not removed:
                continue
            raw = await self._redis.get(f"{JOB_KEY_PREFIX}{job_id}")
            await self._redis.delete(f"{JOB_KEY_PREFIX}{job_id}")
            if raw is None:
                logger.warning(f"[JOBS] Тело задачи {job_id} не найдено (истекло?)")
                continue
            jobs.append(json.loads(raw))
        return jobs

    async def pending_count(self) -> int:
        return int(await self._redis.zcard(DUE_KEY))


class JobWorker:
    """Выполняет созревшие задачи через зарегистрированные обработчики."""

    def __init__(self, scheduler: RedisJobScheduler):
        self._scheduler = scheduler
        self._handlers: Dict[str, JobHandler] = {}

    def register(self, job_name: str, handler: JobHandler) -> None:
        self._handlers[job_name] = handler

    async def run_once(self) -> int:
        """Один проход: выполняет все созревшие задачи, возвращает их число."""
        jobs = await self._scheduler.pop_due()
        for job in jobs:
            handler = self._handlers.get(job["name"])
            if handler is None:
                logger.error(f"[JOBS] Нет обработчика для задачи {job['name']} ({job['id']})")
                continue
            try:
                await handler(job.get("payload") or {})
                logger.info(f"[JOBS] Задача {job['name']} ({job['id']}) выполнена")
            except Exception as e:
                # Ошибка одной задачи не останавливает остальные
                logger.error(f"[JOBS] Ошибка задачи {job['name']} ({job['id']}): {e}")
        return len(jobs)

    async def run_forever(self, poll_interval: float = 1.0) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"[JOBS] Ошибка чтения очереди задач: {e}")
            await asyncio.sleep(poll_interval)
