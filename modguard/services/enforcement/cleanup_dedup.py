# modguard/services/enforcement/cleanup_dedup.py
"""
Подавление повторного планирования очистки сообщений.

Спам-боты постят одно и то же сразу в несколько чатов, и бан
срабатывает несколько раз подряд. Одна задача очистки на
пользователя в окне 30 секунд: первая задача всё равно удалит
все сообщения. Старые записи вычищаются при каждом вызове.
"""

import threading
import time
from typing import Callable, Dict, Optional

DEFAULT_WINDOW_SECONDS = 30.0


class CleanupJobDeduplicator:
    """
    Карта "user_id → время последнего планирования".

    Args:
        window_seconds: Окно подавления дубликатов
        clock: Источник времени в секундах (для тестов)
    """

    def __init__(self, window_seconds: float = DEFAULT_WINDOW_SECONDS, clock: Optional[Callable[[], float]] = None):
        self._window = window_seconds
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._last_scheduled: Dict[int, float] = {}

    def try_acquire(self, user_id: int) -> bool:
        """
        Атомарно решает, планировать ли новую задачу.

        Returns:
            True: задачу нужно запланировать (время записано);
            False: задача уже запланирована в пределах окна
        """
        now = self._clock()
        with self._lock:
            self._prune(now)
            last = self._last_scheduled.get(user_id)
            if last is not None and now - last < self._window:
                return False
            self._last_scheduled[user_id] = now
            return True

    def release(self, user_id: int) -> None:
        """Откат записи если планирование не удалось."""
        with self._lock:
            self._last_scheduled.pop(user_id, None)

    def seconds_since_last(self, user_id: int) -> Optional[float]:
        with self._lock:
            last = self._last_scheduled.get(user_id)
        return None if last is None else self._clock() - last

    def _prune(self, now: float) -> None:
        expired = [uid for uid, ts in self._last_scheduled.items() if now - ts > self._window]
        for uid in expired:
            del self._last_scheduled[uid]

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_scheduled)
