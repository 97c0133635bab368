# ============================================================
# СЕРВИС SIMHASH ДЛЯ ТЕКСТА
# ============================================================
# Locality-sensitive hashing: похожие тексты дают хеши
# с маленьким расстоянием Хэмминга.
#
# Алгоритм:
# 1. Текст разбивается на токены (tokenizer.py)
# 2. Каждый уникальный токен хешируется в 64 бита (blake2b)
# 3. Для каждого бита суммируем +1/-1 по всем токенам
# 4. Бит итогового хеша = 1 если сумма положительная
#
# Хеш не зависит от порядка слов, регистра и пунктуации.
# Пустой текст (или только односимвольные токены) даёт 0.
# ============================================================

# Импорт стандартных библиотек
import hashlib
# Импорт для работы с логами
import logging
# Импорт для аннотации типов
from typing import Optional, Tuple

from modguard.services.similarity.tokenizer import tokenize_to_set


# ============================================================
# НАСТРОЙКА ЛОГИРОВАНИЯ
# ============================================================
logger = logging.getLogger(__name__)


# ============================================================
# КОНСТАНТЫ
# ============================================================
# Размер хеша в битах
HASH_BITS: int = 64
# Маска для приведения к беззнаковым 64 битам
HASH_MASK: int = (1 << HASH_BITS) - 1
# Порог похожести по умолчанию (в битах)
DEFAULT_MAX_DISTANCE: int = 10


# ============================================================
# КЛАСС СЕРВИСА SIMHASH
# ============================================================
class SimHashService:
    """
    Вычисление и сравнение SimHash для текстов.

    Пример использования:
        service = SimHashService()
        h1 = service.compute_hash("Earn passive income with Bitcoin!")
        h2 = service.compute_hash("earn PASSIVE income, with bitcoin")
        assert service.hamming_distance(h1, h2) == 0
    """

    @staticmethod
    def _token_hash(token: str) -> int:
        # 8-байтовый blake2b стабилен между запусками (в отличие от hash())
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big")

    def compute_hash(self, text: Optional[str]) -> int:
        """
        Вычисляет 64-битный SimHash текста.

        Args:
            text: Текст сообщения (может быть None)

        Returns:
            Беззнаковое 64-битное целое; 0 если значимых токенов нет
        """
        tokens = tokenize_to_set(text)
        if not tokens:
            return 0

        # Вектор весов по каждому биту
        weights = [0] * HASH_BITS
        for token in tokens:
            token_hash = self._token_hash(token)
            for bit in range(HASH_BITS):
                if token_hash & (1 << bit):
                    weights[bit] += 1
                else:
                    weights[bit] -= 1

        # Собираем итоговый хеш: бит = 1 если вес положительный
        result = 0
        for bit in range(HASH_BITS):
            if weights[bit] > 0:
                result |= 1 << bit
        return result

    def hamming_distance(self, hash1: int, hash2: int) -> int:
        """
        Расстояние Хэмминга между двумя SimHash.

        Returns:
            Количество различающихся битов (0 = идентичные, 64 = полностью разные)
        """
        return bin((hash1 ^ hash2) & HASH_MASK).count("1")

    def are_similar(self, hash1: int, hash2: int, max_distance: int = DEFAULT_MAX_DISTANCE) -> bool:
        """Похожи ли тексты по их хешам (расстояние в пределах порога)."""
        return self.hamming_distance(hash1, hash2) <= max_distance

    def compare_texts(
        self,
        text1: Optional[str],
        text2: Optional[str],
        max_distance: int = DEFAULT_MAX_DISTANCE,
    ) -> Tuple[bool, int]:
        """
        Сравнивает два текста напрямую.

        Returns:
            Tuple[is_similar: bool, distance: int]
        """
        distance = self.hamming_distance(self.compute_hash(text1), self.compute_hash(text2))
        return (distance <= max_distance, distance)

    @staticmethod
    def to_hex(value: int) -> str:
        """Хеш в hex формате (16 символов) для хранения в БД."""
        return f"{value & HASH_MASK:016x}"

    @staticmethod
    def from_hex(value: str) -> int:
        try:
            return int(value, 16) & HASH_MASK
        except (TypeError, ValueError) as e:
            logger.warning(f"Некорректный SimHash в hex: {value!r} ({e})")
            return 0


# ============================================================
# ГЛОБАЛЬНЫЙ ЭКЗЕМПЛЯР СЕРВИСА
# ============================================================
_simhash_service = SimHashService()


def compute_text_hash(text: Optional[str]) -> int:
    """Вычисляет SimHash текста (обёртка над глобальным сервисом)."""
    return _simhash_service.compute_hash(text)


def hamming_distance(hash1: int, hash2: int) -> int:
    """Расстояние Хэмминга между двумя SimHash."""
    return _simhash_service.hamming_distance(hash1, hash2)
