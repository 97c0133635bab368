# modguard/services/similarity/tokenizer.py
"""
Токенизация текста для SimHash и Jaccard.

Текст приводится к нижнему регистру и режется по пробелам
и пунктуации (категории Unicode P*). Символы вроде $ или + (категория S*)
остаются частью токена. Токены короче min_length отбрасываются
(односимвольные "a", "I" и т.п. не несут смысла).
"""

import unicodedata
from typing import List, Optional, Set

# Минимальная длина токена по умолчанию
DEFAULT_MIN_TOKEN_LENGTH: int = 2


def _split(text: str) -> List[str]:
    # Пунктуация (P*) заменяется пробелом, дальше обычный split по пробельным
    return "".join(" " if unicodedata.category(ch).startswith("P") else ch for ch in text).split()


def tokenize_to_list(text: Optional[str], min_length: int = DEFAULT_MIN_TOKEN_LENGTH) -> List[str]:
    """Токены в исходном порядке, с повторами."""
    if not text or not text.strip():
        return []
    return [t for t in _split(text.lower()) if len(t) >= min_length]


def tokenize_to_set(text: Optional[str], min_length: int = DEFAULT_MIN_TOKEN_LENGTH) -> Set[str]:
    """Уникальные токены текста."""
    return set(tokenize_to_list(text, min_length))


def normalize_text(text: Optional[str]) -> str:
    """Нормализованная форма текста для поиска точных дубликатов."""
    return " ".join(tokenize_to_list(text, min_length=1))
