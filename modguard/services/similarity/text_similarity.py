# modguard/services/similarity/text_similarity.py
"""
Сходство текстов по Жаккару (пересечение / объединение множеств токенов).
"""

from typing import Optional

from modguard.services.similarity.tokenizer import tokenize_to_set


class TextSimilarityService:
    """Коэффициент Жаккара между двумя текстами, всегда в [0, 1]."""

    def jaccard(self, text1: Optional[str], text2: Optional[str]) -> float:
        tokens1 = tokenize_to_set(text1)
        tokens2 = tokenize_to_set(text2)

        # Пустой текст с любой стороны: сходства нет
        if not tokens1 or not tokens2:
            return 0.0

        union = tokens1 | tokens2
        return len(tokens1 & tokens2) / len(union)


_text_similarity_service = TextSimilarityService()


def jaccard_similarity(text1: Optional[str], text2: Optional[str]) -> float:
    return _text_similarity_service.jaccard(text1, text2)
