# modguard/services/similarity/training_dedup.py
"""
Дедупликация обучающей выборки.

Содержит:
- Анализ всей выборки: точные дубликаты, "очень похожие" (Jaccard 0.95–0.99)
  и "похожие" (0.90–0.94) группы с рекомендацией, какой образец оставить
- Проверку нового образца перед вставкой (SimHash-префильтр + Jaccard ≥ 0.90)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from modguard.services.similarity.simhash_service import SimHashService
from modguard.services.similarity.text_similarity import TextSimilarityService
from modguard.services.similarity.tokenizer import normalize_text

logger = logging.getLogger(__name__)

# Границы тиров сходства (нижняя включительно, верхняя исключительно)
VERY_SIMILAR_MIN = 0.95
SIMILAR_MIN = 0.90
# Порог отказа во вставке нового образца
INSERT_DUPLICATE_THRESHOLD = 0.90
# SimHash-префильтр: дальше этого расстояния Jaccard не считаем
PREFILTER_MAX_DISTANCE = 20


@dataclass(frozen=True)
class SampleView:
    """Минимальное представление обучающего образца для анализа."""
    id: int
    message_text: str
    is_spam: bool
    confidence: Optional[float] = None
    added_at: Optional[datetime] = None
    content_hash: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "SampleView":
        return cls(
            id=row.id,
            message_text=row.message_text or "",
            is_spam=bool(row.is_spam),
            confidence=row.confidence,
            added_at=row.added_at,
            content_hash=getattr(row, "content_hash", None),
        )


@dataclass
class DuplicateGroup:
    group_key: str
    message_text: str
    samples: List[SampleView]
    similarity_score: float
    recommended_keep: SampleView

    @property
    def duplicate_count(self) -> int:
        return len(self.samples)

    @property
    def has_cross_class_conflict(self) -> bool:
        # Один и тот же текст помечен и как спам, и как не-спам
        return len({s.is_spam for s in self.samples}) > 1


@dataclass
class DuplicateAnalysisResult:
    exact_duplicates: List[DuplicateGroup] = field(default_factory=list)
    very_similar: List[DuplicateGroup] = field(default_factory=list)
    similar: List[DuplicateGroup] = field(default_factory=list)
    cross_class_conflicts: List[DuplicateGroup] = field(default_factory=list)


def _sort_key(sample: SampleView):
    # Выше уверенность, затем новее
    return (
        sample.confidence if sample.confidence is not None else -1.0,
        sample.added_at or datetime.min,
    )


def select_recommended_sample(samples: Sequence[SampleView]) -> SampleView:
    return max(samples, key=_sort_key)


class TrainingDataDeduplicationService:
    """Поиск дубликатов в обучающей выборке."""

    def __init__(
        self,
        simhash: Optional[SimHashService] = None,
        similarity: Optional[TextSimilarityService] = None,
    ):
        self._simhash = simhash or SimHashService()
        self._similarity = similarity or TextSimilarityService()

    # ═══════════════════════════════════════════════════════════
    # АНАЛИЗ ВСЕЙ ВЫБОРКИ
    # ═══════════════════════════════════════════════════════════
    def analyze(self, samples: Iterable[SampleView]) -> DuplicateAnalysisResult:
        items = [s for s in samples if s.message_text]
        logger.info(f"Анализ дубликатов обучающей выборки: {len(items)} образцов")

        result = DuplicateAnalysisResult()
        result.exact_duplicates = self._find_exact_duplicates(items)
        result.very_similar = self._find_similar(items, VERY_SIMILAR_MIN, 1.0)
        result.similar = self._find_similar(items, SIMILAR_MIN, VERY_SIMILAR_MIN)
        result.cross_class_conflicts = [g for g in result.exact_duplicates if g.has_cross_class_conflict]

        logger.info(
            f"Анализ завершён: точных групп {len(result.exact_duplicates)}, "
            f"очень похожих {len(result.very_similar)}, похожих {len(result.similar)}, "
            f"конфликтов классов {len(result.cross_class_conflicts)}"
        )
        return result

    def _find_exact_duplicates(self, samples: List[SampleView]) -> List[DuplicateGroup]:
        buckets = {}
        for sample in samples:
            # Группируем по нормализованному тексту (регистр и пунктуация не важны)
            key = normalize_text(sample.message_text)
            buckets.setdefault(key, []).append(sample)

        groups = []
        for key, bucket in buckets.items():
            if len(bucket) < 2:
                continue
            ordered = sorted(bucket, key=_sort_key, reverse=True)
            groups.append(DuplicateGroup(
                group_key=key,
                message_text=bucket[0].message_text,
                samples=ordered,
                similarity_score=1.0,
                recommended_keep=ordered[0],
            ))
        groups.sort(key=lambda g: g.duplicate_count, reverse=True)
        return groups

    def _find_similar(
        self,
        samples: List[SampleView],
        min_similarity: float,
        max_similarity: float,
    ) -> List[DuplicateGroup]:
        groups = []
        processed = set()

        for i, anchor in enumerate(samples):
            if anchor.id in processed:
                continue

            members = [anchor]
            max_score = 0.0
            for other in samples[i + 1:]:
                if other.id in processed:
                    continue
                score = self._similarity.jaccard(anchor.message_text, other.message_text)
                if min_similarity <= score < max_similarity:
                    members.append(other)
                    max_score = max(max_score, score)

            # Группа имеет смысл только из 2+ образцов
            if len(members) > 1:
                processed.update(m.id for m in members)
                ordered = sorted(members, key=_sort_key, reverse=True)
                groups.append(DuplicateGroup(
                    group_key=f"similar_{anchor.id}",
                    message_text=anchor.message_text,
                    samples=ordered,
                    similarity_score=max_score,
                    recommended_keep=ordered[0],
                ))

        groups.sort(key=lambda g: g.duplicate_count, reverse=True)
        return groups

    # ═══════════════════════════════════════════════════════════
    # ПРОВЕРКА ПЕРЕД ВСТАВКОЙ
    # ═══════════════════════════════════════════════════════════
    def find_near_duplicate(
        self,
        text: Optional[str],
        existing: Iterable[SampleView],
        threshold: float = INSERT_DUPLICATE_THRESHOLD,
    ) -> Optional[SampleView]:
        """
        Ищет в выборке образец, почти совпадающий с текстом.

        Args:
            text: Текст нового образца
            existing: Уже сохранённые образцы
            threshold: Минимальный Jaccard для признания дубликатом

        Returns:
            Найденный дубликат или None
        """
        if not text:
            return None

        new_hash = self._simhash.compute_hash(text)
        normalized = normalize_text(text)

        for sample in existing:
            if normalize_text(sample.message_text) == normalized:
                return sample

            # Быстрый префильтр по SimHash если хеш сохранён
            if sample.content_hash:
                distance = self._simhash.hamming_distance(new_hash, self._simhash.from_hex(sample.content_hash))
                if distance > PREFILTER_MAX_DISTANCE:
                    continue

            if self._similarity.jaccard(text, sample.message_text) >= threshold:
                return sample
        return None

    def is_near_duplicate(
        self,
        text: Optional[str],
        existing: Iterable[SampleView],
        threshold: float = INSERT_DUPLICATE_THRESHOLD,
    ) -> bool:
        return self.find_near_duplicate(text, existing, threshold) is not None
