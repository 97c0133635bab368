# ============================================================
# МОДУЛЬ SIMILARITY: ПОИСК ПОЧТИ-ДУБЛИКАТОВ ТЕКСТА
# ============================================================
# Компоненты модуля:
# - tokenizer.py: токенизация (нижний регистр, без пунктуации)
# - simhash_service.py: 64-битный SimHash и расстояние Хэмминга
# - text_similarity.py: коэффициент Жаккара
# - training_dedup.py: дедупликация обучающей выборки
# ============================================================

from .tokenizer import tokenize_to_list, tokenize_to_set, normalize_text

from .simhash_service import (
    SimHashService,
    compute_text_hash,
    hamming_distance,
    DEFAULT_MAX_DISTANCE,
)

from .text_similarity import TextSimilarityService, jaccard_similarity

from .training_dedup import (
    TrainingDataDeduplicationService,
    DuplicateAnalysisResult,
    DuplicateGroup,
    SampleView,
    select_recommended_sample,
)

__all__ = [
    "tokenize_to_list",
    "tokenize_to_set",
    "normalize_text",
    "SimHashService",
    "compute_text_hash",
    "hamming_distance",
    "DEFAULT_MAX_DISTANCE",
    "TextSimilarityService",
    "jaccard_similarity",
    "TrainingDataDeduplicationService",
    "DuplicateAnalysisResult",
    "DuplicateGroup",
    "SampleView",
    "select_recommended_sample",
]
