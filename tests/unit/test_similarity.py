# ============================================================
# UNIT-ТЕСТЫ ДЛЯ ПОИСКА ПОЧТИ-ДУБЛИКАТОВ ТЕКСТА
# ============================================================
# Тестируем:
# - Токенизацию
# - SimHash и расстояние Хэмминга
# - Коэффициент Жаккара
# - Дедупликацию обучающей выборки
# ============================================================

from datetime import datetime

import pytest

from modguard.services.similarity import (
    SampleView,
    SimHashService,
    TextSimilarityService,
    TrainingDataDeduplicationService,
    normalize_text,
    select_recommended_sample,
    tokenize_to_list,
)


@pytest.fixture
def simhash():
    return SimHashService()


@pytest.fixture
def similarity():
    return TextSimilarityService()


# ============================================================
# ТОКЕНИЗАЦИЯ
# ============================================================

def test_tokenizer_lowercases_and_drops_short_tokens():
    assert tokenize_to_list("Buy NOW, a cheap I-phone!") == ["buy", "now", "cheap", "phone"]


def test_tokenizer_splits_on_punctuation_but_keeps_symbols():
    assert tokenize_to_list("Win $100 + 50% bonus: user_name (today)") == [
        "win", "$100", "50", "bonus", "user", "name", "today",
    ]


def test_tokenizer_empty_input():
    assert tokenize_to_list(None) == []
    assert tokenize_to_list("   ") == []


def test_normalize_text_ignores_case_and_punctuation():
    assert normalize_text("Hello, World!!") == normalize_text("hello world")


# ============================================================
# SIMHASH
# ============================================================

def test_identical_texts_have_zero_distance(simhash):
    h1 = simhash.compute_hash("Earn passive income with Bitcoin today")
    h2 = simhash.compute_hash("Earn passive income with Bitcoin today")
    assert simhash.hamming_distance(h1, h2) == 0


def test_hash_ignores_case_punctuation_and_order(simhash):
    h1 = simhash.compute_hash("Earn passive income with Bitcoin!")
    h2 = simhash.compute_hash("bitcoin, with INCOME passive earn")
    assert h1 == h2


@pytest.mark.parametrize("text", [None, "", "   ", "a b c"])
def test_empty_or_single_char_text_hashes_to_zero(simhash, text):
    assert simhash.compute_hash(text) == 0


def test_hash_fits_in_64_bits(simhash):
    value = simhash.compute_hash("some reasonably long message about crypto trading signals")
    assert 0 <= value < 2 ** 64


def test_hamming_distance_bounds(simhash):
    assert simhash.hamming_distance(0, 0) == 0
    assert simhash.hamming_distance(0, 2 ** 64 - 1) == 64
    assert simhash.hamming_distance(0b1011, 0b0001) == 2


def test_are_similar_uses_threshold(simhash):
    assert simhash.are_similar(0, 0b1111111111) is True   # 10 бит
    assert simhash.are_similar(0, 0b11111111111) is False  # 11 бит
    assert simhash.are_similar(0, 0b111, max_distance=2) is False


def test_compare_texts_returns_flag_and_distance(simhash):
    assert simhash.compare_texts("Free crypto signals here", "free CRYPTO signals, here!") == (True, 0)
    # пустой текст хешируется в 0: расстояние = число единичных битов
    _, distance = simhash.compare_texts("Free crypto signals here", "")
    assert distance == bin(simhash.compute_hash("Free crypto signals here")).count("1")


def test_near_duplicate_messages_are_closer_than_unrelated(simhash):
    base = "Join our crypto group for free signals and daily profit up to 300 percent"
    variant = "Join our crypto group for free signals and daily profit up to 500 percent"
    unrelated = "Does anyone know when the next community meetup in Berlin is scheduled"

    close = simhash.hamming_distance(simhash.compute_hash(base), simhash.compute_hash(variant))
    far = simhash.hamming_distance(simhash.compute_hash(base), simhash.compute_hash(unrelated))
    assert close < far
    # Совсем разные тексты: больше 15 различающихся битов
    assert far > 15


def test_hex_conversion(simhash):
    value = simhash.compute_hash("hex roundtrip sample text")
    encoded = simhash.to_hex(value)
    assert len(encoded) == 16
    assert simhash.from_hex(encoded) == value
    assert simhash.from_hex("not-hex") == 0


# ============================================================
# JACCARD
# ============================================================

def test_jaccard_identical_is_one(similarity):
    assert similarity.jaccard("free crypto signals", "Free, crypto SIGNALS!") == 1.0


def test_jaccard_disjoint_is_zero(similarity):
    assert similarity.jaccard("free crypto signals", "meeting tomorrow morning") == 0.0


@pytest.mark.parametrize("a, b", [(None, "text here"), ("text here", ""), ("", "")])
def test_jaccard_empty_side_is_zero(similarity, a, b):
    assert similarity.jaccard(a, b) == 0.0


def test_jaccard_symmetric_and_bounded(similarity):
    a = "buy cheap followers now"
    b = "buy followers today"
    score = similarity.jaccard(a, b)
    assert score == similarity.jaccard(b, a)
    # {buy, followers} / {buy, cheap, followers, now, today}
    assert score == pytest.approx(2 / 5)


# ============================================================
# ДЕДУПЛИКАЦИЯ ОБУЧАЮЩЕЙ ВЫБОРКИ
# ============================================================

def _sample(sample_id, text, is_spam=True, confidence=None, added_at=None):
    return SampleView(id=sample_id, message_text=text, is_spam=is_spam, confidence=confidence, added_at=added_at)


def test_recommended_sample_prefers_confidence_then_recency():
    old = _sample(1, "x", confidence=0.9, added_at=datetime(2024, 1, 1))
    new = _sample(2, "x", confidence=0.9, added_at=datetime(2024, 6, 1))
    low = _sample(3, "x", confidence=0.5, added_at=datetime(2025, 1, 1))
    assert select_recommended_sample([old, new, low]) is new


def test_analyze_groups_exact_duplicates_and_conflicts():
    samples = [
        _sample(1, "Free crypto signals!", is_spam=True, confidence=0.8),
        _sample(2, "free crypto signals", is_spam=False, confidence=0.95),
        _sample(3, "completely different message about lunch", is_spam=False),
    ]
    result = TrainingDataDeduplicationService().analyze(samples)

    assert len(result.exact_duplicates) == 1
    group = result.exact_duplicates[0]
    assert group.duplicate_count == 2
    assert group.recommended_keep.id == 2
    assert result.cross_class_conflicts == [group]


def test_analyze_similar_tiers_are_half_open():
    base = " ".join(f"word{i}" for i in range(20))
    # 19 общих из 21 токена: 19/21 ≈ 0.905: "похожие", не "очень похожие"
    variant = " ".join(f"word{i}" for i in range(19)) + " other"
    samples = [_sample(1, base), _sample(2, variant)]

    result = TrainingDataDeduplicationService().analyze(samples)
    assert result.very_similar == []
    assert len(result.similar) == 1
    assert result.similar[0].similarity_score == pytest.approx(19 / 21)


def test_insert_check_rejects_near_duplicate():
    dedup = TrainingDataDeduplicationService()
    existing = [_sample(7, " ".join(f"token{i}" for i in range(30)))]

    near = " ".join(f"token{i}" for i in range(29)) + " extra"
    assert dedup.is_near_duplicate(near, existing) is True
    assert dedup.find_near_duplicate(near, existing).id == 7
    assert dedup.is_near_duplicate("nothing in common at all", existing) is False
    assert dedup.is_near_duplicate("", existing) is False
