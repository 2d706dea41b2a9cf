"""Tests for fingerprint dedup and the diversity filter."""

from ragcore.core.retrieval import (
    dedupe_by_fingerprint,
    ensure_diversity,
    fingerprint,
    jaccard_similarity
)

from conftest import make_candidate

SHARED_TAIL = (
    "year over year as seasonal drinks pastries and catering orders drove higher "
    "average tickets at both downtown locations during the quarter"
)


def test_fingerprint_normalizes_case_and_whitespace():
    assert fingerprint("  Hello   WORLD\n again ") == "hello world again"
    assert fingerprint("abcdef", prefix_length=3) == "abc"


def test_dedupe_keeps_highest_score_at_first_position():
    pool = [
        make_candidate("a", "Same   text here", 0.4),
        make_candidate("b", "Other text", 0.7),
        make_candidate("c", "same text HERE", 0.9),
    ]

    result = dedupe_by_fingerprint(pool)

    assert [c.id for c in result] == ["c", "b"]


def test_dedupe_is_idempotent():
    pool = [
        make_candidate("a", "alpha beta", 0.4),
        make_candidate("b", "Alpha Beta", 0.5),
        make_candidate("c", "gamma", 0.1),
    ]

    once = dedupe_by_fingerprint(pool)
    twice = dedupe_by_fingerprint(once)

    assert [c.id for c in once] == [c.id for c in twice]


def test_jaccard_similarity():
    assert jaccard_similarity("", "") == 1.0
    assert jaccard_similarity("a b", "c d") == 0.0
    assert jaccard_similarity("a b c", "a b d") == 0.5


def test_diversity_drops_paraphrased_duplicate():
    first = make_candidate("v1", "Revenue up 12% " + SHARED_TAIL, 0.9)
    second = make_candidate("v2", "Revenue increased by 12% " + SHARED_TAIL, 0.85)
    third = make_candidate("v3", "Staff turnover fell after the new scheduling policy", 0.5)

    assert fingerprint(first.content) != fingerprint(second.content)
    assert abs(jaccard_similarity(first.content, second.content) - 0.88) < 1e-9

    result = ensure_diversity([first, second, third], threshold=0.85)

    assert [c.id for c in result] == ["v1", "v3"]


def test_diversity_preserves_order_and_rejects_at_threshold():
    pool = [
        make_candidate("x", "a b c d", 0.2),
        make_candidate("y", "a b c e", 0.9),
    ]

    # similarity is 3/5 = 0.6
    assert [c.id for c in ensure_diversity(pool, threshold=0.6)] == ["x"]
    assert [c.id for c in ensure_diversity(pool, threshold=0.61)] == ["x", "y"]
