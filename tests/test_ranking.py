# tests/test_ranking.py

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from taskrecall.application.ranking import (
    DEFAULT_MIN_SCORE,
    DEFAULT_TOP_K,
    SCORE_TOLERANCE,
    SimilarityRanker,
    cosine_similarity,
    rank,
    to_match_score,
)
from taskrecall.domain.models import Candidate, Task


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _candidate(title: str, vector, minutes: int = 0) -> Candidate:
    task = Task(title=title, owner="u1", created_at=BASE_TIME + timedelta(minutes=minutes))
    vector = np.asarray(vector, dtype=np.float32)
    task.embedding = vector
    return Candidate(task_id=task.task_id, vector=vector, task=task)


# ── cosine_similarity ─────────────────────────────────────────────────────────

@pytest.mark.parametrize("vector", [
    [1.0, 0.0, 0.0],
    [0.3, -2.5, 7.1],
    [1e-3, 1e-3, 1e-3],
])
def test_vector_is_identical_to_itself(vector):
    v = np.array(vector, dtype=np.float32)
    assert cosine_similarity(v, v) == pytest.approx(1.0, abs=1e-6)


def test_opposite_vector_is_minus_one_and_reports_zero():
    v = np.array([0.2, 0.4, -0.9], dtype=np.float32)
    raw = cosine_similarity(v, -v)
    assert raw == pytest.approx(-1.0, abs=1e-6)
    assert to_match_score(raw) == 0.0


def test_orthogonal_vectors_score_zero():
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 3.0])) == 0.0


def test_zero_magnitude_scores_zero_without_warning():
    zero = np.zeros(3, dtype=np.float32)
    with np.errstate(all="raise"):
        assert cosine_similarity(zero, np.array([1.0, 2.0, 3.0])) == 0.0
        assert cosine_similarity(zero, zero) == 0.0


def test_match_score_is_bounded():
    assert to_match_score(1.0000001) == 1.0
    assert to_match_score(-0.3) == 0.0
    assert to_match_score(0.42) == 0.42


# ── rank ──────────────────────────────────────────────────────────────────────

def test_rank_empty_candidates_returns_empty():
    assert rank(np.array([1.0, 0.0]), [], top_k=5, min_score=0.0) == []


def test_rank_non_positive_top_k_returns_empty():
    candidates = [_candidate("a", [1.0, 0.0])]
    assert rank(np.array([1.0, 0.0]), candidates, top_k=0, min_score=0.0) == []


def test_rank_sorted_descending_and_above_threshold():
    query = np.array([1.0, 0.0, 0.0], dtype=np.float32)
    candidates = [
        _candidate("far", [0.0, 1.0, 0.0]),
        _candidate("close", [0.9, 0.1, 0.0]),
        _candidate("exact", [2.0, 0.0, 0.0]),
        _candidate("medium", [0.6, 0.8, 0.0]),
        _candidate("opposite", [-1.0, 0.0, 0.0]),
    ]

    results = rank(query, candidates, top_k=10, min_score=0.5)

    scores = [r.similarity for r in results]
    assert scores == sorted(scores, reverse=True)
    assert all(s >= 0.5 for s in scores)
    assert [r.task.title for r in results] == ["exact", "close", "medium"]
    assert results[0].similarity == pytest.approx(1.0, abs=1e-6)


def test_rank_filters_before_truncating():
    query = np.array([1.0, 0.0], dtype=np.float32)
    candidates = [_candidate(f"t{i}", [1.0, 0.1 * i]) for i in range(6)]

    results = rank(query, candidates, top_k=3, min_score=0.0)

    assert len(results) == 3
    assert [r.task.title for r in results] == ["t0", "t1", "t2"]


def test_rank_below_threshold_everything_is_empty_not_error():
    query = np.array([1.0, 0.0], dtype=np.float32)
    candidates = [_candidate("a", [0.0, 1.0]), _candidate("b", [-1.0, 0.2])]
    assert rank(query, candidates, top_k=5, min_score=0.3) == []


def test_rank_ties_newest_first():
    query = np.array([1.0, 1.0], dtype=np.float32)
    candidates = [
        _candidate("oldest", [1.0, 1.0], minutes=0),
        _candidate("newest", [3.0, 3.0], minutes=20),
        _candidate("middle", [2.0, 2.0], minutes=10),
    ]

    results = rank(query, candidates, top_k=5, min_score=0.0)

    assert [r.task.title for r in results] == ["newest", "middle", "oldest"]


def test_rank_near_ties_never_put_a_lower_score_first():
    # Neighbouring scores are within the tie tolerance, the ends of the chain
    # are not. Newer tasks have lower scores.
    query = np.array([1.0, 0.0])
    candidates = []
    for step in range(12):
        score = 0.5 + step * 0.4 * SCORE_TOLERANCE
        task = Task(title=f"t{step}", owner="u1", created_at=BASE_TIME - timedelta(minutes=step))
        vector = np.array([score, np.sqrt(1.0 - score * score)])
        candidates.append(Candidate(task_id=task.task_id, vector=vector, task=task))

    results = rank(query, candidates, top_k=20, min_score=0.0)

    assert len(results) == 12
    for i, earlier in enumerate(results):
        for later in results[i + 1:]:
            assert later.similarity <= earlier.similarity + SCORE_TOLERANCE


def test_reported_similarity_is_not_rounded_below_threshold():
    query = np.array([1.0, 0.0])
    score = 0.123441
    task = Task(title="faint", owner="u1", created_at=BASE_TIME)
    vector = np.array([score, np.sqrt(1.0 - score * score)])

    results = rank(query, [Candidate(task.task_id, vector, task)], top_k=5, min_score=0.12344)

    assert len(results) == 1
    assert results[0].to_dict()["similarity"] >= 0.12344


def test_rank_zero_vector_candidate_scores_zero():
    query = np.array([1.0, 0.0], dtype=np.float32)
    candidates = [_candidate("blank", [0.0, 0.0]), _candidate("match", [1.0, 0.0])]

    results = rank(query, candidates, top_k=5, min_score=0.0)

    assert [r.task.title for r in results] == ["match", "blank"]
    assert results[1].similarity == 0.0


def test_ranker_applies_its_configuration():
    ranker = SimilarityRanker(top_k=1, min_score=0.9)
    query = np.array([1.0, 0.0], dtype=np.float32)
    candidates = [_candidate("a", [1.0, 0.0]), _candidate("b", [1.0, 0.05])]

    results = ranker.rank(query, candidates)

    assert len(results) == 1
    assert results[0].task.title == "a"


def test_default_ranker_configuration():
    ranker = SimilarityRanker()
    assert ranker.top_k == DEFAULT_TOP_K
    assert ranker.min_score == DEFAULT_MIN_SCORE
    assert 0.0 < DEFAULT_MIN_SCORE < 1.0
