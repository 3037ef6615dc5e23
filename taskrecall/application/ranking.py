# taskrecall/application/ranking.py

from typing import List, Sequence

import numpy as np

from taskrecall.domain.models import Candidate, SearchResult


DEFAULT_TOP_K = 5
# Reported scores below this are not shown to users as matches.
DEFAULT_MIN_SCORE = 0.35
# Scores closer than this are treated as a tie.
SCORE_TOLERANCE = 1e-9


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity in [-1, 1]. A zero-magnitude vector on either side
    scores 0.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm_product = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm_product == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm_product)


def to_match_score(similarity: float) -> float:
    """Clamp a raw cosine similarity into the reported [0, 1] range."""
    return max(0.0, min(1.0, similarity))


class SimilarityRanker:
    """
    Exact-scan ranking of owner candidates against a query vector.

    Pipeline:
        1. Score every candidate with cosine similarity, clamped to [0, 1]
        2. Drop everything below min_score
        3. Sort by score, ties broken by created_at (newest first)
        4. Truncate to top_k
    """

    def __init__(self, top_k: int = DEFAULT_TOP_K, min_score: float = DEFAULT_MIN_SCORE):
        self._top_k = top_k
        self._min_score = min_score

    @property
    def top_k(self) -> int:
        return self._top_k

    @property
    def min_score(self) -> float:
        return self._min_score

    def rank(
        self,
        query_vector: np.ndarray,
        candidates: Sequence[Candidate],
    ) -> List[SearchResult]:
        return rank(query_vector, candidates, self._top_k, self._min_score)


def rank(
    query_vector: np.ndarray,
    candidates: Sequence[Candidate],
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
) -> List[SearchResult]:
    if not candidates or top_k <= 0:
        return []

    scored = [
        SearchResult(
            task=candidate.task,
            similarity=to_match_score(cosine_similarity(query_vector, candidate.vector)),
        )
        for candidate in candidates
    ]

    kept = [result for result in scored if result.similarity >= min_score]
    kept.sort(key=_sort_key, reverse=True)
    return kept[:top_k]


def _sort_key(result: SearchResult):
    # Scores are bucketed to the tie tolerance so the key is a total order.
    return (round(result.similarity / SCORE_TOLERANCE), result.task.created_at)
