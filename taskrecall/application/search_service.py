# taskrecall/application/search_service.py

import logging
from enum import Enum
from typing import List, Optional

import numpy as np

from taskrecall.application.ranking import SimilarityRanker
from taskrecall.domain.errors import InvalidInput, ProviderError, SearchUnavailable, Unauthorized
from taskrecall.domain.interfaces import EmbeddingPort, TaskStorePort
from taskrecall.domain.models import SearchResult


logger = logging.getLogger(__name__)


class SearchStage(str, Enum):
    VALIDATING = "validating"
    EMBEDDING = "embedding"
    SCANNING = "scanning"
    RANKING = "ranking"
    RESPONDING = "responding"


def require_caller(caller: Optional[str], owner: Optional[str] = None) -> str:
    """
    Resolve the owner a request acts on. The session identity always wins:
    a client-supplied owner is only accepted when it is the caller.
    """
    if not caller:
        raise Unauthorized("Authentication required.")
    if owner is not None and owner != caller:
        raise Unauthorized("Owner does not match the authenticated user.")
    return caller


class SemanticSearchService:
    """
    Core use case: find the caller's tasks whose titles mean something close
    to a free-text query.

    Request lifecycle:
        validating → embedding → scanning → ranking → responding

    Any stage can fail. Provider errors never leave this class as such; they
    become a generic SearchUnavailable so clients do not see provider details.
    The service holds no per-request state and is safe to share across threads.
    """

    def __init__(
        self,
        embedding_engine: EmbeddingPort,
        task_store: TaskStorePort,
        ranker: Optional[SimilarityRanker] = None,
    ):
        self._embedding_engine = embedding_engine
        self._task_store = task_store
        self._ranker = ranker or SimilarityRanker()

    @property
    def ranker(self) -> SimilarityRanker:
        return self._ranker

    def search(
        self,
        query: str,
        caller: Optional[str],
        owner: Optional[str] = None,
    ) -> List[SearchResult]:
        stage = SearchStage.VALIDATING
        owner = require_caller(caller, owner)
        query = (query or "").strip()
        if not query:
            raise InvalidInput("Query cannot be empty.")

        stage = self._advance(stage, SearchStage.EMBEDDING, owner)
        try:
            query_vector = self._embedding_engine.embed(query)
        except ProviderError as error:
            logger.warning("Search failed at %s stage: %s", stage.value, error)
            raise SearchUnavailable() from error

        stage = self._advance(stage, SearchStage.SCANNING, owner)
        candidates = self._task_store.scan(owner)

        stage = self._advance(stage, SearchStage.RANKING, owner)
        results = self._ranker.rank(query_vector, candidates)

        self._advance(stage, SearchStage.RESPONDING, owner)
        logger.info(
            "Search by %s: %d candidates, %d results above %.2f",
            owner, len(candidates), len(results), self._ranker.min_score,
        )
        return results

    def embed_text(self, text: str, caller: Optional[str]) -> np.ndarray:
        """
        Embedding for a task title, for callers that persist it themselves
        through TaskStorePort.put(). Provider errors propagate unchanged.
        """
        require_caller(caller)
        if not text or not text.strip():
            raise InvalidInput("Text cannot be empty.")
        return self._embedding_engine.embed(text)

    @staticmethod
    def _advance(current: SearchStage, nxt: SearchStage, owner: str) -> SearchStage:
        logger.debug("search[%s] %s -> %s", owner, current.value, nxt.value)
        return nxt
