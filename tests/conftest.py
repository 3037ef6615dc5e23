# tests/conftest.py

import pytest

from fakes import FAKE_DIMENSION, FakeEmbeddingEngine, FakeSubtaskGenerator
from taskrecall.application.ranking import SimilarityRanker
from taskrecall.application.search_service import SemanticSearchService
from taskrecall.application.task_service import TaskService
from taskrecall.infrastructure.memory_store import InMemoryTaskStore


@pytest.fixture()
def engine() -> FakeEmbeddingEngine:
    return FakeEmbeddingEngine()


@pytest.fixture()
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore(dimension=FAKE_DIMENSION)


@pytest.fixture()
def generator() -> FakeSubtaskGenerator:
    return FakeSubtaskGenerator()


@pytest.fixture()
def search_service(engine, store) -> SemanticSearchService:
    return SemanticSearchService(engine, store, SimilarityRanker(top_k=5, min_score=0.5))


@pytest.fixture()
def task_service(engine, store, generator) -> TaskService:
    return TaskService(engine, store, generator)
