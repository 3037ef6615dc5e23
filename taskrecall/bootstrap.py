# taskrecall/bootstrap.py
"""
Composition root shared by the HTTP API and the CLI.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from taskrecall.application.ranking import SimilarityRanker
from taskrecall.application.search_service import SemanticSearchService
from taskrecall.application.task_service import TaskService
from taskrecall.config import Settings
from taskrecall.domain.interfaces import EmbeddingPort, SubtaskGeneratorPort, TaskStorePort
from taskrecall.infrastructure.chroma_store import ChromaTaskStore
from taskrecall.infrastructure.embedding_engine import build_embedding_engine
from taskrecall.infrastructure.memory_store import InMemoryTaskStore
from taskrecall.infrastructure.subtask_generator import OpenAISubtaskGenerator


logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    embedding_engine: EmbeddingPort
    task_store: TaskStorePort
    search_service: SemanticSearchService
    task_service: TaskService


def build_task_store(settings: Settings, embedding_engine: EmbeddingPort) -> TaskStorePort:
    if settings.store_backend == "memory":
        logger.info("Using in-memory task store; nothing will be persisted.")
        return InMemoryTaskStore(dimension=embedding_engine.dimension)
    return ChromaTaskStore(
        persist_directory=settings.chroma_persist_directory,
        dimension=embedding_engine.dimension,
        embedding_model_name=getattr(embedding_engine, "model_name", settings.embedding_model),
    )


def build_subtask_generator(settings: Settings) -> Optional[SubtaskGeneratorPort]:
    if not settings.openai_api_key:
        logger.info("OPENAI_API_KEY not set; subtask suggestions are disabled.")
        return None
    return OpenAISubtaskGenerator(
        api_key=settings.openai_api_key,
        model_name=settings.subtask_model,
        base_url=settings.openai_base_url,
    )


def build_services(
    settings: Settings,
    embedding_engine: Optional[EmbeddingPort] = None,
    task_store: Optional[TaskStorePort] = None,
    subtask_generator: Optional[SubtaskGeneratorPort] = None,
) -> AppServices:
    """Wire the application. Explicit arguments override the configured parts."""
    embedding_engine = embedding_engine or build_embedding_engine(settings)
    task_store = task_store or build_task_store(settings, embedding_engine)
    if subtask_generator is None:
        subtask_generator = build_subtask_generator(settings)

    ranker = SimilarityRanker(top_k=settings.search_top_k, min_score=settings.search_min_score)
    return AppServices(
        settings=settings,
        embedding_engine=embedding_engine,
        task_store=task_store,
        search_service=SemanticSearchService(embedding_engine, task_store, ranker),
        task_service=TaskService(embedding_engine, task_store, subtask_generator),
    )
