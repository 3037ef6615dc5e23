# taskrecall/application/task_service.py

import logging
from typing import List, Optional

import numpy as np

from taskrecall.application.search_service import require_caller
from taskrecall.domain.errors import InvalidInput, ProviderError, ProviderUnavailable
from taskrecall.domain.interfaces import EmbeddingPort, SubtaskGeneratorPort, TaskStorePort
from taskrecall.domain.models import Priority, Subtask, Task, TaskStatus


logger = logging.getLogger(__name__)


def _clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidInput("Title cannot be empty.")
    return title


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as error:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidInput(f"Invalid {field_name} '{value}'. Expected one of: {allowed}.") from error


class TaskService:
    """
    Task lifecycle around the store: creation with the embedding attached in
    the same write, edits that keep the embedding in sync with the title,
    backfill of tasks that were stored without one, and subtasks.
    """

    def __init__(
        self,
        embedding_engine: EmbeddingPort,
        task_store: TaskStorePort,
        subtask_generator: Optional[SubtaskGeneratorPort] = None,
    ):
        self._embedding_engine = embedding_engine
        self._task_store = task_store
        self._subtask_generator = subtask_generator

    # ─── Tasks ───────────────────────────────────────────────────────────────

    def create_task(
        self,
        caller: Optional[str],
        title: str,
        priority=Priority.MEDIUM,
    ) -> Task:
        owner = require_caller(caller)
        task = Task(
            title=_clean_title(title),
            owner=owner,
            priority=_parse_enum(Priority, priority, "priority"),
        )
        task.embedding = self._try_embed(task.title)
        self._task_store.add_task(task)
        logger.info("Created task %s for %s (embedded=%s)", task.task_id, owner, task.has_embedding)
        return task

    def get_task(self, caller: Optional[str], task_id: str) -> Task:
        return self._task_store.get_task(task_id, require_caller(caller))

    def list_tasks(self, caller: Optional[str]) -> List[Task]:
        return self._task_store.list_tasks(require_caller(caller))

    def update_task(
        self,
        caller: Optional[str],
        task_id: str,
        title: Optional[str] = None,
        priority=None,
        status=None,
    ) -> Task:
        owner = require_caller(caller)
        task = self._task_store.get_task(task_id, owner)

        if priority is not None:
            task.priority = _parse_enum(Priority, priority, "priority")
        if status is not None:
            task.status = _parse_enum(TaskStatus, status, "status")
        title_changed = False
        if title is not None:
            new_title = _clean_title(title)
            if new_title != task.title:
                task.title = new_title
                # None when the provider is down
                task.embedding = self._try_embed(new_title)
                title_changed = True

        # the stored embedding is only replaced alongside a new title
        self._task_store.update_task(task, owner, replace_embedding=title_changed)
        return task

    def delete_task(self, caller: Optional[str], task_id: str) -> None:
        self._task_store.delete_task(task_id, require_caller(caller))
        logger.info("Deleted task %s", task_id)

    # ─── Embeddings ──────────────────────────────────────────────────────────

    def attach_embedding(self, caller: Optional[str], task_id: str, vector: np.ndarray) -> None:
        self._task_store.put(task_id, require_caller(caller), vector)

    def backfill_embeddings(self, caller: Optional[str]) -> int:
        """
        Embed every task of the caller that has no embedding yet.
        Stops at the first provider failure; tasks done so far stay embedded.
        """
        owner = require_caller(caller)
        missing = [t for t in self._task_store.list_tasks(owner) if not t.has_embedding]
        for task in missing:
            self._task_store.put(task.task_id, owner, self._embedding_engine.embed(task.title))
        if missing:
            logger.info("Backfilled embeddings for %d tasks of %s", len(missing), owner)
        return len(missing)

    def _try_embed(self, title: str) -> Optional[np.ndarray]:
        try:
            return self._embedding_engine.embed(title)
        except ProviderError as error:
            logger.warning("Storing task without embedding, provider failed: %s", error)
            return None

    # ─── Subtasks ────────────────────────────────────────────────────────────

    def suggest_subtasks(self, caller: Optional[str], task_id: str) -> List[Subtask]:
        """Model suggestions for a task. Nothing is persisted."""
        owner = require_caller(caller)
        if self._subtask_generator is None:
            raise ProviderUnavailable("Subtask generation is not configured.")

        task = self._task_store.get_task(task_id, owner)
        titles = self._subtask_generator.generate(task.title)
        return [
            Subtask(title=title, task_id=task.task_id, owner=owner, is_saved=False)
            for title in titles
        ]

    def save_subtasks(self, caller: Optional[str], task_id: str, titles: List[str]) -> List[Subtask]:
        owner = require_caller(caller)
        if not titles:
            raise InvalidInput("At least one subtask title is required.")

        subtasks = [
            Subtask(title=_clean_title(title), task_id=task_id, owner=owner, is_saved=True)
            for title in titles
        ]
        self._task_store.add_subtasks(subtasks)
        return subtasks

    def list_subtasks(self, caller: Optional[str], task_id: str) -> List[Subtask]:
        return self._task_store.list_subtasks(task_id, require_caller(caller))

    def delete_subtask(self, caller: Optional[str], subtask_id: str) -> None:
        self._task_store.delete_subtask(subtask_id, require_caller(caller))
