# taskrecall/infrastructure/memory_store.py

import dataclasses
import logging
import threading
from typing import Dict, List, Optional

import numpy as np

from taskrecall.domain.errors import InvalidInput, NotFound
from taskrecall.domain.interfaces import TaskStorePort
from taskrecall.domain.models import Candidate, Subtask, Task
from taskrecall.domain.vectors import coerce_vector


logger = logging.getLogger(__name__)


class InMemoryTaskStore(TaskStorePort):
    """
    Dict-backed store for tests and throwaway sessions.

    A single lock guards every read and write, so a put() is never observed
    half-done by a concurrent scan(). Rows are copied on the way in and out;
    callers cannot mutate stored state through a returned object.
    """

    def __init__(self, dimension: int):
        self._dimension = dimension
        self._tasks: Dict[str, Task] = {}
        self._subtasks: Dict[str, Subtask] = {}
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    # ─── Tasks ───────────────────────────────────────────────────────────────

    def add_task(self, task: Task) -> None:
        stored = self._snapshot(task)
        with self._lock:
            existing = self._tasks.get(stored.task_id)
            if existing is not None and existing.owner != stored.owner:
                raise InvalidInput(f"Task id '{stored.task_id}' is already taken.")
            self._tasks[stored.task_id] = stored
        logger.debug("Stored task %s (embedded=%s)", stored.task_id, stored.has_embedding)

    def get_task(self, task_id: str, owner: str) -> Task:
        with self._lock:
            return self._copy(self._owned_task(task_id, owner))

    def list_tasks(self, owner: str) -> List[Task]:
        with self._lock:
            tasks = [self._copy(t) for t in self._tasks.values() if t.owner == owner]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def update_task(self, task: Task, owner: str, replace_embedding: bool = False) -> None:
        stored = self._snapshot(task)
        with self._lock:
            current = self._owned_task(task.task_id, owner)
            # id, owner and creation time are immutable
            stored.owner = current.owner
            stored.created_at = current.created_at
            if not replace_embedding:
                stored.embedding = current.embedding
            self._tasks[stored.task_id] = stored

    def delete_task(self, task_id: str, owner: str) -> None:
        with self._lock:
            self._owned_task(task_id, owner)
            del self._tasks[task_id]
            orphaned = [sid for sid, s in self._subtasks.items() if s.task_id == task_id]
            for subtask_id in orphaned:
                del self._subtasks[subtask_id]
        logger.debug("Deleted task %s and %d subtasks", task_id, len(orphaned))

    def count_tasks(self, owner: Optional[str] = None) -> int:
        with self._lock:
            if owner is None:
                return len(self._tasks)
            return sum(1 for t in self._tasks.values() if t.owner == owner)

    # ─── Embeddings ──────────────────────────────────────────────────────────

    def put(self, task_id: str, owner: str, vector: np.ndarray) -> None:
        vector = coerce_vector(vector, self._dimension)
        with self._lock:
            task = self._owned_task(task_id, owner)
            if task.embedding is not None and np.array_equal(task.embedding, vector):
                return
            self._tasks[task_id] = dataclasses.replace(task, embedding=vector.copy())

    def scan(self, owner: str) -> List[Candidate]:
        with self._lock:
            return [
                Candidate(task_id=t.task_id, vector=t.embedding.copy(), task=self._copy(t))
                for t in self._tasks.values()
                if t.owner == owner and t.embedding is not None
            ]

    # ─── Subtasks ────────────────────────────────────────────────────────────

    def add_subtasks(self, subtasks: List[Subtask]) -> None:
        with self._lock:
            for subtask in subtasks:
                self._owned_task(subtask.task_id, subtask.owner)
            for subtask in subtasks:
                self._subtasks[subtask.subtask_id] = dataclasses.replace(subtask, is_saved=True)

    def list_subtasks(self, task_id: str, owner: str) -> List[Subtask]:
        with self._lock:
            self._owned_task(task_id, owner)
            subtasks = [
                dataclasses.replace(s) for s in self._subtasks.values()
                if s.task_id == task_id
            ]
        return sorted(subtasks, key=lambda s: s.created_at)

    def delete_subtask(self, subtask_id: str, owner: str) -> None:
        with self._lock:
            subtask = self._subtasks.get(subtask_id)
            if subtask is None or subtask.owner != owner:
                raise NotFound(f"Subtask '{subtask_id}' not found.")
            del self._subtasks[subtask_id]

    # ─── Private ─────────────────────────────────────────────────────────────

    def _owned_task(self, task_id: str, owner: str) -> Task:
        """Caller must hold the lock."""
        task = self._tasks.get(task_id)
        if task is None or task.owner != owner:
            raise NotFound(f"Task '{task_id}' not found.")
        return task

    def _snapshot(self, task: Task) -> Task:
        embedding = None
        if task.embedding is not None:
            embedding = coerce_vector(task.embedding, self._dimension).copy()
        return dataclasses.replace(task, embedding=embedding)

    @staticmethod
    def _copy(task: Task) -> Task:
        embedding = None if task.embedding is None else task.embedding.copy()
        return dataclasses.replace(task, embedding=embedding)
