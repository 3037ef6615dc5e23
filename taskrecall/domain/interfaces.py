# taskrecall/domain/interfaces.py

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from .models import Candidate, Subtask, Task


class EmbeddingPort(ABC):
    """
    Port for any embedding engine.
    One call to embed() is one model call: no caching, no retries.
    """

    @property
    @abstractmethod
    def dimension(self) -> int: ...

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        """
        Return a vector of exactly `dimension` finite components.

        Raises InvalidInput for blank text (before any model call),
        ProviderUnavailable or ProviderMalformedResponse on provider failure.
        """
        ...


class TaskStorePort(ABC):
    """
    Task and subtask rows plus the embedding column.

    Every method is scoped to an owner. Rows of other owners behave as if they
    did not exist, so callers never have to re-check ownership themselves.
    """

    @property
    @abstractmethod
    def dimension(self) -> int: ...

    @abstractmethod
    def add_task(self, task: Task) -> None:
        """Insert a task. An id already held by another owner is rejected."""
        ...

    @abstractmethod
    def get_task(self, task_id: str, owner: str) -> Task: ...

    @abstractmethod
    def list_tasks(self, owner: str) -> List[Task]: ...

    @abstractmethod
    def update_task(self, task: Task, owner: str, replace_embedding: bool = False) -> None:
        """
        Replace the editable fields of an owned task. The stored embedding is
        kept unless replace_embedding is set, in which case task.embedding
        (possibly None) is written as well.
        """
        ...

    @abstractmethod
    def delete_task(self, task_id: str, owner: str) -> None:
        """Delete a task together with all of its subtasks."""
        ...

    @abstractmethod
    def put(self, task_id: str, owner: str, vector: np.ndarray) -> None:
        """Attach or replace the embedding of an existing task. Idempotent."""
        ...

    @abstractmethod
    def scan(self, owner: str) -> List[Candidate]:
        """
        Every task of `owner` that currently has an embedding, in no
        particular order. Tasks without an embedding are left out.
        """
        ...

    @abstractmethod
    def add_subtasks(self, subtasks: List[Subtask]) -> None: ...

    @abstractmethod
    def list_subtasks(self, task_id: str, owner: str) -> List[Subtask]: ...

    @abstractmethod
    def delete_subtask(self, subtask_id: str, owner: str) -> None: ...

    @abstractmethod
    def count_tasks(self, owner: Optional[str] = None) -> int: ...


class SubtaskGeneratorPort(ABC):

    @abstractmethod
    def generate(self, task_title: str) -> List[str]: ...


class AuthenticatorPort(ABC):

    @abstractmethod
    def authenticate(self, authorization: Optional[str]) -> str:
        """Return the verified caller id or raise Unauthorized."""
        ...
