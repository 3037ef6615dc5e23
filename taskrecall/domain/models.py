# taskrecall/domain/models.py

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, NamedTuple, Optional

import numpy as np


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Task:
    """
    A short task description owned by a single user.

    `embedding` stays None until the title has been encoded; once set it
    always has the store's fixed dimensionality.
    """
    title: str
    owner: str
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    task_id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    embedding: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_dict(self) -> dict:
        """JSON-friendly projection. The embedding itself is never exposed."""
        return {
            "id": self.task_id,
            "title": self.title,
            "priority": self.priority.value,
            "status": self.status.value,
            "owner": self.owner,
            "created_at": self.created_at.isoformat(),
            "has_embedding": self.has_embedding,
        }


@dataclass
class Subtask:
    """
    An actionable step of a Task.

    Suggestions coming from the generator carry is_saved=False and only live
    for the duration of the request; rows read back from a store are saved.
    """
    title: str
    task_id: str
    owner: str
    is_saved: bool = False
    subtask_id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.subtask_id,
            "title": self.title,
            "task_id": self.task_id,
            "owner": self.owner,
            "is_saved": self.is_saved,
            "created_at": self.created_at.isoformat(),
        }


class Candidate(NamedTuple):
    """One row of an owner scan: the vector to score plus the task it belongs to."""
    task_id: str
    vector: np.ndarray
    task: Task


@dataclass
class SearchResult:
    """
    Represents a ranked search result returned to the user.
    """
    task: Task
    similarity: float

    def to_dict(self) -> dict:
        payload = self.task.to_dict()
        payload["similarity"] = float(self.similarity)
        return payload

    def __repr__(self) -> str:
        return (
            f"SearchResult(score={self.similarity:.4f}, "
            f"task='{self.task.title[:60]}')"
        )


def results_to_dicts(results: List[SearchResult]) -> List[dict]:
    return [r.to_dict() for r in results]
