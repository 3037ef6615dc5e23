# taskrecall/infrastructure/chroma_store.py

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import chromadb
import numpy as np
from chromadb.config import Settings

from taskrecall.domain.errors import InvalidInput, NotFound
from taskrecall.domain.interfaces import TaskStorePort
from taskrecall.domain.models import Candidate, Priority, Subtask, Task, TaskStatus
from taskrecall.domain.vectors import coerce_vector


logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

TASKS_COLLECTION      = "tasks"
SUBTASKS_COLLECTION   = "subtasks"
METADATA_COLLECTION   = "store_metadata"
METADATA_SENTINEL_ID  = "__metadata__"
MODEL_FINGERPRINT_KEY = "embedding_model_name"
DIMENSION_KEY         = "embedding_dimension"

# Chroma requires a vector on every record. Subtasks and the sentinel have no
# meaningful embedding, so they carry this constant one.
NON_SEARCHABLE_VECTOR = [1.0]

UPSERT_BATCH_SIZE = 500


class ChromaTaskStore(TaskStorePort):
    """
    Persistent task store on top of ChromaDB.

    ┌──────────────────────────────────────────────────────────────┐
    │  tasks           →  title (document) + fields (metadata)     │
    │                     + embedding, flagged by has_embedding    │
    │  subtasks        →  subtask rows keyed by task_id            │
    │  store_metadata  →  embedding model fingerprint              │
    └──────────────────────────────────────────────────────────────┘

    Tasks not yet embedded are stored with a placeholder vector and
    has_embedding=False; scan() filters on that flag, so placeholders are
    never scored.

    Model fingerprinting: when the configured embedding model (or dimension)
    differs from the one the stored vectors were produced with, every
    embedding is invalidated on startup. The affected tasks stay listed but
    are not searchable until re-embedded.
    """

    def __init__(
        self,
        persist_directory: str,
        dimension: int,
        embedding_model_name: str,
    ):
        self._persist_directory    = persist_directory
        self._dimension            = dimension
        self._embedding_model_name = embedding_model_name
        self._lock                 = threading.Lock()

        path = Path(persist_directory)
        if path.exists() and not path.is_dir():
            raise RuntimeError(f"Failed to initialize ChromaDB: path '{persist_directory}' is a file.")
        path.mkdir(parents=True, exist_ok=True)

        try:
            self._client = chromadb.PersistentClient(
                path=persist_directory,
                settings=Settings(anonymized_telemetry=False),
            )
            self._tasks    = self._open_collection(TASKS_COLLECTION)
            self._subtasks = self._open_collection(SUBTASKS_COLLECTION)
            self._metadata = self._open_collection(METADATA_COLLECTION)
        except Exception as error:
            raise RuntimeError(
                f"Failed to initialize ChromaDB at '{persist_directory}'.\n"
                f"The database may be locked by another process or corrupted.\n"
                f"Fix: close other running instances, or delete '{persist_directory}'.\n"
                f"Original error: {error}"
            ) from error

        self._check_fingerprint()
        logger.info(
            "Connected to '%s'. Collection has %d tasks.",
            persist_directory, self.count_tasks(),
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    # ─── Tasks ───────────────────────────────────────────────────────────────

    def add_task(self, task: Task) -> None:
        record = self._task_record(task)
        with self._lock:
            existing = self._tasks.get(ids=[task.task_id], include=["metadatas"])
            if existing["ids"] and existing["metadatas"][0].get("owner") != task.owner:
                raise InvalidInput(f"Task id '{task.task_id}' is already taken.")
            self._tasks.upsert(**record)
        logger.debug("Stored task %s (embedded=%s)", task.task_id, task.has_embedding)

    def get_task(self, task_id: str, owner: str) -> Task:
        return self._fetch_owned(task_id, owner)

    def list_tasks(self, owner: str) -> List[Task]:
        results = self._tasks.get(
            where   = {"owner": owner},
            include = ["documents", "metadatas", "embeddings"],
        )
        tasks = self._to_tasks(results)
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def update_task(self, task: Task, owner: str, replace_embedding: bool = False) -> None:
        with self._lock:
            current = self._fetch_owned(task.task_id, owner)
            task.owner = current.owner
            task.created_at = current.created_at
            if not replace_embedding:
                task.embedding = current.embedding
            self._tasks.upsert(**self._task_record(task))

    def delete_task(self, task_id: str, owner: str) -> None:
        with self._lock:
            self._fetch_owned(task_id, owner)
            self._subtasks.delete(where={"task_id": task_id})
            self._tasks.delete(ids=[task_id])
        logger.debug("Deleted task %s with its subtasks", task_id)

    def count_tasks(self, owner: Optional[str] = None) -> int:
        if owner is None:
            return self._tasks.count()
        return len(self._tasks.get(where={"owner": owner}, include=[])["ids"])

    # ─── Embeddings ──────────────────────────────────────────────────────────

    def put(self, task_id: str, owner: str, vector: np.ndarray) -> None:
        vector = coerce_vector(vector, self._dimension)
        with self._lock:
            task = self._fetch_owned(task_id, owner)
            if task.embedding is not None and np.array_equal(task.embedding, vector):
                logger.debug("Embedding for task %s unchanged, skipping write", task_id)
                return
            task.embedding = vector
            self._tasks.upsert(**self._task_record(task))

    def scan(self, owner: str) -> List[Candidate]:
        results = self._tasks.get(
            where   = {"$and": [{"owner": owner}, {"has_embedding": True}]},
            include = ["documents", "metadatas", "embeddings"],
        )
        return [
            Candidate(task_id=task.task_id, vector=task.embedding, task=task)
            for task in self._to_tasks(results)
            # owner re-checked on the decoded rows
            if task.owner == owner and task.embedding is not None
        ]

    # ─── Subtasks ────────────────────────────────────────────────────────────

    def add_subtasks(self, subtasks: List[Subtask]) -> None:
        if not subtasks:
            return
        with self._lock:
            for parent_id, owner in {(s.task_id, s.owner) for s in subtasks}:
                self._fetch_owned(parent_id, owner)
            self._subtasks.upsert(
                ids        = [s.subtask_id for s in subtasks],
                embeddings = [NON_SEARCHABLE_VECTOR for _ in subtasks],
                documents  = [s.title for s in subtasks],
                metadatas  = [{
                    "task_id":    s.task_id,
                    "owner":      s.owner,
                    "created_at": s.created_at.isoformat(),
                } for s in subtasks],
            )

    def list_subtasks(self, task_id: str, owner: str) -> List[Subtask]:
        self._fetch_owned(task_id, owner)
        results = self._subtasks.get(
            where   = {"$and": [{"task_id": task_id}, {"owner": owner}]},
            include = ["documents", "metadatas"],
        )
        subtasks = [
            Subtask(
                subtask_id = sid,
                title      = title,
                task_id    = metadata["task_id"],
                owner      = metadata["owner"],
                is_saved   = True,
                created_at = datetime.fromisoformat(metadata["created_at"]),
            )
            for sid, title, metadata in zip(
                results["ids"], results["documents"], results["metadatas"]
            )
        ]
        return sorted(subtasks, key=lambda s: s.created_at)

    def delete_subtask(self, subtask_id: str, owner: str) -> None:
        with self._lock:
            result = self._subtasks.get(ids=[subtask_id], include=["metadatas"])
            if not result["ids"] or result["metadatas"][0].get("owner") != owner:
                raise NotFound(f"Subtask '{subtask_id}' not found.")
            self._subtasks.delete(ids=[subtask_id])

    # ─── Private: Fingerprint ────────────────────────────────────────────────

    def _check_fingerprint(self) -> None:
        stored = self._metadata.get(ids=[METADATA_SENTINEL_ID], include=["metadatas"])
        stored_meta = stored["metadatas"][0] if stored["ids"] else {}
        stored_model = stored_meta.get(MODEL_FINGERPRINT_KEY)
        stored_dimension = stored_meta.get(DIMENSION_KEY)

        if stored_model is not None and (
            stored_model != self._embedding_model_name
            or stored_dimension != self._dimension
        ):
            logger.warning(
                "Embedding model changed (stored '%s'/%s, current '%s'/%s). "
                "Invalidating stored embeddings.",
                stored_model, stored_dimension,
                self._embedding_model_name, self._dimension,
            )
            self._invalidate_embeddings()

        self._metadata.upsert(
            ids        = [METADATA_SENTINEL_ID],
            embeddings = [NON_SEARCHABLE_VECTOR],
            documents  = [METADATA_SENTINEL_ID],
            metadatas  = [{
                MODEL_FINGERPRINT_KEY: self._embedding_model_name,
                DIMENSION_KEY:         self._dimension,
            }],
        )

    def _invalidate_embeddings(self) -> None:
        """
        Recreate the tasks collection with every embedding cleared. The
        collection is rebuilt rather than updated in place because the vector
        dimension of a Chroma collection is fixed once written.
        """
        results = self._tasks.get(include=["documents", "metadatas"])
        ids       = results["ids"]
        documents = results["documents"]
        metadatas = [dict(meta, has_embedding=False) for meta in results["metadatas"]]

        self._client.delete_collection(TASKS_COLLECTION)
        self._tasks = self._open_collection(TASKS_COLLECTION)

        placeholder = self._placeholder_vector()
        for start in range(0, len(ids), UPSERT_BATCH_SIZE):
            batch = slice(start, start + UPSERT_BATCH_SIZE)
            self._tasks.upsert(
                ids        = ids[batch],
                embeddings = [placeholder for _ in ids[batch]],
                documents  = documents[batch],
                metadatas  = metadatas[batch],
            )
        logger.info("Cleared embeddings of %d tasks; run a reindex to restore search.", len(ids))

    # ─── Private: Chroma Helpers ─────────────────────────────────────────────

    def _open_collection(self, name: str):
        return self._client.get_or_create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
        )

    def _placeholder_vector(self) -> List[float]:
        placeholder = [0.0] * self._dimension
        placeholder[0] = 1.0
        return placeholder

    def _task_record(self, task: Task) -> dict:
        if task.embedding is not None:
            embedding = coerce_vector(task.embedding, self._dimension).tolist()
        else:
            embedding = self._placeholder_vector()

        return {
            "ids":        [task.task_id],
            "embeddings": [embedding],
            "documents":  [task.title],
            "metadatas":  [{
                "owner":         task.owner,
                "priority":      task.priority.value,
                "status":        task.status.value,
                "created_at":    task.created_at.isoformat(),
                "has_embedding": task.embedding is not None,
            }],
        }

    def _fetch_owned(self, task_id: str, owner: str) -> Task:
        results = self._tasks.get(
            ids     = [task_id],
            include = ["documents", "metadatas", "embeddings"],
        )
        tasks = self._to_tasks(results)
        if not tasks or tasks[0].owner != owner:
            raise NotFound(f"Task '{task_id}' not found.")
        return tasks[0]

    @staticmethod
    def _to_tasks(results: dict) -> List[Task]:
        ids = results["ids"]
        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = [None] * len(ids)

        tasks = []
        for task_id, title, metadata, embedding in zip(
            ids, results["documents"], results["metadatas"], embeddings
        ):
            has_embedding = bool(metadata.get("has_embedding")) and embedding is not None
            tasks.append(Task(
                task_id    = task_id,
                title      = title,
                owner      = metadata["owner"],
                priority   = Priority(metadata["priority"]),
                status     = TaskStatus(metadata["status"]),
                created_at = datetime.fromisoformat(metadata["created_at"]),
                embedding  = np.array(embedding, dtype=np.float32) if has_embedding else None,
            ))
        return tasks
