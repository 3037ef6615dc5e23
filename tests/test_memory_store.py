# tests/test_memory_store.py

import threading
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from taskrecall.domain.errors import InvalidInput, NotFound
from taskrecall.domain.models import Subtask, Task, TaskStatus
from taskrecall.infrastructure.memory_store import InMemoryTaskStore


DIM = 4


def _make_task(title: str, owner: str = "alice", embedding=None, minutes: int = 0) -> Task:
    return Task(
        title=title,
        owner=owner,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
        embedding=None if embedding is None else np.asarray(embedding, dtype=np.float32),
    )


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore(dimension=DIM)


def test_scan_excludes_tasks_without_embedding(store):
    embedded = _make_task("embedded", embedding=[1, 0, 0, 0])
    pending = _make_task("pending")
    store.add_task(embedded)
    store.add_task(pending)

    candidates = store.scan("alice")

    assert [c.task_id for c in candidates] == [embedded.task_id]
    np.testing.assert_array_equal(candidates[0].vector, [1, 0, 0, 0])


def test_scan_never_returns_other_owner(store):
    for i in range(3):
        store.add_task(_make_task(f"alice {i}", owner="alice", embedding=[1, i, 0, 0]))
        store.add_task(_make_task(f"bob {i}", owner="bob", embedding=[1, i, 0, 0]))

    assert {c.task.owner for c in store.scan("alice")} == {"alice"}
    assert {c.task.owner for c in store.scan("bob")} == {"bob"}
    assert store.scan("carol") == []


def test_put_attaches_embedding_and_makes_task_searchable(store):
    task = _make_task("Buy milk")
    store.add_task(task)
    assert store.scan("alice") == []

    store.put(task.task_id, "alice", np.array([0, 1, 0, 0], dtype=np.float32))

    assert len(store.scan("alice")) == 1
    assert store.get_task(task.task_id, "alice").has_embedding


def test_put_is_idempotent(store):
    task = _make_task("Buy milk")
    store.add_task(task)
    vector = np.array([0.5, 0.5, 0, 0], dtype=np.float32)

    store.put(task.task_id, "alice", vector)
    first = store.get_task(task.task_id, "alice")
    store.put(task.task_id, "alice", vector.copy())
    second = store.get_task(task.task_id, "alice")

    np.testing.assert_array_equal(first.embedding, second.embedding)
    assert first.title == second.title and first.created_at == second.created_at
    assert len(store.scan("alice")) == 1


def test_put_replaces_embedding(store):
    task = _make_task("Buy milk", embedding=[1, 0, 0, 0])
    store.add_task(task)

    store.put(task.task_id, "alice", [0, 0, 1, 0])

    np.testing.assert_array_equal(store.scan("alice")[0].vector, [0, 0, 1, 0])


def test_put_for_foreign_or_missing_task_raises_not_found(store):
    task = _make_task("Buy milk", owner="alice")
    store.add_task(task)

    with pytest.raises(NotFound):
        store.put(task.task_id, "bob", [1, 0, 0, 0])
    with pytest.raises(NotFound):
        store.put("missing", "alice", [1, 0, 0, 0])
    assert store.get_task(task.task_id, "alice").embedding is None


@pytest.mark.parametrize("vector", [[1, 0, 0], [1, 0, 0, 0, 0], [np.nan, 0, 0, 0]])
def test_put_rejects_malformed_vector_without_partial_write(store, vector):
    task = _make_task("Buy milk", embedding=[1, 0, 0, 0])
    store.add_task(task)

    with pytest.raises(InvalidInput):
        store.put(task.task_id, "alice", vector)

    np.testing.assert_array_equal(store.get_task(task.task_id, "alice").embedding, [1, 0, 0, 0])


def test_add_task_rejects_wrong_dimension(store):
    with pytest.raises(InvalidInput):
        store.add_task(_make_task("bad", embedding=[1, 0]))
    assert store.count_tasks() == 0


def test_returned_tasks_are_copies(store):
    task = _make_task("Buy milk", embedding=[1, 0, 0, 0])
    store.add_task(task)

    fetched = store.get_task(task.task_id, "alice")
    fetched.title = "changed"
    fetched.embedding[0] = 99.0

    stored = store.get_task(task.task_id, "alice")
    assert stored.title == "Buy milk"
    assert stored.embedding[0] == 1.0


def test_list_tasks_newest_first_and_owner_scoped(store):
    store.add_task(_make_task("old", minutes=0))
    store.add_task(_make_task("new", minutes=5))
    store.add_task(_make_task("theirs", owner="bob", minutes=10))

    assert [t.title for t in store.list_tasks("alice")] == ["new", "old"]
    assert store.count_tasks("alice") == 2
    assert store.count_tasks() == 3


def test_update_task_keeps_owner_and_creation_time(store):
    task = _make_task("Buy milk")
    store.add_task(task)

    edited = store.get_task(task.task_id, "alice")
    edited.status = TaskStatus.DONE
    edited.created_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
    store.update_task(edited, "alice")

    stored = store.get_task(task.task_id, "alice")
    assert stored.status is TaskStatus.DONE
    assert stored.created_at == task.created_at


def test_update_task_of_other_owner_raises(store):
    task = _make_task("Buy milk")
    store.add_task(task)
    with pytest.raises(NotFound):
        store.update_task(task, "bob")


def test_add_task_with_id_of_other_owner_is_rejected(store):
    task = _make_task("Buy milk", embedding=[1, 0, 0, 0])
    store.add_task(task)

    intruder = _make_task("Take over", owner="bob")
    intruder.task_id = task.task_id
    with pytest.raises(InvalidInput):
        store.add_task(intruder)

    kept = store.get_task(task.task_id, "alice")
    assert kept.title == "Buy milk"
    np.testing.assert_array_equal(kept.embedding, [1, 0, 0, 0])
    assert store.list_tasks("bob") == []


def test_update_task_keeps_stored_embedding_unless_replaced(store):
    task = _make_task("Buy milk")
    store.add_task(task)
    edited = store.get_task(task.task_id, "alice")
    store.put(task.task_id, "alice", np.array([0, 1, 0, 0], dtype=np.float32))

    edited.status = TaskStatus.DONE
    store.update_task(edited, "alice")
    np.testing.assert_array_equal(store.get_task(task.task_id, "alice").embedding, [0, 1, 0, 0])

    store.update_task(edited, "alice", replace_embedding=True)
    assert store.get_task(task.task_id, "alice").embedding is None


def test_delete_task_cascades_to_subtasks(store):
    task = _make_task("Plan a wedding")
    other = _make_task("Clean garage")
    store.add_task(task)
    store.add_task(other)
    store.add_subtasks([
        Subtask(title="Book venue", task_id=task.task_id, owner="alice"),
        Subtask(title="Hire photographer", task_id=task.task_id, owner="alice"),
        Subtask(title="Sort tools", task_id=other.task_id, owner="alice"),
    ])

    store.delete_task(task.task_id, "alice")

    with pytest.raises(NotFound):
        store.get_task(task.task_id, "alice")
    with pytest.raises(NotFound):
        store.list_subtasks(task.task_id, "alice")
    assert [s.title for s in store.list_subtasks(other.task_id, "alice")] == ["Sort tools"]


def test_delete_task_of_other_owner_raises_and_keeps_row(store):
    task = _make_task("Buy milk")
    store.add_task(task)

    with pytest.raises(NotFound):
        store.delete_task(task.task_id, "bob")
    assert store.count_tasks("alice") == 1


def test_subtasks_are_saved_and_independently_deletable(store):
    task = _make_task("Plan a wedding")
    store.add_task(task)
    first = Subtask(title="Book venue", task_id=task.task_id, owner="alice")
    second = Subtask(title="Send invitations", task_id=task.task_id, owner="alice")
    store.add_subtasks([first, second])

    store.delete_subtask(first.subtask_id, "alice")

    remaining = store.list_subtasks(task.task_id, "alice")
    assert [s.title for s in remaining] == ["Send invitations"]
    assert remaining[0].is_saved is True


def test_subtask_for_foreign_task_is_rejected(store):
    task = _make_task("Plan a wedding", owner="alice")
    store.add_task(task)

    with pytest.raises(NotFound):
        store.add_subtasks([Subtask(title="Sneaky", task_id=task.task_id, owner="bob")])
    assert store.list_subtasks(task.task_id, "alice") == []


def test_delete_subtask_of_other_owner_raises(store):
    task = _make_task("Plan a wedding")
    store.add_task(task)
    subtask = Subtask(title="Book venue", task_id=task.task_id, owner="alice")
    store.add_subtasks([subtask])

    with pytest.raises(NotFound):
        store.delete_subtask(subtask.subtask_id, "bob")


def test_concurrent_puts_and_scans_never_see_partial_vectors(store):
    task = _make_task("Buy milk", embedding=[1, 0, 0, 0])
    store.add_task(task)
    vectors = [np.full(DIM, float(i), dtype=np.float32) for i in range(1, 50)]
    seen = []

    def writer():
        for vector in vectors:
            store.put(task.task_id, "alice", vector)

    def reader():
        for _ in range(200):
            for candidate in store.scan("alice"):
                seen.append(candidate.vector)

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # every observed vector is one that was written as a whole
    assert all(np.all(v == v[0]) or np.array_equal(v, [1, 0, 0, 0]) for v in seen)
