from __future__ import annotations

import json
from pathlib import Path

import pytest

from features.tasks import TaskStore
from models.errors import TaskStateError
from models.schemas import ElementSummary, Task, TaskStatus


def make_task(task_id: str, **kwargs) -> Task:
    kwargs.setdefault("feedback", f"feedback {task_id}")
    kwargs.setdefault("element", ElementSummary(tag="div", classes=("a",), selector=".a"))
    kwargs.setdefault("project_path", "/tmp/project")
    kwargs.setdefault("model", "test-model")
    return Task(id=task_id, **kwargs)


def test_add_persists_snapshot(task_store: TaskStore) -> None:
    task_store.add(make_task("t1"))

    data = json.loads(task_store.path.read_text())
    assert [t["id"] for t in data] == ["t1"]
    assert data[0]["status"] == "processing"
    assert data[0]["element"] == {"tag": "div", "classes": ["a"], "selector": ".a", "id": None}


def test_cap_evicts_oldest_first(task_store: TaskStore) -> None:
    for i in range(task_store.max_tasks + 1):
        task_store.add(make_task(f"t{i}"))

    assert len(task_store) == task_store.max_tasks
    assert "t0" not in task_store
    assert [t.id for t in task_store.list()] == ["t5", "t4", "t3", "t2", "t1"]


def test_list_is_most_recent_first(task_store: TaskStore) -> None:
    task_store.add(make_task("a"))
    task_store.add(make_task("b"))
    assert [t.id for t in task_store.list()] == ["b", "a"]


def test_append_output_accumulates(task_store: TaskStore) -> None:
    task_store.add(make_task("t1"))
    task_store.append_output("t1", "hello ")
    task_store.append_output("t1", "world")
    assert task_store.get("t1").log == "hello world"


def test_update_of_evicted_task_returns_none(task_store: TaskStore) -> None:
    assert task_store.append_output("missing", "x") is None


def test_terminal_task_is_immutable(task_store: TaskStore) -> None:
    task_store.add(make_task("t1"))
    done = task_store.update("t1", lambda t: t.finished(TaskStatus.COMPLETE, exit_code=0))
    assert done.completed_at is not None and done.exit_code == 0

    with pytest.raises(TaskStateError):
        task_store.append_output("t1", "late output")
    assert task_store.get("t1").log == ""


def test_readers_keep_their_snapshot(task_store: TaskStore) -> None:
    task_store.add(make_task("t1"))
    before = task_store.get("t1")
    task_store.append_output("t1", "more")
    assert before.log == ""
    assert task_store.get("t1").log == "more"


def test_reload_restores_tasks(task_store: TaskStore) -> None:
    for i in range(3):
        task_store.add(make_task(f"t{i}"))
    task_store.update("t0", lambda t: t.finished(TaskStatus.FAILED, exit_code=2))
    task_store.update("t1", lambda t: t.with_output("out").finished(TaskStatus.COMPLETE, exit_code=0, commit_hash="abc1234"))

    reloaded = TaskStore(task_store.path, max_tasks=task_store.max_tasks)
    assert reloaded.load() == 3
    assert [t.to_dict() for t in reloaded.list()] == [t.to_dict() for t in task_store.list()]


def test_reload_keeps_only_newest_max_tasks(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    big = TaskStore(path, max_tasks=10)
    for i in range(8):
        big.add(make_task(f"t{i}"))

    small = TaskStore(path, max_tasks=3)
    small.load()
    assert [t.id for t in small.list()] == ["t7", "t6", "t5"]


def test_processing_tasks_are_orphaned_after_reload(task_store: TaskStore) -> None:
    task_store.add(make_task("lost"))
    task_store.add(make_task("done"))
    task_store.update("done", lambda t: t.finished(TaskStatus.COMPLETE, exit_code=0))

    reloaded = TaskStore(task_store.path, max_tasks=task_store.max_tasks)
    reloaded.load()
    assert reloaded.orphaned == {"lost"}
    assert reloaded.get("lost").status is TaskStatus.PROCESSING
    assert reloaded.get("lost").completed_at is None


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "nope.json")
    assert store.load() == 0
    assert store.list() == []


def test_corrupt_file_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text("[{broken")
    store = TaskStore(path)
    assert store.load() == 0


def test_malformed_records_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps([{"feedback": "no id"}, {"id": "ok", "status": "complete"}, {"id": "bad", "status": "weird"}]))
    store = TaskStore(path)
    assert store.load() == 1
    assert store.get("ok").status is TaskStatus.COMPLETE


def test_unwritable_registry_does_not_raise(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = TaskStore(blocker / "tasks.json")
    store.add(make_task("t1"))
    assert store.get("t1") is not None
