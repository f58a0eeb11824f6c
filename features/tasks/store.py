"""
Task registry — the bounded set of recent tasks, mirrored to one JSON file.

The in-memory map is the source of truth while the server runs; the file is
rewritten wholesale after every mutation so a restart can reload the most
recent ``max_tasks`` records. Older history is dropped for good: this is a
bounded cache, not an archive.

Records are immutable Task snapshots swapped under a lock, so readers never
see a partially updated task. Tasks loaded from disk while still
``processing`` belong to a previous server run; they are kept untouched and
reported as orphaned.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from models.errors import StorageFault, TaskStateError
from models.schemas import Task, TaskStatus
from utils.jsonfile import read_json, write_json

log = logging.getLogger(__name__)

DEFAULT_MAX_TASKS = 50


class TaskStore:
    """Bounded, insertion-ordered task registry with write-through persistence."""

    def __init__(self, path: Path, max_tasks: int = DEFAULT_MAX_TASKS):
        self.path = Path(path)
        self.max_tasks = max_tasks
        self._tasks: dict[str, Task] = {}
        self._orphaned: set[str] = set()
        self._lock = threading.RLock()

    # ── Lifecycle ─────────────────────────────────────────────────────

    def load(self) -> int:
        """Reload the registry from disk. Returns the number of tasks loaded."""
        try:
            data = read_json(self.path)
        except StorageFault as e:
            log.warning("Failed to load tasks from %s: %s", self.path, e.reason)
            data = None

        tasks: dict[str, Task] = {}
        for item in data if isinstance(data, list) else []:
            try:
                task = Task.from_dict(item)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                log.warning("Skipping malformed task record: %s", e)
                continue
            tasks.pop(task.id, None)
            tasks[task.id] = task

        with self._lock:
            self._tasks = dict(list(tasks.items())[-self.max_tasks:])
            self._orphaned = {
                t.id for t in self._tasks.values() if t.status is TaskStatus.PROCESSING
            }
            count = len(self._tasks)

        log.info("Loaded %d tasks from %s", count, self.path)
        if self._orphaned:
            log.warning(
                "%d task(s) were still processing when the server stopped; their outcome is unknown: %s",
                len(self._orphaned), ", ".join(sorted(self._orphaned)),
            )
        return count

    def flush(self) -> None:
        """Write the current registry to disk. Failures are logged, not raised."""
        with self._lock:
            data = [t.to_dict() for t in self._tasks.values()]
            try:
                write_json(self.path, data)
            except StorageFault as e:
                log.warning("Failed to save tasks to %s: %s", self.path, e.reason)

    # ── Mutations ─────────────────────────────────────────────────────

    def add(self, task: Task) -> None:
        """Insert a task as the newest entry, evicting the oldest past the cap."""
        with self._lock:
            self._tasks.pop(task.id, None)
            self._orphaned.discard(task.id)
            self._tasks[task.id] = task
            while len(self._tasks) > self.max_tasks:
                oldest = next(iter(self._tasks))
                del self._tasks[oldest]
                self._orphaned.discard(oldest)
                log.debug("Evicted task %s", oldest)
            self.flush()

    def update(self, task_id: str, change: Callable[[Task], Task]) -> Task | None:
        """Replace a task with ``change(task)`` and persist.

        Returns the new snapshot, or None if the task is no longer resident
        (evicted). Raises TaskStateError if the task is already terminal.
        """
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                log.debug("Update for non-resident task %s dropped", task_id)
                return None
            if current.status.terminal:
                raise TaskStateError(f"Task {task_id} is already {current.status.value}")
            updated = change(current)
            self._tasks[task_id] = updated
            self.flush()
            return updated

    def append_output(self, task_id: str, text: str) -> Task | None:
        return self.update(task_id, lambda t: t.with_output(text))

    # ── Queries ───────────────────────────────────────────────────────

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def list(self) -> list[Task]:
        """All resident tasks, most recent first."""
        with self._lock:
            return list(reversed(self._tasks.values()))

    @property
    def orphaned(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._orphaned)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks
