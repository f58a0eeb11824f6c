"""
Error types shared across the server.

Agent spawn failures and nonzero exits are task outcomes, not exceptions:
they land on the Task record as status ``failed``.
"""

from __future__ import annotations


class StorageFault(Exception):
    """A registry or bead file could not be read, parsed, or written."""

    def __init__(self, path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class MessageError(ValueError):
    """An inbound message was malformed or could not be accepted."""


class DuplicateTaskError(MessageError):
    """A caller-supplied task id clashes with a task that is still running."""

    def __init__(self, task_id: str):
        super().__init__(f"Task already running: {task_id}")
        self.task_id = task_id


class TaskStateError(RuntimeError):
    """Attempt to mutate a task that already reached a terminal state."""
