"""
Tasks feature — bounded registry of agent tasks.

Public API:
    from features.tasks import TaskStore
"""

from features.tasks.store import TaskStore

__all__ = ["TaskStore"]
