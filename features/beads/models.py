"""
Data models for the beads feature.

A Bead is the durable memory of one page element: a snapshot of the element
plus its most recent change requests, oldest first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ChangeRecord:
    """One past change request against an element."""
    task_id: str
    feedback: str
    timestamp: str
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "feedback": self.feedback,
            "timestamp": self.timestamp,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeRecord:
        return cls(
            task_id=str(data.get("taskId", "")),
            feedback=str(data.get("feedback", "")),
            timestamp=str(data.get("timestamp", "")),
            success=bool(data.get("success", False)),
        )


@dataclass
class Bead:
    """Per-element change history, scoped to one project."""
    id: str
    element: dict[str, Any] = field(default_factory=dict)
    changes: list[ChangeRecord] = field(default_factory=list)

    def append(self, record: ChangeRecord, limit: int) -> None:
        """Add a change, keeping only the newest ``limit`` records."""
        self.changes.append(record)
        if len(self.changes) > limit:
            del self.changes[: len(self.changes) - limit]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "element": self.element,
            "changes": [c.to_dict() for c in self.changes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bead:
        return cls(
            id=str(data["id"]),
            element=dict(data.get("element") or {}),
            changes=[ChangeRecord.from_dict(c) for c in data.get("changes") or []],
        )
