"""
Domain models for the task lifecycle.

Tasks are immutable snapshots: every update builds a new Task with
dataclasses.replace, so a reader never observes a half-written record.
Bead and ChangeRecord live in features.beads.models.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not TaskStatus.PROCESSING


@dataclass(frozen=True)
class PathSegment:
    """One ancestor in the element's DOM path."""
    tag: str = ""
    selector: str | None = None


@dataclass(frozen=True)
class ElementDescriptor:
    """A DOM element as reported by the page markup UI."""
    tag: str = ""
    id: str | None = None
    classes: tuple[str, ...] = ()
    selector: str | None = None
    path: tuple[PathSegment, ...] = ()
    computed_styles: dict[str, str] = field(default_factory=dict, compare=False)

    def summary(self) -> ElementSummary:
        return ElementSummary(
            tag=self.tag,
            classes=self.classes,
            selector=self.selector,
            id=self.id,
        )


@dataclass(frozen=True)
class ElementSummary:
    """The part of a descriptor kept on a Task record."""
    tag: str = ""
    classes: tuple[str, ...] = ()
    selector: str | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "classes": list(self.classes),
            "selector": self.selector,
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementSummary:
        return cls(
            tag=data.get("tag") or "",
            classes=tuple(data.get("classes") or ()),
            selector=data.get("selector"),
            id=data.get("id"),
        )


@dataclass(frozen=True)
class ChangeRequest:
    """A validated request to change one element of a page."""
    feedback: str
    element: ElementDescriptor
    project_path: str
    id: str | None = None
    page_url: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class Task:
    """One agent invocation, tracked from submission to exit."""
    id: str
    feedback: str
    element: ElementSummary
    project_path: str
    model: str
    status: TaskStatus = TaskStatus.PROCESSING
    started_at: str = field(default_factory=utc_now)
    page_url: str | None = None
    completed_at: str | None = None
    log: str = ""
    exit_code: int | None = None
    commit_hash: str | None = None
    commit_url: str | None = None

    def with_output(self, text: str) -> Task:
        return replace(self, log=self.log + text)

    def finished(self, status: TaskStatus, **changes: Any) -> Task:
        return replace(self, status=status, completed_at=utc_now(), **changes)

    def to_dict(self) -> dict[str, Any]:
        """Wire/persisted form (camelCase keys, as the extension reads them)."""
        return {
            "id": self.id,
            "feedback": self.feedback,
            "element": self.element.to_dict(),
            "projectPath": self.project_path,
            "pageUrl": self.page_url,
            "model": self.model,
            "status": self.status.value,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "log": self.log,
            "exitCode": self.exit_code,
            "commitHash": self.commit_hash,
            "commitUrl": self.commit_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        return cls(
            id=str(data["id"]),
            feedback=data.get("feedback") or "",
            element=ElementSummary.from_dict(data.get("element") or {}),
            project_path=data.get("projectPath") or "",
            model=data.get("model") or "",
            status=TaskStatus(data.get("status", "processing")),
            started_at=data.get("startedAt") or "",
            page_url=data.get("pageUrl"),
            completed_at=data.get("completedAt"),
            log=data.get("log") or "",
            exit_code=data.get("exitCode"),
            commit_hash=data.get("commitHash"),
            commit_url=data.get("commitUrl"),
        )
