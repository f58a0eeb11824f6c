"""
WebSocket message models.

Inbound frames are validated as a closed, tagged union on ``type``. The
legacy extension names (``visual_feedback``, ``get_tasks``) are accepted
alongside the canonical ones. Anything else is rejected with MessageError.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from models.errors import MessageError
from models.schemas import ChangeRequest, ElementDescriptor, PathSegment, Task


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PathSegmentIn(_Payload):
    tag: str = ""
    selector: str | None = None


class ElementIn(_Payload):
    tag: str = ""
    id: str | None = None
    classes: list[str] = Field(default_factory=list)
    selector: str | None = None
    path: list[PathSegmentIn] = Field(default_factory=list)
    computed_styles: dict[str, Any] = Field(default_factory=dict, alias="computedStyles")

    def to_descriptor(self) -> ElementDescriptor:
        return ElementDescriptor(
            tag=self.tag,
            id=self.id or None,
            classes=tuple(self.classes),
            selector=self.selector or None,
            path=tuple(PathSegment(tag=p.tag, selector=p.selector) for p in self.path),
            computed_styles={k: str(v) for k, v in self.computed_styles.items() if v},
        )


class ChangePayload(_Payload):
    id: str | None = None
    feedback: str = Field(min_length=1)
    element: ElementIn
    project_path: str = Field(alias="projectPath", min_length=1)
    page_url: str | None = Field(default=None, alias="pageUrl")
    model: str | None = None


class SubmitChange(_Payload):
    type: Literal["submit_change", "visual_feedback"]
    payload: ChangePayload

    def to_request(self) -> ChangeRequest:
        p = self.payload
        return ChangeRequest(
            feedback=p.feedback,
            element=p.element.to_descriptor(),
            project_path=p.project_path,
            id=p.id or None,
            page_url=p.page_url or None,
            model=p.model or None,
        )


class ListTasks(_Payload):
    type: Literal["list_tasks", "get_tasks"]


class GetTaskLog(_Payload):
    type: Literal["get_task_log"]
    task_id: str = Field(alias="taskId")


InboundMessage = Annotated[
    Union[SubmitChange, ListTasks, GetTaskLog],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundMessage)


def parse_message(raw: str | bytes) -> SubmitChange | ListTasks | GetTaskLog:
    """Decode and validate one inbound frame."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MessageError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict) or "type" not in data:
        raise MessageError("Message must be an object with a 'type' field")
    try:
        return _inbound.validate_python(data)
    except ValidationError as e:
        raise MessageError(_describe(e)) from e


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    where = ".".join(str(part) for part in first.get("loc", ()))
    return f"{where}: {first.get('msg', 'invalid')}" if where else first.get("msg", "invalid")


# ── Outbound ──────────────────────────────────────────────────────────

def ready() -> dict:
    return {"type": "ready"}


def task_started(task_id: str) -> dict:
    return {"type": "task_started", "taskStarted": True, "taskId": task_id}


def task_update(task: Task) -> dict:
    return {"type": "task_update", "task": task.to_dict()}


def task_result(task_id: str, success: bool, error: str | None = None) -> dict:
    msg: dict = {"type": "task_result", "success": success, "taskId": task_id}
    if error:
        msg["error"] = error
    return msg


def task_list(tasks: list[Task]) -> dict:
    return {"type": "tasks", "tasks": [t.to_dict() for t in tasks]}


def task_log(task_id: str, log: str) -> dict:
    return {"type": "task_log", "taskId": task_id, "log": log}


def error(message: str, task_id: str | None = None) -> dict:
    msg: dict = {"type": "error", "error": message}
    if task_id:
        msg["taskId"] = task_id
    return msg
