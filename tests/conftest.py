"""Shared pytest fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from features.beads import MemoryStore
from features.tasks import TaskStore
from models.schemas import ChangeRequest, ElementDescriptor, PathSegment

FAKE_AGENT = Path(__file__).parent / "fake_agent.py"
FAKE_AGENT_COMMAND = [sys.executable, str(FAKE_AGENT)]


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "site"
    project.mkdir()
    return project


@pytest.fixture()
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "state" / "tasks.json", max_tasks=5)


@pytest.fixture()
def memory() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def button() -> ElementDescriptor:
    return ElementDescriptor(
        tag="button",
        id="buy",
        classes=("btn", "btn-primary"),
        selector="#buy",
        path=(PathSegment("main", "main.content"), PathSegment("div", None)),
        computed_styles={"width": "120px", "color": "rgb(0, 0, 0)"},
    )


@pytest.fixture()
def make_request(project_dir: Path, button: ElementDescriptor):
    def _make(feedback: str = "Make it blue", **kwargs) -> ChangeRequest:
        kwargs.setdefault("element", button)
        kwargs.setdefault("project_path", str(project_dir))
        return ChangeRequest(feedback=feedback, **kwargs)

    return _make
