"""
Bead store — per-project, per-element change history on disk.

Layout: ``<project>/.beads/elements/<element-key>.json``, one document per
element holding a snapshot of the element and its last N change records.

Memory is best-effort augmentation. Every read or write failure is logged
and degrades to "no history"; nothing here ever blocks a task.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from features.beads.identity import derive_key
from features.beads.models import Bead, ChangeRecord
from models.errors import StorageFault
from models.schemas import utc_now
from utils.jsonfile import read_json, write_json

log = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10
DEFAULT_CONTEXT_CHANGES = 3


class MemoryStore:
    """Reads and writes element beads under each project's memory directory."""

    def __init__(
        self,
        subdir: Path = Path(".beads") / "elements",
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        context_changes: int = DEFAULT_CONTEXT_CHANGES,
    ):
        self.subdir = Path(subdir)
        self.history_limit = history_limit
        self.context_changes = context_changes

    def bead_path(self, project_path: str | Path, element) -> Path:
        return Path(project_path) / self.subdir / f"{derive_key(element)}.json"

    def load(self, project_path: str | Path, element) -> Bead | None:
        """Return the element's bead, or None if absent or unreadable."""
        path = self.bead_path(project_path, element)
        try:
            data = read_json(path)
        except StorageFault as e:
            log.warning("[BEAD] Failed to load %s: %s", path, e.reason)
            return None
        if data is None:
            return None
        try:
            return Bead.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning("[BEAD] Ignoring malformed bead %s: %s", path, e)
            return None

    def save(
        self,
        project_path: str | Path,
        element,
        feedback: str,
        task_id: str,
        succeeded: bool,
    ) -> Bead | None:
        """Append a change record to the element's bead and write it back.

        Returns the saved bead, or None if it could not be written.
        """
        bead = self.load(project_path, element) or Bead(
            id=derive_key(element),
            element={
                "tag": getattr(element, "tag", "") or "",
                "id": getattr(element, "id", None),
                "classes": list(getattr(element, "classes", None) or ()),
                "selector": getattr(element, "selector", None),
            },
        )
        bead.append(
            ChangeRecord(task_id=task_id, feedback=feedback, timestamp=utc_now(), success=succeeded),
            limit=self.history_limit,
        )

        path = self.bead_path(project_path, element)
        try:
            write_json(path, bead.to_dict())
        except StorageFault as e:
            log.warning("[BEAD] Failed to save %s: %s", path, e.reason)
            return None
        log.info("[BEAD] Saved %s (%d change(s))", bead.id, len(bead.changes))
        return bead

    def render_context(self, bead: Bead | None) -> str | None:
        """Summarize recent changes for the agent prompt, or None if there are none."""
        if bead is None or not bead.changes:
            return None

        lines = [
            "## Previous Changes to This Element",
            f"This element has been modified {len(bead.changes)} time(s) before. Recent history:",
        ]
        for change in bead.changes[-self.context_changes:]:
            mark = "✓" if change.success else "✗"
            lines.append(f'- [{_format_date(change.timestamp)}] {mark} "{change.feedback}"')
        lines += ["", "Consider this context when making your changes."]
        return "\n".join(lines)


def _format_date(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).date().isoformat()
    except ValueError:
        return timestamp
