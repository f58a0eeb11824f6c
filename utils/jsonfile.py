"""
JSON file helpers shared by the task registry and the bead store.

Both raise StorageFault; callers decide whether to log and degrade.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from models.errors import StorageFault


def read_json(path: Path) -> Any:
    """Load a JSON document. Returns None if the file does not exist."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise StorageFault(path, str(e)) from e


def write_json(path: Path, data: Any) -> None:
    """Write a JSON document atomically (temp file in the same dir + rename)."""
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StorageFault(path, str(e)) from e
