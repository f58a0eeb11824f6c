"""
Configuration — loads settings from environment / .env file.
"""

from __future__ import annotations

import os
import secrets
import shlex
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def resolve_access_token(configured: str | None) -> str:
    """Unset: a fresh random token for this run. Set to empty: accept every connection."""
    if configured is None:
        return secrets.token_urlsafe(24)
    return configured


# Paths
STATE_DIR = Path(os.getenv("VF_STATE_DIR", str(Path.home() / ".visual-feedback-server")))
TASKS_FILE = Path(os.getenv("TASKS_FILE", str(STATE_DIR / "tasks.json")))

# Server
HOST = os.getenv("VF_HOST", "127.0.0.1")
PORT = int(os.getenv("VF_PORT", "3847"))
ACCESS_TOKEN = resolve_access_token(os.getenv("VF_TOKEN"))
ACCESS_TOKEN_GENERATED = os.getenv("VF_TOKEN") is None
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Task registry
MAX_TASKS = int(os.getenv("MAX_TASKS", "50"))

# Element memory (beads)
BEADS_SUBDIR = Path(".beads") / "elements"
BEAD_HISTORY_LIMIT = int(os.getenv("BEAD_HISTORY_LIMIT", "10"))
BEAD_CONTEXT_CHANGES = int(os.getenv("BEAD_CONTEXT_CHANGES", "3"))

# Agent
AGENT_COMMAND = shlex.split(os.getenv("AGENT_COMMAND", str(Path.home() / ".local" / "bin" / "claude")))
AGENT_FLAGS = shlex.split(os.getenv("AGENT_FLAGS", "--dangerously-skip-permissions"))
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "claude-opus-4-5-20251101")
AGENT_TIMEOUT_SEC = float(os.getenv("AGENT_TIMEOUT_SEC", "0"))  # 0 = no timeout
AGENT_SEARCH_PATH = [
    "/usr/local/bin",
    "/usr/bin",
    "/bin",
    "/opt/homebrew/bin",
    str(Path.home() / ".local" / "bin"),
]

# Host variables forwarded to the agent process; nothing else leaks through
AGENT_ENV_ALLOWLIST = ("USER", "ANTHROPIC_API_KEY")

# Streaming
OUTPUT_QUEUE_SIZE = int(os.getenv("OUTPUT_QUEUE_SIZE", "256"))
BROADCAST_OUTPUT_CHUNKS = os.getenv("BROADCAST_OUTPUT_CHUNKS", "false").lower() in ("1", "true", "yes")
