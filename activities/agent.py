"""
Activity: Agent invocation — command line and environment for the coding agent.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Sequence


def build_agent_args(model: str, prompt: str, flags: Sequence[str] = ()) -> list[str]:
    """Arguments appended to the agent command for one task."""
    return ["--model", model, "-p", prompt, *flags]


def build_agent_env(
    allowlist: Sequence[str],
    search_path: Sequence[str],
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the child environment from a fixed allow-list.

    Only HOME, PATH, TERM and the allow-listed host variables are set;
    nothing else from the server's environment reaches the agent.
    """
    environ = os.environ if environ is None else environ
    env = {
        "HOME": environ.get("HOME") or str(Path.home()),
        "PATH": os.pathsep.join(search_path),
        "TERM": "xterm-256color",
    }
    for name in allowlist:
        value = environ.get(name)
        if value:
            env[name] = value
    return env
