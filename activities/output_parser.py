"""
Activity: Output parsing — recovers the commit the agent made from its output.

Matchers are tried in priority order and the first one that matches wins;
later matchers are never consulted. The short-hash matchers are heuristics:
a bracketed run of hex digits in unrelated output will also match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class CommitInfo:
    commit_hash: str | None = None
    commit_url: str | None = None


@dataclass(frozen=True)
class Matcher:
    name: str
    pattern: re.Pattern

    def search(self, text: str) -> str | None:
        m = self.pattern.search(text)
        return m.group(1) if m else None


COMMIT_MATCHERS: tuple[Matcher, ...] = (
    # COMMIT_HASH: <40 hex>, as the prompt asks for
    Matcher("labeled", re.compile(r"COMMIT_HASH:\s*([a-f0-9]{40})", re.IGNORECASE)),
    # a short hash alone in brackets: [abc1234]
    Matcher("bracketed", re.compile(r"\[([a-f0-9]{7,40})\]", re.IGNORECASE)),
    # "commit abc1234"
    Matcher("phrase", re.compile(r"commit\s+([a-f0-9]{7,40})", re.IGNORECASE)),
)

# host pattern -> commit URL template
REMOTE_HOSTS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"github\.com[:/]([^/\s:]+/[^/\s.]+)", re.IGNORECASE),
     "https://github.com/{slug}/commit/{sha}"),
    (re.compile(r"gitlab\.com[:/]([^/\s:]+/[^/\s.]+)", re.IGNORECASE),
     "https://gitlab.com/{slug}/-/commit/{sha}"),
)


def find_commit_hash(output: str) -> str | None:
    for matcher in COMMIT_MATCHERS:
        found = matcher.search(output)
        if found:
            return found
    return None


def find_commit_url(output: str, commit_hash: str) -> str | None:
    for pattern, template in REMOTE_HOSTS:
        m = pattern.search(output)
        if m:
            slug = m.group(1).removesuffix(".git")
            return template.format(slug=slug, sha=commit_hash)
    return None


def extract(output: str | None) -> CommitInfo:
    """Pull a commit hash (and a browsable URL, when a remote is visible) from agent output.

    No match is a normal result; this never raises.
    """
    if not output:
        return CommitInfo()
    commit_hash = find_commit_hash(output)
    if not commit_hash:
        return CommitInfo()
    return CommitInfo(commit_hash=commit_hash, commit_url=find_commit_url(output, commit_hash))
