"""Local review state models.

Decoupled from gitpreflight_core so the state layer can be used and tested on
its own. The on-disk JSON keeps camelCase field names (``createdAtMs``) so
state files stay readable by other gitpreflight clients.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any


def _timestamp_ms(value: Any) -> int | None:
    """Millisecond timestamp from a JSON number; None for anything else, inf and NaN included."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


@dataclass
class PendingCommit:
    """A commit or push range that was let through without a completed review."""

    sha: str
    created_at_ms: int
    reason: str = ""

    def to_dict(self) -> dict:
        return {"sha": self.sha, "createdAtMs": self.created_at_ms, "reason": self.reason}

    @classmethod
    def from_dict(cls, d: Any) -> PendingCommit | None:
        if not isinstance(d, dict):
            return None
        sha = d.get("sha")
        created = _timestamp_ms(d.get("createdAtMs"))
        if not isinstance(sha, str) or not sha or created is None:
            return None
        reason = d.get("reason")
        return cls(sha=sha, created_at_ms=created, reason=reason if isinstance(reason, str) else "")


@dataclass
class PendingState:
    """Per-branch backlog, entries kept in insertion order."""

    branches: dict[str, list[PendingCommit]] = field(default_factory=dict)

    def for_branch(self, branch: str) -> list[PendingCommit]:
        return list(self.branches.get(branch, []))

    def to_dict(self) -> dict:
        return {"branches": {name: [c.to_dict() for c in commits] for name, commits in self.branches.items()}}

    @classmethod
    def from_dict(cls, d: Any) -> PendingState:
        if not isinstance(d, dict) or not isinstance(d.get("branches"), dict):
            return cls()
        branches: dict[str, list[PendingCommit]] = {}
        for name, raw_commits in d["branches"].items():
            if not isinstance(name, str) or not isinstance(raw_commits, list):
                continue
            commits = [c for c in (PendingCommit.from_dict(r) for r in raw_commits) if c is not None]
            if commits:
                branches[name] = commits
        return cls(branches=branches)


@dataclass
class SkipNextMarker:
    created_at_ms: int
    reason: str

    def to_dict(self) -> dict:
        return {"createdAtMs": self.created_at_ms, "reason": self.reason}

    @classmethod
    def from_dict(cls, d: Any) -> SkipNextMarker | None:
        if not isinstance(d, dict):
            return None
        reason = d.get("reason")
        created = _timestamp_ms(d.get("createdAtMs"))
        if not isinstance(reason, str) or created is None:
            return None
        return cls(created_at_ms=created, reason=reason)


@dataclass
class PendingNextCommitMarker:
    """Left by an UNCHECKED staged review; the post-commit hook swaps in the real sha."""

    created_at_ms: int
    branch: str
    reason: str

    def to_dict(self) -> dict:
        return {"createdAtMs": self.created_at_ms, "branch": self.branch, "reason": self.reason}

    @classmethod
    def from_dict(cls, d: Any) -> PendingNextCommitMarker | None:
        if not isinstance(d, dict):
            return None
        branch = d.get("branch")
        created = _timestamp_ms(d.get("createdAtMs"))
        reason = d.get("reason")
        if not isinstance(branch, str) or created is None or not isinstance(reason, str):
            return None
        return cls(created_at_ms=created, branch=branch, reason=reason)
