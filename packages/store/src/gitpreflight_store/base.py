"""Abstract local state interface.

The orchestrator depends on BaseStateStore, not on a concrete backend, so
tests inject InMemoryStateStore while real runs use FileStateStore under the
repository's git directory.

State here is advisory: reads of missing or corrupt state return an empty
value instead of raising, so a damaged file never blocks an honest commit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from gitpreflight_store.models import PendingCommit, PendingState

if TYPE_CHECKING:
    from gitpreflight_store.models import PendingNextCommitMarker, SkipNextMarker


class BaseStateStore(ABC):
    @abstractmethod
    def read_pending(self) -> PendingState:
        """Return the backlog; an empty PendingState if none or unreadable."""

    @abstractmethod
    def write_pending(self, state: PendingState) -> None:
        """Replace the backlog atomically."""

    @abstractmethod
    def read_skip_next(self) -> SkipNextMarker | None:
        """Return the outstanding skip-next marker, if any."""

    @abstractmethod
    def write_skip_next(self, marker: SkipNextMarker) -> None:
        """Record a one-shot skip marker, replacing any previous one."""

    @abstractmethod
    def clear_skip_next(self) -> None:
        """Remove the skip-next marker. A no-op when absent."""

    @abstractmethod
    def read_pending_next_commit(self) -> PendingNextCommitMarker | None:
        """Return the marker left by an UNCHECKED staged review, if any."""

    @abstractmethod
    def write_pending_next_commit(self, marker: PendingNextCommitMarker) -> None:
        """Record the marker for the post-commit hook."""

    @abstractmethod
    def clear_pending_next_commit(self) -> None:
        """Remove the pending-next-commit marker. A no-op when absent."""

    # ------------------------------------------------------------------ #
    # Backlog helpers built on the primitives above                        #
    # ------------------------------------------------------------------ #

    def pending_for_branch(self, branch: str) -> list[PendingCommit]:
        return self.read_pending().for_branch(branch)

    def append_pending(self, branch: str, commits: list[PendingCommit]) -> PendingState:
        """Append commits to a branch's backlog, skipping shas already recorded."""
        state = self.read_pending()
        existing = state.branches.setdefault(branch, [])
        known = {c.sha for c in existing}
        for commit in commits:
            if commit.sha in known:
                continue
            existing.append(commit)
            known.add(commit.sha)
        self.write_pending(state)
        return state

    def clear_branch(self, branch: str) -> bool:
        """Drop a branch's backlog. Returns True if anything was removed."""
        state = self.read_pending()
        if branch not in state.branches:
            return False
        del state.branches[branch]
        self.write_pending(state)
        return True
