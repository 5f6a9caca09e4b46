"""In-memory state store: used by tests and anywhere state must not touch disk.

Values are copied on the way in and out so callers cannot mutate stored
state behind the store's back, matching the file store's semantics.
"""

from __future__ import annotations

import copy

from gitpreflight_store.base import BaseStateStore
from gitpreflight_store.models import PendingNextCommitMarker, PendingState, SkipNextMarker


class InMemoryStateStore(BaseStateStore):
    def __init__(self, pending: PendingState | None = None, skip_next: SkipNextMarker | None = None):
        self._pending = copy.deepcopy(pending) if pending else PendingState()
        self._skip_next = copy.deepcopy(skip_next)
        self._pending_next_commit: PendingNextCommitMarker | None = None

    def read_pending(self) -> PendingState:
        return copy.deepcopy(self._pending)

    def write_pending(self, state: PendingState) -> None:
        self._pending = copy.deepcopy(state)

    def read_skip_next(self) -> SkipNextMarker | None:
        return copy.deepcopy(self._skip_next)

    def write_skip_next(self, marker: SkipNextMarker) -> None:
        self._skip_next = copy.deepcopy(marker)

    def clear_skip_next(self) -> None:
        self._skip_next = None

    def read_pending_next_commit(self) -> PendingNextCommitMarker | None:
        return copy.deepcopy(self._pending_next_commit)

    def write_pending_next_commit(self, marker: PendingNextCommitMarker) -> None:
        self._pending_next_commit = copy.deepcopy(marker)

    def clear_pending_next_commit(self) -> None:
        self._pending_next_commit = None
