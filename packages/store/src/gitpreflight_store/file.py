"""FileStateStore: JSON state files under the repository's git directory.

Layout (``<git-dir>/gitpreflight/``):
  pending.json          per-branch backlog (PendingState)
  skip-next             one-shot skip marker (SkipNextMarker)
  pending-next-commit   marker consumed by the post-commit hook

Living inside the git directory keeps the files out of the working tree, so
they are never committed and survive `git gc`.

Every write goes to a uniquely named temporary file in the same directory and
is renamed over the target, so readers observe either the old or the new
content, never a torn file. No locks are taken: concurrent writers resolve to
last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gitpreflight_store.base import BaseStateStore
from gitpreflight_store.models import PendingNextCommitMarker, PendingState, SkipNextMarker

if TYPE_CHECKING:
    from gitpreflight_core.git.plumbing import GitPlumbing

logger = logging.getLogger(__name__)

STATE_DIR_NAME = "gitpreflight"
_PENDING_FILE = "pending.json"
_SKIP_NEXT_FILE = "skip-next"
_PENDING_NEXT_COMMIT_FILE = "pending-next-commit"


def write_json_atomic(path: Path, data: Any) -> None:
    """Write data as pretty JSON to path via temp-file-then-rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f"{path.name}.tmp.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2) + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", path, e)
        return None


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class FileStateStore(BaseStateStore):
    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)

    @classmethod
    def for_repo(cls, git: GitPlumbing, repo_root: str) -> FileStateStore:
        """Store rooted at ``<git-dir>/gitpreflight`` of the given repository."""
        return cls(Path(git.git_dir(repo_root)) / STATE_DIR_NAME)

    def _path(self, name: str) -> Path:
        return self.state_dir / name

    def read_pending(self) -> PendingState:
        return PendingState.from_dict(_read_json(self._path(_PENDING_FILE)))

    def write_pending(self, state: PendingState) -> None:
        write_json_atomic(self._path(_PENDING_FILE), state.to_dict())

    def read_skip_next(self) -> SkipNextMarker | None:
        return SkipNextMarker.from_dict(_read_json(self._path(_SKIP_NEXT_FILE)))

    def write_skip_next(self, marker: SkipNextMarker) -> None:
        write_json_atomic(self._path(_SKIP_NEXT_FILE), marker.to_dict())

    def clear_skip_next(self) -> None:
        _unlink_quietly(self._path(_SKIP_NEXT_FILE))

    def read_pending_next_commit(self) -> PendingNextCommitMarker | None:
        return PendingNextCommitMarker.from_dict(_read_json(self._path(_PENDING_NEXT_COMMIT_FILE)))

    def write_pending_next_commit(self, marker: PendingNextCommitMarker) -> None:
        write_json_atomic(self._path(_PENDING_NEXT_COMMIT_FILE), marker.to_dict())

    def clear_pending_next_commit(self) -> None:
        _unlink_quietly(self._path(_PENDING_NEXT_COMMIT_FILE))
