"""Discovery and hashing of agent instruction files (AGENTS.md, CLAUDE.md, ...).

Only hashes are sent with a review request; content is uploaded separately,
and only for files the server has not seen before.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashedFile:
    path: str  # repo-relative, forward slashes
    sha256: str


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_files(repo_root: str, paths: list[str]) -> tuple[list[HashedFile], list[str]]:
    """Hash repo-relative paths. Returns (hashed, missing)."""
    hashed: list[HashedFile] = []
    missing: list[str] = []
    for rel in paths:
        try:
            data = (Path(repo_root) / rel).read_bytes()
        except OSError:
            missing.append(rel)
            continue
        hashed.append(HashedFile(path=rel, sha256=sha256_bytes(data)))
    return hashed, missing


def discover_instruction_files(repo_root: str, changed_paths: list[str], names: list[str]) -> list[str]:
    """Instruction files governing the changed paths.

    For each changed path, every directory from the file's own directory up to
    the repository root is checked for each configured name. Results are
    repo-relative and sorted.
    """
    root = Path(repo_root)
    found: set[str] = set()
    visited: set[PurePosixPath] = set()

    for changed in changed_paths:
        directory = PurePosixPath(changed).parent
        while True:
            if directory not in visited:
                visited.add(directory)
                for name in names:
                    candidate = directory / name
                    if (root / candidate).is_file():
                        found.add(str(candidate))
            if directory == PurePosixPath("."):
                break
            directory = directory.parent

    return sorted(found)
