"""Resolve a review request into a concrete change set.

Two scopes exist:

  staged   the index against HEAD, exactly what `git commit` is about to record.
  push     the commits a `git push` transmits, reconstructed from the
           pre-push hook's stdin update lines (or, outside a hook, from the
           upstream tracking ref).

Binary classification comes from `git diff --numstat -z` ("-" insertions and
deletions) and is computed once per diffed range.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from gitpreflight_core.git.plumbing import GitPlumbing, is_zero_sha

logger = logging.getLogger(__name__)

_CHANGE_TYPES = {
    "A": "added",
    "M": "modified",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
}


@dataclass(frozen=True)
class ChangeEntry:
    change_type: str  # added | modified | deleted | renamed | copied | unknown
    path: str
    old_path: str | None = None
    is_binary: bool = False

    def to_request_dict(self) -> dict:
        return {"path": self.path, "changeType": self.change_type, "isBinary": self.is_binary}


@dataclass(frozen=True)
class PrePushUpdate:
    local_ref: str
    local_sha: str
    remote_ref: str
    remote_sha: str


@dataclass(frozen=True)
class StagedScope:
    pass


@dataclass(frozen=True)
class PushScope:
    remote_name: str = "origin"
    local_sha: str | None = None
    remote_updates: tuple[PrePushUpdate, ...] = ()


ReviewScope = StagedScope | PushScope


@dataclass
class ChangeSet:
    patch: str
    files: list[ChangeEntry] = field(default_factory=list)
    commit_shas: list[str] = field(default_factory=list)
    inferred_branch: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.patch.strip()


# ---------------------------------------------------------------------- #
# Parsers                                                                  #
# ---------------------------------------------------------------------- #


def parse_name_status_z(out: str) -> list[tuple[str, list[str]]]:
    """Parse `git diff --name-status -z` into (status, paths) pairs.

    Renames and copies carry two paths (old, new); everything else one.
    """
    parts = [p for p in out.split("\0") if p]
    entries: list[tuple[str, list[str]]] = []
    i = 0
    while i < len(parts):
        status = parts[i]
        i += 1
        if status[:1] in ("R", "C"):
            entries.append((status, parts[i : i + 2]))
            i += 2
        else:
            entries.append((status, parts[i : i + 1]))
            i += 1
    return entries


def parse_binary_paths(numstat: str) -> set[str]:
    """Collect binary paths from `git diff --numstat -z`.

    Records are `ins\\tdel\\tpath\\0`; renames and copies leave the path empty
    and follow with `old\\0new\\0`. Paths arrive unquoted.
    """
    binary: set[str] = set()
    parts = numstat.split("\0")
    i = 0
    while i < len(parts):
        record = parts[i]
        i += 1
        cols = record.split("\t", 2)
        if len(cols) < 3:
            continue
        insertions, deletions, path = cols
        if not path:
            # rename/copy: the new path is the second of the next two fields
            if i + 1 >= len(parts):
                break
            path = parts[i + 1]
            i += 2
        if insertions == "-" and deletions == "-":
            binary.add(path)
    return binary


def entries_from_name_status(out: str, binary_paths: set[str]) -> list[ChangeEntry]:
    entries = []
    for status, paths in parse_name_status_z(out):
        kind = _CHANGE_TYPES.get(status[:1], "unknown")
        if kind in ("renamed", "copied") and len(paths) == 2:
            old_path, path = paths
            entries.append(ChangeEntry(kind, path, old_path=old_path, is_binary=path in binary_paths))
            continue
        path = paths[0] if paths else ""
        entries.append(ChangeEntry(kind, path, is_binary=path in binary_paths))
    return entries


def parse_pre_push_stdin(text: str) -> list[PrePushUpdate]:
    """Parse `<local ref> <local sha> <remote ref> <remote sha>` lines."""
    updates = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 4:
            continue
        updates.append(PrePushUpdate(*parts[:4]))
    return updates


def updates_from_pre_commit_env(env: Mapping[str, str]) -> list[PrePushUpdate]:
    """Rebuild a pre-push update from the variables the pre-commit framework exports."""
    local_sha = env.get("PRE_COMMIT_TO_REF", "").strip()
    if not local_sha:
        return []
    remote_sha = env.get("PRE_COMMIT_FROM_REF", "").strip() or "0" * 40
    local_branch = env.get("PRE_COMMIT_LOCAL_BRANCH", "").strip()
    remote_branch = env.get("PRE_COMMIT_REMOTE_BRANCH", "").strip()
    local_ref = local_branch if local_branch.startswith("refs/") else f"refs/heads/{local_branch or 'HEAD'}"
    remote_ref = remote_branch if remote_branch.startswith("refs/") else f"refs/heads/{remote_branch or 'HEAD'}"
    return [PrePushUpdate(local_ref, local_sha, remote_ref, remote_sha)]


def _branch_from_ref(ref: str) -> str | None:
    prefix = "refs/heads/"
    return ref[len(prefix) :] if ref.startswith(prefix) else None


# ---------------------------------------------------------------------- #
# Resolver                                                                 #
# ---------------------------------------------------------------------- #


class GitRangeResolver:
    def __init__(self, git: GitPlumbing, repo_root: str, context_lines: int = 3):
        self.git = git
        self.repo_root = repo_root
        self.context_lines = context_lines

    def resolve(self, scope: ReviewScope) -> ChangeSet:
        if isinstance(scope, PushScope):
            return self.resolve_push(scope.remote_name, list(scope.remote_updates), scope.local_sha)
        return self.resolve_staged()

    # -- staged ----------------------------------------------------------

    def resolve_staged(self) -> ChangeSet:
        numstat = self.git.diff(self.repo_root, ["--cached", "--numstat", "-z", "--find-renames"])
        binary = parse_binary_paths(numstat)
        name_status = self.git.diff(self.repo_root, ["--cached", "--name-status", "-z", "--find-renames"])
        patch = self.git.diff(
            self.repo_root,
            [
                "--cached",
                "--patch",
                "--no-color",
                "--no-ext-diff",
                f"--unified={self.context_lines}",
                "--find-renames",
            ],
        )
        return ChangeSet(patch=patch, files=entries_from_name_status(name_status, binary))

    # -- push ------------------------------------------------------------

    def resolve_push(
        self,
        remote_name: str | None,
        updates: list[PrePushUpdate] | str,
        head_sha: str | None,
    ) -> ChangeSet:
        remote = remote_name or "origin"
        if isinstance(updates, str):
            updates = parse_pre_push_stdin(updates)

        supplied_any = bool(updates)
        # Deleted branches (zero local sha) and non-branch refs are not reviewable.
        branch_updates = [u for u in updates if not is_zero_sha(u.local_sha) and u.local_ref.startswith("refs/heads/")]

        heads = sorted({_branch_from_ref(u.local_ref) for u in branch_updates} - {None})
        inferred_branch = heads[0] if len(heads) == 1 else None

        patch_parts: list[str] = []
        files_by_path: dict[str, ChangeEntry] = {}
        commits: dict[str, None] = {}

        def collect(base: str, head: str) -> None:
            patch, files, shas = self._collect_range(base, head)
            if patch.strip():
                patch_parts.append(patch)
            for f in files:
                if f.path:
                    files_by_path[f.path] = f
            for sha in shas:
                commits.setdefault(sha, None)

        for update in branch_updates:
            base = self._resolve_base(update, remote)
            if base is None:
                logger.debug("No base for %s; skipping this update.", update.local_ref)
                continue
            collect(base, update.local_sha)

        if not supplied_any and head_sha:
            base = self.git.upstream_sha(self.repo_root)
            if base is None:
                remote_head = self.resolve_remote_head_ref(remote)
                if remote_head:
                    base = self.git.merge_base(self.repo_root, head_sha, remote_head)
            if base:
                collect(base, head_sha)

        return ChangeSet(
            patch="\n".join(patch_parts),
            files=list(files_by_path.values()),
            commit_shas=list(commits),
            inferred_branch=inferred_branch,
        )

    def resolve_remote_head_ref(self, remote: str) -> str | None:
        """The remote's default branch: symbolic HEAD, else <remote>/main, else <remote>/master."""
        ref = self.git.symbolic_ref(self.repo_root, f"refs/remotes/{remote}/HEAD")
        if ref:
            return ref
        for candidate in (f"{remote}/main", f"{remote}/master"):
            if self.git.rev_parse(self.repo_root, candidate):
                return candidate
        return None

    def _resolve_base(self, update: PrePushUpdate, remote: str) -> str | None:
        if not is_zero_sha(update.remote_sha):
            known = self.git.rev_parse(self.repo_root, update.remote_sha)
            if known:
                return known

        remote_branch = _branch_from_ref(update.remote_ref)
        if remote_branch:
            tracking = self.git.rev_parse(self.repo_root, f"{remote}/{remote_branch}")
            if tracking:
                return tracking

        remote_head = self.resolve_remote_head_ref(remote)
        if remote_head:
            return self.git.merge_base(self.repo_root, update.local_sha, remote_head)
        return None

    def _collect_range(self, base: str, head: str) -> tuple[str, list[ChangeEntry], list[str]]:
        numstat = self.git.diff(self.repo_root, ["--numstat", "-z", "--find-renames", base, head])
        binary = parse_binary_paths(numstat)
        name_status = self.git.diff(self.repo_root, ["--name-status", "-z", "--find-renames", base, head])
        patch = self.git.diff(
            self.repo_root,
            [
                "--patch",
                "--no-color",
                "--no-ext-diff",
                f"--unified={self.context_lines}",
                "--find-renames",
                base,
                head,
            ],
        )
        shas = self.git.rev_list(self.repo_root, base, head)
        return patch, entries_from_name_status(name_status, binary), shas
