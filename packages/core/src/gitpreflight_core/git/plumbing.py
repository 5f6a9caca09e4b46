"""Thin synchronous wrapper over the git command line.

Every query is a local subprocess call without a timeout. Methods prefixed
with ``try_`` and the lookup helpers return None when git reports failure;
``run`` raises GitCommandError so callers that need an answer fail loudly.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping

from gitpreflight_core.errors import ConfigurationError, GitCommandError, NotAGitRepositoryError

logger = logging.getLogger(__name__)

ZERO_SHA_CHARS = frozenset("0")


def is_zero_sha(sha: str) -> bool:
    """True for the all-zero object name git uses for "no commit" (e.g. branch deletion)."""
    s = sha.strip()
    return bool(s) and set(s) <= ZERO_SHA_CHARS


class GitPlumbing:
    def __init__(self, cwd: str | None = None, env: Mapping[str, str] | None = None):
        self.cwd = cwd
        self.env = dict(env) if env is not None else None

    # ------------------------------------------------------------------ #
    # Process layer                                                        #
    # ------------------------------------------------------------------ #

    def run(self, args: list[str], cwd: str | None = None, strip: bool = True) -> str:
        logger.debug("git %s", " ".join(args))
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd or self.cwd,
                env=self.env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            raise ConfigurationError("git executable not found on PATH.")
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout.strip() if strip else result.stdout

    def try_run(self, args: list[str], cwd: str | None = None) -> str | None:
        try:
            out = self.run(args, cwd=cwd)
        except GitCommandError:
            return None
        return out or None

    # ------------------------------------------------------------------ #
    # Repository discovery                                                 #
    # ------------------------------------------------------------------ #

    def try_repo_root(self, cwd: str | None = None) -> str | None:
        return self.try_run(["rev-parse", "--show-toplevel"], cwd=cwd)

    def repo_root(self, cwd: str | None = None) -> str:
        root = self.try_repo_root(cwd)
        if not root:
            raise NotAGitRepositoryError(cwd or self.cwd)
        return root

    def git_dir(self, repo_root: str) -> str:
        """Absolute path of the repository's private metadata directory."""
        out = self.try_run(["rev-parse", "--git-dir"], cwd=repo_root) or ".git"
        return os.path.abspath(os.path.join(repo_root, out))

    def current_branch(self, repo_root: str) -> str | None:
        """Short branch name, or None on a detached HEAD."""
        return self.try_run(["symbolic-ref", "--quiet", "--short", "HEAD"], cwd=repo_root)

    def head_sha(self, repo_root: str) -> str | None:
        """HEAD commit, or None in a repository without commits."""
        return self.rev_parse(repo_root, "HEAD")

    def remote_url(self, repo_root: str, remote: str = "origin") -> str | None:
        return self.try_run(["remote", "get-url", remote], cwd=repo_root)

    # ------------------------------------------------------------------ #
    # Refs and history                                                     #
    # ------------------------------------------------------------------ #

    def rev_parse(self, repo_root: str, ref: str) -> str | None:
        """Resolve ref to a commit that exists locally, or None."""
        return self.try_run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], cwd=repo_root)

    def symbolic_ref(self, repo_root: str, ref: str) -> str | None:
        return self.try_run(["symbolic-ref", "--quiet", "--short", ref], cwd=repo_root)

    def merge_base(self, repo_root: str, a: str, b: str) -> str | None:
        return self.try_run(["merge-base", a, b], cwd=repo_root)

    def rev_list(self, repo_root: str, base: str, head: str) -> list[str]:
        out = self.try_run(["rev-list", f"{base}..{head}"], cwd=repo_root)
        if not out:
            return []
        return [line.strip() for line in out.splitlines() if line.strip()]

    def upstream_sha(self, repo_root: str) -> str | None:
        return self.rev_parse(repo_root, "@{u}")

    def diff(self, repo_root: str, args: list[str]) -> str:
        """Raw `git diff` output, trailing whitespace preserved."""
        return self.run(["diff", *args], cwd=repo_root, strip=False)

    # ------------------------------------------------------------------ #
    # Configuration                                                        #
    # ------------------------------------------------------------------ #

    def config_get(self, scope: str, key: str, repo_root: str | None = None) -> str | None:
        return self.try_run(["config", f"--{scope}", "--get", key], cwd=repo_root)

    def config_set(self, scope: str, key: str, value: str, repo_root: str | None = None) -> None:
        self.run(["config", f"--{scope}", key, value], cwd=repo_root)

    def config_unset(self, scope: str, key: str, repo_root: str | None = None) -> None:
        self.run(["config", f"--{scope}", "--unset", key], cwd=repo_root)
