"""Exception hierarchy shared by every gitpreflight package.

The CLI maps anything derived from GitPreflightError to a one-line message
and exit code 2. Reviewer failures live in gitpreflight_core.reviewers.base
because the orchestrator turns them into findings instead of exit codes.
"""

from __future__ import annotations


class GitPreflightError(Exception):
    """Base class for local, synchronous failures that abort an invocation."""


class ConfigurationError(GitPreflightError):
    """Missing environment, invalid manifest field, or conflicting git setup."""


class NotAGitRepositoryError(ConfigurationError):
    def __init__(self, cwd: str | None = None):
        where = f" ({cwd})" if cwd else ""
        super().__init__(
            f"Not in a git repository{where}. Run gitpreflight from inside a git repo (or `cd` into one) and try again."
        )


class HooksPathConflictError(ConfigurationError):
    """core.hooksPath already points at a directory gitpreflight does not manage."""

    def __init__(self, scope: str, current: str, hint: str):
        self.scope = scope
        self.current = current
        super().__init__(
            f"{scope.capitalize()} core.hooksPath is already set to '{current}'. Refusing to overwrite. {hint}"
        )


class GitCommandError(GitPreflightError):
    def __init__(self, args: list[str], returncode: int, stderr: str):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        cmd = " ".join(["git", *args])
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"`{cmd}` failed with exit code {returncode}{detail}")
