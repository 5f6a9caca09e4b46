"""internal commands: called from managed hooks, not by people."""

from __future__ import annotations

import logging

import click

from gitpreflight_core.orchestrator import capture_post_commit
from gitpreflight_store.file import FileStateStore

logger = logging.getLogger(__name__)


@click.group("internal", hidden=True)
def internal_group():
    """Hook plumbing."""


@internal_group.command("post-commit")
@click.pass_context
def post_commit_cmd(ctx):
    """Record the commit an UNCHECKED staged review let through. Always exits 0."""
    run_ctx = ctx.obj["run"]
    git = ctx.obj["git"]
    repo_root = git.try_repo_root(run_ctx.cwd)
    if repo_root is None:
        return
    sha = capture_post_commit(git, FileStateStore.for_repo(git, repo_root), repo_root)
    if sha:
        logger.debug("Recorded unreviewed commit %s", sha)
