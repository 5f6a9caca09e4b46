"""skip-next command: let the next review pass once."""

from __future__ import annotations

import click
from rich.console import Console

from gitpreflight_store.file import FileStateStore
from gitpreflight_store.models import SkipNextMarker

console = Console()


@click.command("skip-next")
@click.option("--reason", required=True, help="Why the next review is being skipped.")
@click.pass_context
def skip_next_cmd(ctx, reason: str):
    """Skip the next review in this repository, once."""
    reason = reason.strip()
    if not reason:
        raise click.UsageError("--reason must not be empty.")

    run_ctx = ctx.obj["run"]
    git = ctx.obj["git"]
    store = FileStateStore.for_repo(git, git.repo_root(run_ctx.cwd))
    store.write_skip_next(SkipNextMarker(created_at_ms=run_ctx.now_ms(), reason=reason))
    console.print(f"[yellow]The next gitpreflight review will be skipped:[/yellow] {reason}")
