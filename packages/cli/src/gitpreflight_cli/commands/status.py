"""status command: installed scopes, effective policy, backlog."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from gitpreflight_cli.install import ScopedInstaller
from gitpreflight_core.policy import PolicyResolver
from gitpreflight_store.file import FileStateStore

console = Console()


@click.command("status")
@click.option("--verbose", "-v", is_flag=True, help="Also show the branch backlog and skip-next marker.")
@click.pass_context
def status_cmd(ctx, verbose: bool):
    """Show where gitpreflight is installed and which policy applies."""
    run_ctx = ctx.obj["run"]
    git = ctx.obj["git"]

    repo_root = git.try_repo_root(run_ctx.cwd)
    status = ScopedInstaller(git, run_ctx.env).status(repo_root)

    table = Table(title="gitpreflight install", show_header=True, header_style="bold cyan")
    table.add_column("Scope", style="bold", width=8)
    table.add_column("Installed", width=10)
    table.add_column("core.hooksPath")
    table.add_column("Managed path")

    for name, scope in (
        ("repo", status.repo_scope),
        ("local", status.local_scope),
        ("global", status.global_scope),
    ):
        installed = "[green]yes[/green]" if scope.installed else "[dim]no[/dim]"
        table.add_row(name, installed, scope.hooks_path or "", scope.managed_hooks_path or "")
    console.print(table)

    effective = status.effective_scope
    console.print(f"Effective scope: [bold]{effective or 'none'}[/bold]")
    if repo_root is None:
        console.print("[dim]Not inside a git repository; repo and local scopes not checked.[/dim]")

    resolution = PolicyResolver(git).resolve(repo_root)
    console.print(f"Policy: [bold]{resolution.effective.policy}[/bold] (from {resolution.effective.source})")
    for source in resolution.ignored:
        console.print(
            f"[yellow]Ignored {source} policy '{resolution.configured[source]}' "
            f"(overridden by {resolution.effective.source}).[/yellow]"
        )

    if not verbose or repo_root is None:
        return

    store = FileStateStore.for_repo(git, repo_root)
    branch = git.current_branch(repo_root) or "HEAD"
    pending = store.pending_for_branch(branch)
    if pending:
        console.print(f"\nUnreviewed commits on [bold]{branch}[/bold]:")
        for commit in pending:
            console.print(f"  {commit.sha}  [dim]{commit.reason}[/dim]")
    else:
        console.print(f"\nNo unreviewed commits on [bold]{branch}[/bold].")

    marker = store.read_skip_next()
    if marker:
        console.print(f"Skip-next is set: {marker.reason}")
