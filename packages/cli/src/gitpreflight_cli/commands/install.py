"""install / uninstall commands: wire gitpreflight into git hooks."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from gitpreflight_cli.install import HOOK_MODES, PRE_COMMIT_CONFIG, SCOPES, ScopedInstaller, has_yaml_comments
from gitpreflight_core.config import LOCAL_AGENT_COMMANDS, save_local_agent_config

console = Console()

_SCOPE_HELP = {
    "global": "every repository on this machine (global core.hooksPath)",
    "local": "this repository only, not shared (local core.hooksPath)",
    "repo": "this repository, committed for the whole team (pre-commit framework)",
}


@click.command("install")
@click.option("--scope", type=click.Choice(SCOPES), default=None, help="Where to install the hooks.")
@click.option("--hook", "hook_mode", type=click.Choice(HOOK_MODES), default=None, help="Which hooks to install.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompts; --hook defaults to both.")
@click.option(
    "--local-agent",
    "local_agent",
    type=click.Choice(sorted(LOCAL_AGENT_COMMANDS)),
    default=None,
    help="Review with a local coding agent instead of the remote API.",
)
@click.option("--local-agent-command", default=None, help="Override the command used to run the local agent.")
@click.pass_context
def install_cmd(
    ctx,
    scope: str | None,
    hook_mode: str | None,
    yes: bool,
    local_agent: str | None,
    local_agent_command: str | None,
):
    """Install gitpreflight hooks.

    Without --scope/--hook you are asked interactively; without a terminal
    both must be given (or --yes to accept the default hooks).
    """
    run_ctx = ctx.obj["run"]
    git = ctx.obj["git"]

    if hook_mode is None and yes:
        hook_mode = "both"

    if scope is None or hook_mode is None:
        if not run_ctx.interactive:
            raise click.UsageError("No terminal to prompt on. Pass --scope and --hook (or --yes).")
        if scope is None:
            console.print("\nInstall scope:")
            for name in SCOPES:
                console.print(f"  [bold]{name:<7}[/bold]  {_SCOPE_HELP[name]}")
            scope = click.prompt("Scope", type=click.Choice(SCOPES), default="local")
        if hook_mode is None:
            hook_mode = click.prompt("Hooks", type=click.Choice(HOOK_MODES), default="both")

    if scope == "global" and not yes and run_ctx.interactive:
        click.confirm("This points your global core.hooksPath at gitpreflight. Continue?", abort=True)

    repo_root = None if scope == "global" else git.repo_root(run_ctx.cwd)
    installer = ScopedInstaller(git, run_ctx.env)
    had_comments = scope == "repo" and has_yaml_comments(Path(repo_root) / PRE_COMMIT_CONFIG)
    written = installer.install(scope, hook_mode, repo_root)

    for path in written:
        console.print(f"[dim]wrote {path}[/dim]")
    console.print(f"[green]Installed {hook_mode} hooks at {scope} scope.[/green]")
    if had_comments and any(p.name == PRE_COMMIT_CONFIG for p in written):
        console.print(f"[yellow]Comments in {PRE_COMMIT_CONFIG} were dropped.[/yellow]")
    if scope == "repo":
        console.print("Commit the changes, then run [bold]pre-commit install[/bold] to activate the hooks.")

    if local_agent:
        path = save_local_agent_config(local_agent, local_agent_command, run_ctx.env)
        console.print(f"[green]Reviews will use the local {local_agent} agent[/green] [dim]({path})[/dim]")


@click.command("uninstall")
@click.option("--scope", type=click.Choice(["global", "local"]), required=True, help="Which install to undo.")
@click.pass_context
def uninstall_cmd(ctx, scope: str):
    """Remove a global or local install. Repo installs are removed by editing the repo."""
    run_ctx = ctx.obj["run"]
    git = ctx.obj["git"]

    repo_root = git.repo_root(run_ctx.cwd) if scope == "local" else None
    if ScopedInstaller(git, run_ctx.env).uninstall(scope, repo_root):
        console.print(f"[green]Removed {scope} gitpreflight hooks.[/green]")
    else:
        console.print(f"[yellow]No {scope} gitpreflight install found; nothing changed.[/yellow]")
