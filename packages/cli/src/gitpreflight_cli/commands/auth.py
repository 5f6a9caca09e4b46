"""auth commands: store or remove the gitpreflight token."""

from __future__ import annotations

import click
from rich.console import Console

from gitpreflight_cli.auth import clear_token, save_token

console = Console()


@click.group("auth")
def auth_group():
    """Manage gitpreflight credentials."""


@auth_group.command("login")
@click.option("--token", default=None, help="Token to store. Prompted for when omitted.")
@click.pass_context
def login_cmd(ctx, token: str | None):
    """Store a gitpreflight token for this machine."""
    run_ctx = ctx.obj["run"]
    if token is None:
        token = click.prompt("gitpreflight token", hide_input=True)
    token = token.strip()
    if not token:
        raise click.UsageError("Token must not be empty.")
    path = save_token(token, run_ctx.env)
    console.print(f"[green]Signed in.[/green] [dim]Token stored in {path}[/dim]")


@auth_group.command("logout")
@click.pass_context
def logout_cmd(ctx):
    """Remove the stored token."""
    if clear_token(ctx.obj["run"].env):
        console.print("[green]Signed out.[/green]")
    else:
        console.print("[yellow]No stored token.[/yellow]")
