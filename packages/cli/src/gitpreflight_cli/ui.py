"""How a review report reaches the terminal.

plain  the Markdown report as-is on stdout (the contract hooks and agents parse)
tui    rich-rendered Markdown in a panel coloured by the result
pager  plain Markdown through rich's pager
"""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from gitpreflight_core.markdown import parse_summary
from gitpreflight_core.runtime import RunContext

UI_MODES = ("plain", "tui", "pager")

_STATUS_STYLE = {
    "PASS": "green",
    "FAIL": "red",
    "UNCHECKED": "yellow",
}


def resolve_ui(ctx: RunContext, plain: bool = False, tui: bool = False) -> str:
    # Hooks, CI and redirected output always get the stable plain report.
    if ctx.in_hook or ctx.in_ci or not ctx.stdout_is_tty:
        return "plain"
    if plain:
        return "plain"
    if tui:
        return "tui"
    env_ui = (ctx.env.get("GITPREFLIGHT_UI") or "").strip().lower()
    if env_ui in UI_MODES:
        return env_ui
    return "pager"


def emit_markdown(markdown: str, ui: str, console: Console | None = None) -> None:
    if ui == "plain":
        click.echo(markdown)
        return

    console = console or Console()
    if ui == "tui":
        summary = parse_summary(markdown)
        style = _STATUS_STYLE.get(summary.status or "", "blue")
        counts = summary.counts or {}
        subtitle = " ".join(f"{k}={v}" for k, v in counts.items())
        console.print(
            Panel(
                Markdown(markdown),
                title=f"[bold {style}]{summary.status or 'REVIEW'}[/bold {style}]",
                subtitle=subtitle or None,
                border_style=style,
            )
        )
        return

    with console.pager(styles=False):
        console.print(markdown, markup=False, highlight=False)
