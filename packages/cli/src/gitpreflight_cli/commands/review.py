"""review command: review staged changes or an outgoing push."""

from __future__ import annotations

import click

from gitpreflight_cli.auth import resolve_token
from gitpreflight_cli.ui import emit_markdown, resolve_ui
from gitpreflight_core.config import load_user_config
from gitpreflight_core.git.ranges import PushScope, StagedScope, parse_pre_push_stdin, updates_from_pre_commit_env
from gitpreflight_core.orchestrator import ReviewOrchestrator
from gitpreflight_store.file import FileStateStore


@click.command("review")
@click.option("--staged", "mode", flag_value="staged", help="Review the index against HEAD (pre-commit).")
@click.option("--push", "mode", flag_value="push", help="Review the commits being pushed (pre-push).")
@click.argument("remote", required=False)
@click.argument("url", required=False)
@click.option("--tui", is_flag=True, help="Render the report in the terminal UI.")
@click.option("--plain", is_flag=True, help="Print the raw Markdown report.")
@click.option("--local-agent", "local_agent", is_flag=True, help="Review with the configured local agent.")
@click.pass_context
def review_cmd(
    ctx,
    mode: str | None,
    remote: str | None,
    url: str | None,
    tui: bool,
    plain: bool,
    local_agent: bool,
):
    """Review changes before they are committed or pushed.

    In a pre-push hook git passes REMOTE and URL as arguments and the pushed
    refs on stdin; both are read automatically.

    \b
    Environment variables:
      GITPREFLIGHT_API_BASE_URL  Reviewer API base URL (required for remote reviews)
      GITPREFLIGHT_TOKEN         Token override (otherwise `gitpreflight auth login`)
      GITPREFLIGHT_UI            plain | tui | pager
    """
    if mode is None:
        raise click.UsageError("Pass --staged or --push.")
    if tui and plain:
        raise click.UsageError("--tui and --plain are mutually exclusive.")

    run_ctx = ctx.obj["run"]
    git = ctx.obj["git"]
    repo_root = git.repo_root(run_ctx.cwd)

    if mode == "push":
        if run_ctx.in_pre_commit_framework:
            updates = updates_from_pre_commit_env(run_ctx.env)
            remote = remote or run_ctx.env.get("PRE_COMMIT_REMOTE_NAME")
        else:
            updates = parse_pre_push_stdin(run_ctx.read_stdin())
        scope = PushScope(
            remote_name=remote or "origin",
            local_sha=git.head_sha(repo_root),
            remote_updates=tuple(updates),
        )
    else:
        scope = StagedScope()

    user_config = load_user_config(run_ctx.env)
    orchestrator = ReviewOrchestrator(
        ctx=run_ctx,
        git=git,
        store=FileStateStore.for_repo(git, repo_root),
        token=resolve_token(run_ctx.env),
        use_local_agent=local_agent or user_config.local_agent is not None,
        user_config=user_config,
    )
    outcome = orchestrator.run(scope)

    emit_markdown(outcome.markdown, resolve_ui(run_ctx, plain=plain, tui=tui))
    ctx.exit(outcome.exit_code)
