"""CLI entry point for gitpreflight.

Commands:
  review       review staged changes (--staged) or an outgoing push (--push)
  install      wire the hooks up at global, local or repo scope
  uninstall    undo a global or local install
  status       show installed scopes and the effective policy
  skip-next    let the next review pass once, with a recorded reason
  auth         store or remove the gitpreflight token
  internal     hook plumbing (post-commit backlog capture)

Exit codes: 0 PASS/UNCHECKED, 1 FAIL, 2 configuration, usage or internal error.
"""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from gitpreflight_cli.commands.auth import auth_group
from gitpreflight_cli.commands.install import install_cmd, uninstall_cmd
from gitpreflight_cli.commands.internal import internal_group
from gitpreflight_cli.commands.review import review_cmd
from gitpreflight_cli.commands.skip_next import skip_next_cmd
from gitpreflight_cli.commands.status import status_cmd
from gitpreflight_core.errors import GitPreflightError
from gitpreflight_core.git.plumbing import GitPlumbing
from gitpreflight_core.runtime import RunContext
from gitpreflight_core.version import get_version

logger = logging.getLogger(__name__)
err_console = Console(stderr=True)


class GitPreflightCommandError(click.ClickException):
    """A failure surfaced to the user as `Error: ...` with exit code 2."""

    exit_code = 2


class GitPreflightGroup(click.Group):
    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except GitPreflightError as e:
            raise GitPreflightCommandError(str(e)) from e
        except (click.ClickException, click.exceptions.Exit, click.Abort):
            raise
        except Exception as e:
            # Exit 1 is reserved for a FAIL verdict.
            logger.debug("Unexpected error in %s", ctx.invoked_subcommand, exc_info=True)
            raise GitPreflightCommandError(f"Internal error: {e!r} (rerun with --debug for details)") from e


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _maybe_show_onboarding(ctx: click.Context, run_ctx: RunContext, git: GitPlumbing) -> None:
    from gitpreflight_cli.install import ScopedInstaller
    from gitpreflight_cli.onboarding import NOTICE_TEXT, QUIET_COMMANDS, mark_notice_shown, should_show_notice

    command = ctx.invoked_subcommand
    # Cheap checks first; install status needs several git calls.
    if not run_ctx.interactive or command in QUIET_COMMANDS:
        return
    status = ScopedInstaller(git, run_ctx.env).status(git.try_repo_root(run_ctx.cwd))
    if should_show_notice(command, run_ctx.interactive, status.effective_scope, run_ctx.env):
        err_console.print(f"[cyan]{NOTICE_TEXT}[/cyan]\n")
        mark_notice_shown(run_ctx.env)


@click.group(cls=GitPreflightGroup)
@click.version_option(version=get_version(), prog_name="gitpreflight")
@click.option("--debug", is_flag=True, envvar="GITPREFLIGHT_DEBUG", help="Log git and reviewer activity to stderr.")
@click.pass_context
def main(ctx: click.Context, debug: bool):
    """Review staged changes and pushes before they leave your machine."""
    _configure_logging(debug)

    ctx.ensure_object(dict)
    run_ctx = RunContext.capture()
    git = GitPlumbing(cwd=run_ctx.cwd)
    ctx.obj["run"] = run_ctx
    ctx.obj["git"] = git

    _maybe_show_onboarding(ctx, run_ctx, git)


main.add_command(review_cmd)
main.add_command(install_cmd)
main.add_command(uninstall_cmd)
main.add_command(status_cmd)
main.add_command(skip_next_cmd)
main.add_command(auth_group)
main.add_command(internal_group)
