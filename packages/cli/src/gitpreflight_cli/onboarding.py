"""One-time hint for people who installed the package but never ran `install`."""

from __future__ import annotations

import time
from collections.abc import Mapping

from gitpreflight_core.config import config_dir

NOTICE_MARKER = "onboarding-notice-v1"
QUIET_COMMANDS = {None, "install", "status", "internal"}

NOTICE_TEXT = (
    "GitPreflight is installed but not configured yet.\n"
    "Run `gitpreflight install` to choose setup mode (global, local, or repo).\n"
    "Tip: `gitpreflight install --scope local --yes` for non-interactive setup."
)


def has_shown_notice(env: Mapping[str, str] | None = None) -> bool:
    return (config_dir(env) / NOTICE_MARKER).exists()


def mark_notice_shown(env: Mapping[str, str] | None = None) -> None:
    directory = config_dir(env)
    directory.mkdir(parents=True, exist_ok=True)
    (directory / NOTICE_MARKER).write_text(f"{int(time.time() * 1000)}\n", encoding="utf-8")


def should_show_notice(
    command: str | None,
    interactive: bool,
    effective_scope: str | None,
    env: Mapping[str, str] | None = None,
) -> bool:
    if not interactive or command in QUIET_COMMANDS:
        return False
    if effective_scope:
        return False
    return not has_shown_notice(env)
