"""Process-level state captured once at the CLI boundary.

Components receive a RunContext instead of reading os.environ, sys.stdin or
the clock themselves, so they can be driven from tests without a terminal.
"""

from __future__ import annotations

import os
import sys
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field


def _now_ms() -> int:
    return int(time.time() * 1000)


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() not in ("", "0", "false", "no")


@dataclass
class RunContext:
    cwd: str
    env: Mapping[str, str] = field(default_factory=dict)
    stdin_text: str | None = None
    stdout_is_tty: bool = False
    stdin_is_tty: bool = False
    clock: Callable[[], int] = _now_ms

    @classmethod
    def capture(cls) -> RunContext:
        """Snapshot the current process. stdin is left unread until read_stdin()."""
        return cls(
            cwd=os.getcwd(),
            env=dict(os.environ),
            stdout_is_tty=sys.stdout is not None and sys.stdout.isatty(),
            stdin_is_tty=sys.stdin is not None and sys.stdin.isatty(),
        )

    def read_stdin(self) -> str:
        """Piped stdin, read at most once. A terminal or closed stdin reads as ""."""
        if self.stdin_text is None:
            if self.stdin_is_tty or sys.stdin is None:
                self.stdin_text = ""
            else:
                self.stdin_text = sys.stdin.read()
        return self.stdin_text

    @property
    def in_hook(self) -> bool:
        """Running from a managed git hook (directly or via the pre-commit framework)."""
        return _truthy(self.env.get("GITPREFLIGHT_HOOK")) or _truthy(self.env.get("PRE_COMMIT"))

    @property
    def in_pre_commit_framework(self) -> bool:
        return _truthy(self.env.get("PRE_COMMIT"))

    @property
    def in_ci(self) -> bool:
        return _truthy(self.env.get("CI"))

    @property
    def interactive(self) -> bool:
        return self.stdout_is_tty and self.stdin_is_tty and not self.in_hook and not self.in_ci

    def now_ms(self) -> int:
        return self.clock()
