"""Reviewer that shells out to a locally installed coding agent.

The agent command (e.g. `codex exec`, `claude -p`) receives the review prompt
on stdin and must print a JSON object `{"findings": [...]}` on stdout. The
response is wrapped as a single model's findings so it flows through the same
consensus merge as remote multi-model answers.
"""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

from gitpreflight_core.merge import ModelFindings
from gitpreflight_core.reviewers.base import (
    BaseReviewer,
    LocalAgentError,
    ReviewerUnavailableError,
    ReviewRequest,
    ReviewResponse,
)

if TYPE_CHECKING:
    from gitpreflight_core.config import LocalAgentConfig

logger = logging.getLogger(__name__)

_MAX_OUTPUT_CHARS = 10 * 1024 * 1024
# POSIX shells exit 127 when the command itself cannot be found.
_SHELL_COMMAND_NOT_FOUND = 127


class LocalAgentReviewer(BaseReviewer):
    def __init__(self, agent: LocalAgentConfig | None, cwd: str, timeout_s: float):
        self.agent = agent
        self.cwd = cwd
        self.timeout_s = timeout_s
        self.name = f"local/{agent.provider}" if agent else "local-agent"

    def build_prompt(self, request: ReviewRequest) -> str:
        files = "\n".join(
            f"- {f.path} ({f.change_type}{', binary' if f.is_binary else ''})" for f in request.staged_files
        )
        instructions = "\n".join(f"- {h.path}" for h in request.instruction_files) or "- (none)"
        return f"""You are a strict and precise senior code reviewer running as a git pre-commit gate.
Review the patch below for branch `{request.branch}`.

Project instruction files that apply to these changes (read them from disk):
{instructions}

Changed files:
{files or "- (none)"}

## Patch
{request.staged_patch}

### Output Format:
Respond with **only** a JSON object:

{{"findings": [{{"path": "<file>", "severity": "<note|minor|major>", "title": "<short title>",
  "message": "<actionable explanation>", "line": <new-file line, optional>, "suggestion": "<replacement code, optional>"}}]}}

Severity guide:
- major: bug, security issue, data loss, crash; blocks the commit
- minor: maintainability problem that should be fixed before committing
- note: informational only

If there are no issues, return: {{"findings": []}}
Do not return any text outside the JSON object."""

    def _call(self, request: ReviewRequest) -> str:
        if self.agent is None:
            raise LocalAgentError(
                "No local agent configured. Run `gitpreflight install --local-agent <codex|claude|opencode>`."
            )

        logger.debug("Running local agent: %s", self.agent.command)
        try:
            res = subprocess.run(
                self.agent.command,
                shell=True,
                cwd=self.cwd,
                input=self.build_prompt(request),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired:
            raise ReviewerUnavailableError(f"Local agent timed out after {self.timeout_s:g}s", "timeout")
        except OSError as e:
            raise LocalAgentError(f"Could not start local agent `{self.agent.command}`: {e}")

        stderr = (res.stderr or "").strip()
        if res.returncode == _SHELL_COMMAND_NOT_FOUND:
            raise LocalAgentError(f"Local agent command not found: `{self.agent.command}`")
        if res.returncode != 0:
            detail = f": {stderr}" if stderr else ""
            raise LocalAgentError(f"Local agent exited with code {res.returncode}{detail}")

        stdout = (res.stdout or "")[:_MAX_OUTPUT_CHARS]
        if not stdout.strip():
            raise LocalAgentError("Local agent produced no output.")
        return stdout

    def _parse(self, raw: str) -> ReviewResponse:
        response = super()._parse(raw)
        if not response.per_model:
            response.per_model = [ModelFindings(self.name, response.findings)]
        return response
