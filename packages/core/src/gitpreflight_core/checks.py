"""Local checks that run before any network call.

Python linters configured by the target repository are run in check mode on
the changed Python files. A failing tool produces a blocking finding, which
short-circuits the review before the reviewer is contacted.

Detection:
  pyproject.toml [tool.ruff]   → ruff check
  ruff.toml / .ruff.toml       → ruff check
  pyproject.toml [tool.black]  → black --check
  .flake8                      → flake8
"""

from __future__ import annotations

import logging
import subprocess
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from gitpreflight_core.config import RepoConfig
from gitpreflight_core.findings import Finding
from gitpreflight_core.git.ranges import ChangeEntry
from gitpreflight_core.markdown import fence_for

logger = logging.getLogger(__name__)

PYTHON_SUFFIXES = (".py", ".pyi")
MAX_TOOL_TIMEOUT_S = 120.0

PRECOMMIT_FILES = (".pre-commit-config.yaml", "lefthook.yml", "lefthook.yaml")
STRONG_PRECOMMIT_MARKERS = ("ruff", "black", "flake8", "pylint", "isort", "lint-staged")


@dataclass(frozen=True)
class LinterTool:
    name: str  # display name, e.g. "Ruff"
    command: tuple[str, ...]
    config_path: str  # repo-relative file that enabled the tool


@dataclass
class LocalCheckOutcome:
    findings: list[Finding] = field(default_factory=list)
    tools_run: list[str] = field(default_factory=list)

    @property
    def blocking(self) -> list[Finding]:
        return [f for f in self.findings if f.is_blocking]


def _read_pyproject_tools(repo_root: Path) -> dict:
    path = repo_root / "pyproject.toml"
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return {}
    tool = data.get("tool")
    return tool if isinstance(tool, dict) else {}


def detect_linters(repo_root: str) -> list[LinterTool]:
    """Return the linters the repository configures, in a fixed order."""
    root = Path(repo_root)
    tools = _read_pyproject_tools(root)
    detected: list[LinterTool] = []

    if "ruff" in tools:
        detected.append(LinterTool("Ruff", ("ruff", "check"), "pyproject.toml"))
    else:
        for name in ("ruff.toml", ".ruff.toml"):
            if (root / name).is_file():
                detected.append(LinterTool("Ruff", ("ruff", "check"), name))
                break

    if "black" in tools:
        detected.append(LinterTool("Black", ("black", "--check"), "pyproject.toml"))

    if (root / ".flake8").is_file():
        detected.append(LinterTool("Flake8", ("flake8",), ".flake8"))

    return detected


def repo_has_precommit_linting(repo_root: str) -> bool:
    """True only on a strong signal that commits are already linted by another hook manager."""
    root = Path(repo_root)
    for name in PRECOMMIT_FILES:
        try:
            text = (root / name).read_text(encoding="utf-8")
        except OSError:
            continue
        if any(marker in text for marker in STRONG_PRECOMMIT_MARKERS):
            return True
    return False


def select_python_files(files: list[ChangeEntry]) -> list[str]:
    return [
        f.path
        for f in files
        if f.change_type != "deleted" and not f.is_binary and f.path.endswith(PYTHON_SUFFIXES)
    ]


def _failure_finding(tool: LinterTool, argv: list[str], output: str, error: str | None = None) -> Finding:
    command_line = " ".join(argv)
    parts = [f"Command:\n`{command_line}`"]
    if output.strip():
        body = output.rstrip()
        fence = fence_for(body)
        parts.append(f"Output:\n\n{fence}\n{body}\n{fence}")
    else:
        parts.append("No output.")
    if error:
        parts.append(f"Error: {error}")
    return Finding(
        path=tool.config_path,
        severity="minor",
        title=f"{tool.name} check failed",
        message="\n\n".join(parts),
    )


def run_linter(tool: LinterTool, repo_root: str, paths: list[str], timeout_s: float) -> Finding | None:
    """Run one tool on paths. Returns a finding on failure, None when clean."""
    argv = [*tool.command, *paths]
    logger.debug("Running %s", " ".join(argv))
    try:
        proc = subprocess.run(
            argv,
            cwd=repo_root,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            stdin=subprocess.DEVNULL,
            timeout=timeout_s,
        )
    except FileNotFoundError:
        return _failure_finding(tool, argv, "", error=f"{tool.command[0]} is not installed or not on PATH.")
    except subprocess.TimeoutExpired as e:
        output = e.stdout if isinstance(e.stdout, str) else ""
        return _failure_finding(tool, argv, output, error=f"Timed out after {timeout_s:g}s.")

    if proc.returncode == 0:
        return None
    output = "\n".join(s for s in (proc.stdout, proc.stderr) if s and s.strip())
    return _failure_finding(tool, argv, output)


def run_local_checks(repo_root: str, files: list[ChangeEntry], config: RepoConfig) -> LocalCheckOutcome:
    outcome = LocalCheckOutcome()

    if not config.linters_enabled:
        return outcome

    paths = select_python_files(files)
    if not paths:
        return outcome

    tools = detect_linters(repo_root)
    if not tools:
        return outcome

    if config.skip_linters_if_precommit and repo_has_precommit_linting(repo_root):
        outcome.findings.append(
            Finding(
                path=".pre-commit-config.yaml",
                severity="note",
                title="Linters skipped",
                message="This repository already runs linters from its own pre-commit setup.",
            )
        )
        return outcome

    timeout_s = min(config.timeout_ms / 1000, MAX_TOOL_TIMEOUT_S)
    for tool in tools:
        outcome.tools_run.append(tool.name)
        finding = run_linter(tool, repo_root, paths, timeout_s)
        if finding is not None:
            outcome.findings.append(finding)
    return outcome
