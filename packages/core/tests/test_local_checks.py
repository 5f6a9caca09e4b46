"""Tests for linter detection and the local check stage."""

from __future__ import annotations

import subprocess

import pytest

from gitpreflight_core.checks import (
    LinterTool,
    detect_linters,
    repo_has_precommit_linting,
    run_linter,
    run_local_checks,
    select_python_files,
)
from gitpreflight_core.config import RepoConfig
from gitpreflight_core.git.ranges import ChangeEntry

RUN = "gitpreflight_core.checks.subprocess.run"


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(["ruff"], returncode, stdout=stdout, stderr=stderr)


def _files(*paths):
    return [ChangeEntry("modified", p) for p in paths]


class TestDetectLinters:
    def test_nothing_configured(self, tmp_path):
        assert detect_linters(str(tmp_path)) == []

    def test_pyproject_sections(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[tool.ruff]\nline-length = 100\n\n[tool.black]\n")
        (tmp_path / ".flake8").write_text("[flake8]\n")
        assert [t.name for t in detect_linters(str(tmp_path))] == ["Ruff", "Black", "Flake8"]

    def test_standalone_ruff_toml(self, tmp_path):
        (tmp_path / ".ruff.toml").write_text("line-length = 100\n")
        [tool] = detect_linters(str(tmp_path))
        assert tool.config_path == ".ruff.toml"

    def test_broken_pyproject_is_ignored(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[tool.ruff\n")
        assert detect_linters(str(tmp_path)) == []


class TestPrecommitDetection:
    def test_strong_marker(self, tmp_path):
        (tmp_path / ".pre-commit-config.yaml").write_text("repos:\n  - repo: https://github.com/astral-sh/ruff-pre-commit\n")
        assert repo_has_precommit_linting(str(tmp_path))

    def test_weak_config(self, tmp_path):
        (tmp_path / ".pre-commit-config.yaml").write_text("repos:\n  - repo: local\n    hooks: [{id: end-of-file-fixer}]\n")
        assert not repo_has_precommit_linting(str(tmp_path))


def test_select_python_files():
    files = [
        ChangeEntry("modified", "a.py"),
        ChangeEntry("added", "stubs/b.pyi"),
        ChangeEntry("deleted", "gone.py"),
        ChangeEntry("added", "weird.py", is_binary=True),
        ChangeEntry("modified", "README.md"),
    ]
    assert select_python_files(files) == ["a.py", "stubs/b.pyi"]


class TestRunLinter:
    TOOL = LinterTool("Ruff", ("ruff", "check"), "pyproject.toml")

    def test_clean_run(self, tmp_path, mocker):
        run = mocker.patch(RUN, return_value=_completed())
        assert run_linter(self.TOOL, str(tmp_path), ["a.py"], 5) is None
        assert run.call_args.args[0] == ["ruff", "check", "a.py"]
        assert run.call_args.kwargs["timeout"] == 5

    def test_failure_includes_command_and_output(self, tmp_path, mocker):
        mocker.patch(RUN, return_value=_completed(1, stdout="a.py:1:1: F401 unused import\n"))
        finding = run_linter(self.TOOL, str(tmp_path), ["a.py"], 5)
        assert finding.title == "Ruff check failed"
        assert finding.severity == "minor"
        assert finding.path == "pyproject.toml"
        assert "`ruff check a.py`" in finding.message
        assert "F401" in finding.message

    def test_missing_binary(self, tmp_path, mocker):
        mocker.patch(RUN, side_effect=FileNotFoundError("ruff"))
        finding = run_linter(self.TOOL, str(tmp_path), ["a.py"], 5)
        assert "not installed" in finding.message

    def test_timeout(self, tmp_path, mocker):
        mocker.patch(RUN, side_effect=subprocess.TimeoutExpired(["ruff"], 5))
        finding = run_linter(self.TOOL, str(tmp_path), ["a.py"], 5)
        assert "Timed out after 5s" in finding.message


class TestRunLocalChecks:
    @pytest.fixture
    def ruff_repo(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[tool.ruff]\n")
        return tmp_path

    def test_disabled(self, ruff_repo, mocker):
        run = mocker.patch(RUN)
        outcome = run_local_checks(str(ruff_repo), _files("a.py"), RepoConfig(linters_enabled=False))
        assert outcome.findings == []
        run.assert_not_called()

    def test_no_python_files(self, ruff_repo, mocker):
        run = mocker.patch(RUN)
        assert run_local_checks(str(ruff_repo), _files("index.ts"), RepoConfig()).findings == []
        run.assert_not_called()

    def test_skipped_for_existing_precommit_linting(self, ruff_repo, mocker):
        (ruff_repo / ".pre-commit-config.yaml").write_text("repos:\n  - repo: https://github.com/psf/black\n")
        run = mocker.patch(RUN)

        outcome = run_local_checks(str(ruff_repo), _files("a.py"), RepoConfig())

        [note] = outcome.findings
        assert note.title == "Linters skipped"
        assert not outcome.blocking
        run.assert_not_called()

    def test_precommit_skip_can_be_turned_off(self, ruff_repo, mocker):
        (ruff_repo / ".pre-commit-config.yaml").write_text("repos:\n  - repo: https://github.com/psf/black\n")
        mocker.patch(RUN, return_value=_completed())
        outcome = run_local_checks(str(ruff_repo), _files("a.py"), RepoConfig(skip_linters_if_precommit=False))
        assert outcome.tools_run == ["Ruff"]

    def test_failure_blocks(self, ruff_repo, mocker):
        mocker.patch(RUN, return_value=_completed(1, stdout="E501"))
        outcome = run_local_checks(str(ruff_repo), _files("a.py"), RepoConfig())
        assert outcome.tools_run == ["Ruff"]
        assert len(outcome.blocking) == 1

    def test_timeout_is_capped(self, ruff_repo, mocker):
        run = mocker.patch(RUN, return_value=_completed())
        run_local_checks(str(ruff_repo), _files("a.py"), RepoConfig(timeout_ms=600_000))
        assert run.call_args.kwargs["timeout"] == 120.0
