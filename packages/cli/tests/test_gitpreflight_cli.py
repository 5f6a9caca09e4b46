"""Tests for the CLI entry point."""

from __future__ import annotations

import json
import os
import stat
from unittest.mock import MagicMock

import pytest
import requests
from click.testing import CliRunner

from gitpreflight_cli.auth import resolve_token, token_path
from gitpreflight_cli.cli import main
from gitpreflight_cli.onboarding import mark_notice_shown, should_show_notice
from gitpreflight_cli.ui import resolve_ui
from gitpreflight_core.git.plumbing import GitPlumbing
from gitpreflight_core.runtime import RunContext
from gitpreflight_store.file import FileStateStore
from gitpreflight_store.models import PendingCommit, PendingNextCommitMarker, PendingState


def _response(status_code: int, payload=None, text=None):
    res = MagicMock()
    res.status_code = status_code
    res.text = text if text is not None else json.dumps(payload)
    return res


def _finding(path, severity, title):
    return {"path": path, "severity": severity, "title": title, "message": f"{title}."}


@pytest.fixture
def in_repo(repo, monkeypatch):
    monkeypatch.chdir(repo.path)
    monkeypatch.setenv("GITPREFLIGHT_API_BASE_URL", "https://api.example.com")
    monkeypatch.setenv("GITPREFLIGHT_TOKEN", "tok")
    return repo


def _store(repo):
    return FileStateStore.for_repo(GitPlumbing(), str(repo))


# ---------------------------------------------------------------------------
# review
# ---------------------------------------------------------------------------


class TestReviewCommand:
    def test_fail_exits_1_with_plain_report(self, in_repo, mocker):
        in_repo.stage("a.py", "x = 1\n")
        post = mocker.patch(
            "requests.Session.post",
            return_value=_response(200, {"status": "FAIL", "findings": [_finding("a.py", "major", "Bug")]}),
        )

        result = CliRunner().invoke(main, ["review", "--staged"])

        assert result.exit_code == 1
        assert "Result: FAIL" in result.output
        assert "Counts: note=0 minor=0 major=1" in result.output
        assert post.call_args.args[0] == "https://api.example.com/api/v1/review"
        assert post.call_args.kwargs["json"]["stagedFiles"] == [
            {"path": "a.py", "changeType": "added", "isBinary": False}
        ]

    def test_pass_exits_0(self, in_repo, mocker):
        in_repo.stage("a.py", "x = 1\n")
        mocker.patch("requests.Session.post", return_value=_response(200, {"status": "PASS", "findings": []}))

        result = CliRunner().invoke(main, ["review", "--staged"])

        assert result.exit_code == 0
        assert "Result: PASS" in result.output

    def test_timeout_is_unchecked_and_recorded(self, in_repo, mocker):
        in_repo.stage("a.py", "x = 1\n")
        mocker.patch("requests.Session.post", side_effect=requests.Timeout("read timed out"))

        result = CliRunner().invoke(main, ["review", "--staged"])

        assert result.exit_code == 0
        assert "Result: UNCHECKED" in result.output
        [pending] = _store(in_repo).pending_for_branch("main")
        assert "timeout" in pending.reason
        assert _store(in_repo).read_pending_next_commit() is not None

    def test_push_reads_updates_from_stdin(self, in_repo, mocker):
        base = in_repo.git("rev-parse", "HEAD")
        local = in_repo.commit("b.py", "y = 2\n")
        post = mocker.patch("requests.Session.post", return_value=_response(200, {"findings": []}))

        result = CliRunner().invoke(
            main,
            ["review", "--push", "origin", "git@example.com:o/r.git"],
            input=f"refs/heads/main {local} refs/heads/main {base}\n",
        )

        assert result.exit_code == 0, result.output
        payload = post.call_args.kwargs["json"]
        assert payload["branch"] == "main"
        assert [f["path"] for f in payload["stagedFiles"]] == ["b.py"]

    def test_push_under_pre_commit_reads_env(self, in_repo, mocker, monkeypatch):
        base = in_repo.git("rev-parse", "HEAD")
        local = in_repo.commit("c.py", "z = 3\n")
        monkeypatch.setenv("PRE_COMMIT", "1")
        monkeypatch.setenv("PRE_COMMIT_FROM_REF", base)
        monkeypatch.setenv("PRE_COMMIT_TO_REF", local)
        monkeypatch.setenv("PRE_COMMIT_LOCAL_BRANCH", "refs/heads/main")
        monkeypatch.setenv("PRE_COMMIT_REMOTE_BRANCH", "refs/heads/main")
        post = mocker.patch("requests.Session.post", return_value=_response(200, {"findings": []}))

        result = CliRunner().invoke(main, ["review", "--push"])

        assert result.exit_code == 0, result.output
        assert [f["path"] for f in post.call_args.kwargs["json"]["stagedFiles"]] == ["c.py"]

    def test_no_token_optional_passes(self, in_repo, monkeypatch, mocker):
        monkeypatch.delenv("GITPREFLIGHT_TOKEN")
        in_repo.stage("a.py", "x = 1\n")
        post = mocker.patch("requests.Session.post")

        result = CliRunner().invoke(main, ["review", "--staged"])

        assert result.exit_code == 0
        assert "not signed in" in result.output
        post.assert_not_called()

    def test_missing_api_url_exits_2(self, in_repo, monkeypatch):
        monkeypatch.delenv("GITPREFLIGHT_API_BASE_URL")
        in_repo.stage("a.py", "x = 1\n")

        result = CliRunner().invoke(main, ["review", "--staged"])

        assert result.exit_code == 2
        assert "GITPREFLIGHT_API_BASE_URL" in result.output

    def test_invalid_manifest_exits_2(self, in_repo):
        (in_repo / ".gitpreflight.yml").write_text("policy: sometimes\n")
        in_repo.stage("a.py", "x = 1\n")
        result = CliRunner().invoke(main, ["review", "--staged"])
        assert result.exit_code == 2

    def test_outside_repo_exits_2(self, tmp_path, isolated_git, monkeypatch):
        outside = tmp_path / "plain"
        outside.mkdir()
        monkeypatch.chdir(outside)
        result = CliRunner().invoke(main, ["review", "--staged"])
        assert result.exit_code == 2
        assert "Error" in result.output

    def test_store_failure_exits_2_not_1(self, in_repo, mocker):
        in_repo.stage("a.py", "x = 1\n")
        mocker.patch("requests.Session.post", side_effect=requests.Timeout("read timed out"))
        mocker.patch("gitpreflight_store.file.write_json_atomic", side_effect=PermissionError("read-only state dir"))

        result = CliRunner().invoke(main, ["review", "--staged", "--plain"])

        assert result.exit_code == 2
        assert "Internal error" in result.output
        assert "read-only state dir" in result.output

    def test_corrupt_skip_marker_does_not_block(self, in_repo, mocker):
        in_repo.stage("a.py", "x = 1\n")
        state_dir = _store(in_repo).state_dir
        state_dir.mkdir(parents=True)
        (state_dir / "skip-next").write_text('{"createdAtMs": 1e400, "reason": "x"}')
        mocker.patch("requests.Session.post", return_value=_response(200, {"status": "PASS", "findings": []}))

        result = CliRunner().invoke(main, ["review", "--staged", "--plain"])

        assert result.exit_code == 0, result.output
        assert "Result: PASS" in result.output

    @pytest.mark.parametrize("args", [["review"], ["review", "--staged", "--tui", "--plain"]])
    def test_usage_errors_exit_2(self, in_repo, args):
        assert CliRunner().invoke(main, args).exit_code == 2


# ---------------------------------------------------------------------------
# skip-next / internal
# ---------------------------------------------------------------------------


class TestSkipNext:
    def test_writes_marker_and_next_review_passes(self, in_repo, mocker):
        in_repo.stage("a.py", "x = 1\n")
        post = mocker.patch("requests.Session.post")

        result = CliRunner().invoke(main, ["skip-next", "--reason", "hotfix"])
        assert result.exit_code == 0
        assert "hotfix" in result.output
        assert _store(in_repo).read_skip_next().reason == "hotfix"

        review = CliRunner().invoke(main, ["review", "--staged"])
        assert review.exit_code == 0
        assert "hotfix" in review.output
        assert _store(in_repo).read_skip_next() is None
        post.assert_not_called()

    @pytest.mark.parametrize("args", [["skip-next"], ["skip-next", "--reason", "  "]])
    def test_reason_required(self, in_repo, args):
        assert CliRunner().invoke(main, args).exit_code == 2


class TestInternalPostCommit:
    def test_replaces_placeholder_with_new_commit(self, in_repo):
        store = _store(in_repo)
        store.write_pending(PendingState({"main": [PendingCommit("staged", 1, "UNCHECKED: timeout")]}))
        store.write_pending_next_commit(PendingNextCommitMarker(1, "main", "UNCHECKED: timeout"))
        head = in_repo.commit("a.py", "x = 1\n")

        result = CliRunner().invoke(main, ["internal", "post-commit"])

        assert result.exit_code == 0
        assert [c.sha for c in store.pending_for_branch("main")] == [head]
        assert store.read_pending_next_commit() is None

    def test_without_marker_is_a_no_op(self, in_repo):
        assert CliRunner().invoke(main, ["internal", "post-commit"]).exit_code == 0
        assert _store(in_repo).read_pending().branches == {}

    def test_outside_repo_exits_0(self, tmp_path, isolated_git, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert CliRunner().invoke(main, ["internal", "post-commit"]).exit_code == 0

    def test_hidden_from_help(self):
        assert "internal" not in CliRunner().invoke(main, ["--help"]).output


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------


class TestAuth:
    def test_login_stores_private_token(self, isolated_git):
        result = CliRunner().invoke(main, ["auth", "login", "--token", "secret"])

        assert result.exit_code == 0
        path = token_path()
        assert json.loads(path.read_text())["token"] == "secret"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert resolve_token() == "secret"

    def test_login_prompts_when_no_token_given(self, isolated_git):
        result = CliRunner().invoke(main, ["auth", "login"], input="prompted\n")
        assert result.exit_code == 0
        assert resolve_token() == "prompted"

    def test_env_token_wins(self, isolated_git, monkeypatch):
        CliRunner().invoke(main, ["auth", "login", "--token", "stored"])
        monkeypatch.setenv("GITPREFLIGHT_TOKEN", "from-env")
        assert resolve_token() == "from-env"

    def test_logout(self, isolated_git):
        CliRunner().invoke(main, ["auth", "login", "--token", "secret"])

        first = CliRunner().invoke(main, ["auth", "logout"])
        second = CliRunner().invoke(main, ["auth", "logout"])

        assert "Signed out." in first.output
        assert "No stored token." in second.output
        assert resolve_token() is None


# ---------------------------------------------------------------------------
# UI and onboarding
# ---------------------------------------------------------------------------


class TestResolveUi:
    def test_hooks_always_plain(self, tmp_path):
        ctx = RunContext(cwd=str(tmp_path), env={"GITPREFLIGHT_HOOK": "1"}, stdout_is_tty=True)
        assert resolve_ui(ctx, tui=True) == "plain"

    def test_redirected_output_is_plain(self, tmp_path):
        assert resolve_ui(RunContext(cwd=str(tmp_path)), tui=True) == "plain"

    def test_terminal_defaults(self, tmp_path):
        ctx = RunContext(cwd=str(tmp_path), env={}, stdout_is_tty=True)
        assert resolve_ui(ctx) == "pager"
        assert resolve_ui(ctx, tui=True) == "tui"
        ctx.env = {"GITPREFLIGHT_UI": "tui"}
        assert resolve_ui(ctx) == "tui"


class TestOnboardingNotice:
    def test_shown_once_for_unconfigured_interactive_use(self, isolated_git):
        assert should_show_notice("review", True, None)
        mark_notice_shown()
        assert not should_show_notice("review", True, None)

    def test_quiet_cases(self, isolated_git):
        assert not should_show_notice("review", False, None)
        assert not should_show_notice("install", True, None)
        assert not should_show_notice("review", True, "local")
