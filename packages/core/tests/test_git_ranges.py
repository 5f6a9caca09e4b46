"""Tests for git plumbing and change-set resolution."""

from __future__ import annotations

import pytest

from gitpreflight_core.errors import GitCommandError, NotAGitRepositoryError
from gitpreflight_core.git.plumbing import GitPlumbing, is_zero_sha
from gitpreflight_core.git.ranges import (
    ChangeEntry,
    GitRangeResolver,
    PrePushUpdate,
    PushScope,
    StagedScope,
    entries_from_name_status,
    parse_binary_paths,
    parse_name_status_z,
    parse_pre_push_stdin,
    updates_from_pre_commit_env,
)

ZERO = "0" * 40


def _with_remote(make_repo, repo):
    remote = make_repo("remote")
    remote.git("config", "receive.denyCurrentBranch", "ignore")
    repo.git("remote", "add", "origin", str(remote))
    repo.git("fetch", "-q", "origin")
    repo.git("reset", "-q", "--hard", "origin/main")
    return remote


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


class TestParsers:
    def test_zero_sha(self):
        assert is_zero_sha(ZERO)
        assert not is_zero_sha("a" * 40)
        assert not is_zero_sha("")

    def test_name_status_z_handles_renames(self):
        out = "M\0a.py\0R087\0old.py\0new.py\0D\0gone.py\0"
        assert parse_name_status_z(out) == [
            ("M", ["a.py"]),
            ("R087", ["old.py", "new.py"]),
            ("D", ["gone.py"]),
        ]

    def test_binary_paths_from_numstat(self):
        numstat = "3\t1\ta.py\0-\t-\timg.png\0-\t-\t\0assets/a.bin\0assets/b.bin\0-\t-\ttab\there.bin\0"
        assert parse_binary_paths(numstat) == {"img.png", "assets/b.bin", "tab\there.bin"}

    def test_entries_carry_binary_flag_and_old_path(self):
        out = "A\0img.png\0R100\0old.py\0new.py\0"
        entries = entries_from_name_status(out, {"img.png"})
        assert entries == [
            ChangeEntry("added", "img.png", is_binary=True),
            ChangeEntry("renamed", "new.py", old_path="old.py"),
        ]
        assert entries[0].to_request_dict() == {"path": "img.png", "changeType": "added", "isBinary": True}

    def test_pre_push_stdin(self):
        text = f"refs/heads/main {'a' * 40} refs/heads/main {'b' * 40}\n\ngarbage\n"
        assert parse_pre_push_stdin(text) == [PrePushUpdate("refs/heads/main", "a" * 40, "refs/heads/main", "b" * 40)]

    def test_pre_commit_env(self):
        env = {
            "PRE_COMMIT_TO_REF": "a" * 40,
            "PRE_COMMIT_FROM_REF": "b" * 40,
            "PRE_COMMIT_LOCAL_BRANCH": "refs/heads/feature",
            "PRE_COMMIT_REMOTE_BRANCH": "refs/heads/feature",
        }
        assert updates_from_pre_commit_env(env) == [
            PrePushUpdate("refs/heads/feature", "a" * 40, "refs/heads/feature", "b" * 40)
        ]
        assert updates_from_pre_commit_env({}) == []


# ---------------------------------------------------------------------------
# Plumbing
# ---------------------------------------------------------------------------


class TestGitPlumbing:
    def test_repo_root_outside_repo_raises(self, tmp_path, isolated_git):
        with pytest.raises(NotAGitRepositoryError):
            GitPlumbing().repo_root(str(tmp_path))

    def test_run_raises_git_command_error(self, repo):
        with pytest.raises(GitCommandError) as exc:
            GitPlumbing().run(["rev-parse", "--verify", "no-such-ref"], cwd=str(repo))
        assert exc.value.returncode != 0

    def test_lookups(self, repo):
        git = GitPlumbing()
        root = git.repo_root(str(repo))
        assert git.current_branch(root) == "main"
        assert git.head_sha(root) == repo.git("rev-parse", "HEAD")
        assert git.rev_parse(root, "f" * 40) is None
        assert git.git_dir(root).endswith(".git")

    def test_config_roundtrip(self, repo):
        git = GitPlumbing()
        git.config_set("local", "gitpreflight.policy", "required", str(repo))
        assert git.config_get("local", "gitpreflight.policy", str(repo)) == "required"
        git.config_unset("local", "gitpreflight.policy", str(repo))
        assert git.config_get("local", "gitpreflight.policy", str(repo)) is None


# ---------------------------------------------------------------------------
# Staged
# ---------------------------------------------------------------------------


class TestResolveStaged:
    def test_staged_changes(self, repo):
        repo.stage("README.md", "hello\nworld\n")
        repo.stage("new.py", "print('x')\n")
        (repo / "blob.bin").write_bytes(b"\x00\x01\x02binary")
        repo.git("add", "blob.bin")

        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve(StagedScope())

        by_path = {f.path: f for f in changes.files}
        assert by_path["README.md"].change_type == "modified"
        assert by_path["new.py"].change_type == "added"
        assert by_path["blob.bin"].is_binary
        assert not by_path["new.py"].is_binary
        assert "+world" in changes.patch

    def test_rename_detected(self, repo):
        repo.commit("old_name.py", "a = 1\nb = 2\nc = 3\n")
        repo.git("mv", "old_name.py", "new_name.py")

        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_staged()

        assert changes.files == [ChangeEntry("renamed", "new_name.py", old_path="old_name.py")]

    def test_binary_paths_needing_quotes(self, repo):
        for name in ("café.bin", "tab\there.bin"):
            (repo / name).write_bytes(b"\x00\x01\x02binary")
            repo.git("add", name)

        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_staged()

        assert {f.path: f.is_binary for f in changes.files} == {"café.bin": True, "tab\there.bin": True}

    def test_renamed_binary_keeps_flag(self, repo):
        (repo / "old.bin").write_bytes(b"\x00\x01\x02binary")
        repo.git("add", "old.bin")
        repo.git("commit", "-q", "-m", "add binary")
        repo.git("mv", "old.bin", "new.bin")

        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_staged()

        assert changes.files == [ChangeEntry("renamed", "new.bin", old_path="old.bin", is_binary=True)]

    def test_nothing_staged_is_empty(self, repo):
        assert GitRangeResolver(GitPlumbing(), str(repo)).resolve_staged().is_empty


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


class TestResolvePush:
    def test_resolvable_remote_sha_is_the_base(self, make_repo):
        repo = make_repo()
        base = repo.git("rev-parse", "HEAD")
        repo.commit("a.py", "a = 1\n")
        local = repo.commit("b.py", "b = 1\n")

        line = f"refs/heads/main {local} refs/heads/main {base}\n"
        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_push("origin", line, local)

        assert changes.commit_shas == repo.git("rev-list", f"{base}..{local}").splitlines()
        assert sorted(f.path for f in changes.files) == ["a.py", "b.py"]
        assert changes.inferred_branch == "main"

    def test_new_branch_uses_merge_base_with_remote_head(self, make_repo):
        repo = make_repo()
        _with_remote(make_repo, repo)
        repo.git("checkout", "-q", "-b", "feature")
        local = repo.commit("feature.py", "x = 1\n")

        line = f"refs/heads/feature {local} refs/heads/feature {ZERO}\n"
        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_push("origin", line, local)

        assert changes.commit_shas == [local]
        assert [f.path for f in changes.files] == ["feature.py"]
        assert changes.inferred_branch == "feature"

    def test_unknown_remote_sha_falls_back_to_tracking_ref(self, make_repo):
        repo = make_repo()
        _with_remote(make_repo, repo)
        local = repo.commit("c.py", "c = 1\n")

        line = f"refs/heads/main {local} refs/heads/main {'f' * 40}\n"
        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_push("origin", line, local)

        assert changes.commit_shas == [local]

    def test_branch_deletion_is_excluded(self, repo):
        line = f"(delete) {ZERO} refs/heads/old {'a' * 40}\n"
        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_push("origin", line, None)
        assert changes.is_empty
        assert changes.commit_shas == []

    def test_unresolvable_update_is_skipped(self, repo):
        local = repo.commit("d.py", "d = 1\n")
        line = f"refs/heads/main {local} refs/heads/main {ZERO}\n"
        # No remote at all: no tracking ref, no remote HEAD.
        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_push("origin", line, local)
        assert changes.is_empty

    def test_no_updates_falls_back_to_upstream(self, make_repo):
        repo = make_repo()
        _with_remote(make_repo, repo)
        repo.git("branch", "-q", "--set-upstream-to=origin/main")
        local = repo.commit("e.py", "e = 1\n")

        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve(PushScope("origin", local, ()))

        assert changes.commit_shas == [local]
        assert changes.inferred_branch is None

    def test_multiple_branches_aggregate(self, make_repo):
        repo = make_repo()
        base = repo.git("rev-parse", "HEAD")
        repo.git("checkout", "-q", "-b", "one")
        one = repo.commit("shared.py", "one\n")
        repo.git("checkout", "-q", "main")
        repo.git("checkout", "-q", "-b", "two")
        two = repo.commit("shared.py", "two\n")

        lines = f"refs/heads/one {one} refs/heads/one {base}\nrefs/heads/two {two} refs/heads/two {base}\n"
        changes = GitRangeResolver(GitPlumbing(), str(repo)).resolve_push("origin", lines, two)

        assert changes.commit_shas == [one, two]
        assert [f.path for f in changes.files] == ["shared.py"]
        assert changes.inferred_branch is None
        assert "+one" in changes.patch and "+two" in changes.patch
