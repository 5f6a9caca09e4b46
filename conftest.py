"""Shared fixtures: throwaway git repositories with isolated configuration."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest


class GitRepo:
    """A scratch repository plus the few git operations tests need."""

    def __init__(self, path: Path):
        self.path = path

    def __truediv__(self, other: str) -> Path:
        return self.path / other

    def __str__(self) -> str:
        return str(self.path)

    def git(self, *args: str) -> str:
        return subprocess.run(
            ["git", *args], cwd=self.path, check=True, capture_output=True, text=True
        ).stdout.strip()

    def write(self, path: str, content: str) -> Path:
        target = self.path / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target

    def stage(self, path: str, content: str) -> None:
        self.write(path, content)
        self.git("add", path)

    def commit(self, path: str, content: str, message: str | None = None) -> str:
        self.stage(path, content)
        self.git("commit", "-q", "-m", message or f"update {path}")
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def isolated_git(tmp_path, monkeypatch):
    """Keep git and gitpreflight away from the developer's real configuration."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    for var in (
        "GITPREFLIGHT_TOKEN",
        "GITPREFLIGHT_API_BASE_URL",
        "GITPREFLIGHT_HOOK",
        "GITPREFLIGHT_UI",
        "GITPREFLIGHT_PLAN_TIER",
        "PRE_COMMIT",
        "CI",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def make_repo(tmp_path, isolated_git):
    """Factory for repositories on branch main with one commit."""

    def _make(name: str = "repo") -> GitRepo:
        path = tmp_path / name
        path.mkdir()
        repo = GitRepo(path)
        repo.git("init", "-q", "-b", "main")
        repo.commit("README.md", "hello\n", "initial")
        return repo

    return _make


@pytest.fixture
def repo(make_repo) -> GitRepo:
    return make_repo()
