"""Hook installation at global, local or repo scope.

global  core.hooksPath (--global) → <config dir>/hooks
local   core.hooksPath (--local)  → <git dir>/gitpreflight/hooks
repo    a `repo: local` block in the committed .pre-commit-config.yaml,
        plus policy defaults in .gitpreflight.yml

global and local refuse to touch a core.hooksPath that points somewhere
else. Every install is idempotent: hook lines are appended only when not
already present verbatim, and pre-commit hook ids only when missing.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

from gitpreflight_core.config import MANIFEST_FILENAME, config_dir, read_manifest
from gitpreflight_core.errors import ConfigurationError, HooksPathConflictError
from gitpreflight_core.git.plumbing import GitPlumbing

logger = logging.getLogger(__name__)

SCOPES = ("global", "local", "repo")
HOOK_MODES = ("pre-commit", "pre-push", "both")

HOOK_MARKER = "# gitpreflight"
HOOKS_PATH_KEY = "core.hooksPath"

PRE_COMMIT_CONFIG = ".pre-commit-config.yaml"
REVIEW_HOOK_ID = "gitpreflight-review"
POST_COMMIT_HOOK_ID = "gitpreflight-post-commit"
PUSH_REVIEW_HOOK_ID = "gitpreflight-push-review"

_HOOK_ENV = "GITPREFLIGHT_HOOK=1 GITPREFLIGHT_UI=plain"
PRE_COMMIT_LINE = f"{_HOOK_ENV} gitpreflight review --staged"
PRE_PUSH_LINE = f'{_HOOK_ENV} gitpreflight review --push "$@"'
POST_COMMIT_LINE = f"{_HOOK_ENV} gitpreflight internal post-commit"


@dataclass
class ScopeStatus:
    installed: bool = False
    hooks_path: str | None = None
    managed_hooks_path: str | None = None


@dataclass
class InstallStatus:
    global_scope: ScopeStatus
    local_scope: ScopeStatus
    repo_scope: ScopeStatus

    @property
    def effective_scope(self) -> str | None:
        """repo > local > global."""
        if self.repo_scope.installed:
            return "repo"
        if self.local_scope.installed:
            return "local"
        if self.global_scope.installed:
            return "global"
        return None


def hook_lines(hook_mode: str) -> dict[str, str]:
    """Hook file name → invocation line for a hook mode."""
    if hook_mode not in HOOK_MODES:
        raise ConfigurationError(f"Unknown hook mode {hook_mode!r}; expected one of {', '.join(HOOK_MODES)}.")
    lines: dict[str, str] = {}
    if hook_mode in ("pre-commit", "both"):
        lines["pre-commit"] = PRE_COMMIT_LINE
        lines["post-commit"] = POST_COMMIT_LINE
    if hook_mode in ("pre-push", "both"):
        lines["pre-push"] = PRE_PUSH_LINE
    return lines


def ensure_hook_contains(hooks_dir: Path, hook_name: str, line: str) -> bool:
    """Make hooks_dir/hook_name run line. Returns True if the file changed."""
    hooks_dir.mkdir(parents=True, exist_ok=True)
    path = hooks_dir / hook_name

    if not path.exists():
        path.write_text(f"#!/usr/bin/env sh\n{HOOK_MARKER}\n{line}\n", encoding="utf-8")
        path.chmod(0o755)
        return True

    before = path.read_text(encoding="utf-8").replace("\r\n", "\n")
    if line in before:
        return False
    path.write_text(f"{before.rstrip()}\n\n{HOOK_MARKER}\n{line}\n", encoding="utf-8")
    path.chmod(0o755)
    return True


def _pre_commit_hooks(hook_mode: str) -> list[dict]:
    hooks = []
    if hook_mode in ("pre-commit", "both"):
        hooks.append(_hook_entry(REVIEW_HOOK_ID, "gitpreflight review", "gitpreflight review --staged", "pre-commit"))
        hooks.append(
            _hook_entry(POST_COMMIT_HOOK_ID, "gitpreflight post-commit", "gitpreflight internal post-commit", "post-commit")
        )
    if hook_mode in ("pre-push", "both"):
        hooks.append(_hook_entry(PUSH_REVIEW_HOOK_ID, "gitpreflight push review", "gitpreflight review --push", "pre-push"))
    return hooks


def _hook_entry(hook_id: str, name: str, entry: str, stage: str) -> dict:
    return {
        "id": hook_id,
        "name": name,
        "entry": entry,
        "language": "system",
        "pass_filenames": False,
        "always_run": True,
        "stages": [stage],
    }


def _load_yaml_mapping(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid {path}: expected a mapping at the top level.")
    return data


def has_yaml_comments(path: Path) -> bool:
    """True when the file holds comment lines that a YAML round-trip would drop."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return False
    return any(line.lstrip().startswith("#") for line in text.splitlines())


def _configured_hook_ids(config: dict) -> set[str]:
    ids: set[str] = set()
    for repo in config.get("repos") or []:
        if not isinstance(repo, dict):
            continue
        for hook in repo.get("hooks") or []:
            if isinstance(hook, dict) and isinstance(hook.get("id"), str):
                ids.add(hook["id"])
    return ids


class ScopedInstaller:
    def __init__(self, git: GitPlumbing, env: Mapping[str, str] | None = None):
        self.git = git
        self.env = os.environ if env is None else env

    # ------------------------------------------------------------------ #
    # Paths                                                                #
    # ------------------------------------------------------------------ #

    def global_hooks_dir(self) -> Path:
        return (config_dir(self.env) / "hooks").resolve()

    def local_hooks_dir(self, repo_root: str) -> Path:
        return (Path(self.git.git_dir(repo_root)) / "gitpreflight" / "hooks").resolve()

    def _home(self) -> Path:
        home = (self.env.get("HOME") or "").strip()
        return Path(home) if home else Path.home()

    def _absolute_hooks_path(self, value: str, base: Path) -> Path:
        path = Path(value.replace("~", str(self._home()), 1) if value.startswith("~") else value)
        return (path if path.is_absolute() else base / path).resolve()

    # ------------------------------------------------------------------ #
    # Install / uninstall                                                  #
    # ------------------------------------------------------------------ #

    def install(self, scope: str, hook_mode: str = "both", repo_root: str | None = None) -> list[Path]:
        """Install hooks at scope. Returns the files that were written."""
        lines = hook_lines(hook_mode)
        if scope == "global":
            return self._install_hooks_path("global", self.global_hooks_dir(), self._home(), lines, None)
        if scope == "local":
            root = self._require_repo(repo_root)
            return self._install_hooks_path("local", self.local_hooks_dir(root), Path(root), lines, root)
        if scope == "repo":
            return self._install_repo(self._require_repo(repo_root), hook_mode)
        raise ConfigurationError(f"Unknown scope {scope!r}; expected one of {', '.join(SCOPES)}.")

    def uninstall(self, scope: str, repo_root: str | None = None) -> bool:
        """Unset core.hooksPath when it is the managed one. Returns True if it was."""
        if scope == "global":
            managed, base, root = self.global_hooks_dir(), self._home(), None
        elif scope == "local":
            root = self._require_repo(repo_root)
            managed, base = self.local_hooks_dir(root), Path(root)
        else:
            raise ConfigurationError("Only global and local scopes can be uninstalled; remove repo hooks by hand.")

        current = self.git.config_get(scope, HOOKS_PATH_KEY, root)
        if not current or self._absolute_hooks_path(current, base) != managed:
            return False
        self.git.config_unset(scope, HOOKS_PATH_KEY, root)
        logger.debug("Unset %s %s", scope, HOOKS_PATH_KEY)
        return True

    def _require_repo(self, repo_root: str | None) -> str:
        return repo_root or self.git.repo_root()

    def _install_hooks_path(
        self, scope: str, managed: Path, base: Path, lines: dict[str, str], repo_root: str | None
    ) -> list[Path]:
        current = self.git.config_get(scope, HOOKS_PATH_KEY, repo_root)
        if current and self._absolute_hooks_path(current, base) != managed:
            if scope == "global":
                hint = "Unset it first or use a different install scope."
            else:
                hint = "Unset it first or use repo scope."
            raise HooksPathConflictError(scope, current, hint)

        changed = [managed / name for name, line in lines.items() if ensure_hook_contains(managed, name, line)]
        self.git.config_set(scope, HOOKS_PATH_KEY, str(managed), repo_root)
        return changed

    def _install_repo(self, repo_root: str, hook_mode: str) -> list[Path]:
        root = Path(repo_root)
        written: list[Path] = []

        config_path = root / PRE_COMMIT_CONFIG
        config = _load_yaml_mapping(config_path)
        existing_ids = _configured_hook_ids(config)
        missing = [h for h in _pre_commit_hooks(hook_mode) if h["id"] not in existing_ids]

        stages = sorted({h["stages"][0] for h in _pre_commit_hooks(hook_mode)})
        install_types = config.get("default_install_hook_types") or ["pre-commit"]
        wanted_types = [*install_types, *(s for s in stages if s not in install_types)]

        if missing or wanted_types != install_types:
            if missing:
                repos = config.get("repos") or []
                if not isinstance(repos, list):
                    raise ConfigurationError(f"Invalid {config_path}: `repos` must be a list.")
                config["repos"] = [*repos, {"repo": "local", "hooks": missing}]
            config["default_install_hook_types"] = wanted_types
            config_path.write_text(yaml.safe_dump(config, default_flow_style=False, sort_keys=False), encoding="utf-8")
            written.append(config_path)

        manifest = read_manifest(repo_root)
        if "policy" not in manifest:
            manifest["policy"] = "optional"
            manifest_path = root / MANIFEST_FILENAME
            manifest_path.write_text(yaml.safe_dump(manifest, default_flow_style=False, sort_keys=False), encoding="utf-8")
            written.append(manifest_path)

        return written

    # ------------------------------------------------------------------ #
    # Status                                                               #
    # ------------------------------------------------------------------ #

    def status(self, repo_root: str | None) -> InstallStatus:
        managed_global = self.global_hooks_dir()
        global_path = self.git.config_get("global", HOOKS_PATH_KEY)
        global_scope = ScopeStatus(
            installed=bool(global_path) and self._absolute_hooks_path(global_path, self._home()) == managed_global,
            hooks_path=global_path,
            managed_hooks_path=str(managed_global),
        )

        local_scope = ScopeStatus()
        repo_scope = ScopeStatus()
        if repo_root:
            managed_local = self.local_hooks_dir(repo_root)
            local_path = self.git.config_get("local", HOOKS_PATH_KEY, repo_root)
            local_scope = ScopeStatus(
                installed=bool(local_path)
                and self._absolute_hooks_path(local_path, Path(repo_root)) == managed_local,
                hooks_path=local_path,
                managed_hooks_path=str(managed_local),
            )
            repo_scope = ScopeStatus(installed=self._repo_installed(repo_root))

        return InstallStatus(global_scope=global_scope, local_scope=local_scope, repo_scope=repo_scope)

    def _repo_installed(self, repo_root: str) -> bool:
        try:
            config = _load_yaml_mapping(Path(repo_root) / PRE_COMMIT_CONFIG)
        except ConfigurationError as e:
            logger.debug("Ignoring unreadable %s: %s", PRE_COMMIT_CONFIG, e)
            return False
        ids = _configured_hook_ids(config)
        return REVIEW_HOOK_ID in ids or PUSH_REVIEW_HOOK_ID in ids
