import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import yaml

from gitpreflight_core.errors import ConfigurationError

MANIFEST_FILENAME = ".gitpreflight.yml"
USER_CONFIG_FILENAME = "config.yml"
POLICIES = ("required", "optional", "disabled")

DEFAULT_INSTRUCTION_FILES = [
    "AGENTS.md",
    "agents.md",
    "CLAUDE.md",
    "claude.md",
    "codex.md",
    ".cursorrules",
]

DEFAULT_CONFIG: dict = {
    "policy": None,  # None = defer to local/global git config
    "instruction_files": DEFAULT_INSTRUCTION_FILES,
    "timeout_ms": 5 * 60 * 1000,
    "linters": {
        "enabled": True,
        "skip_if_repo_already_has_precommit": True,
    },
}

LOCAL_AGENT_COMMANDS = {
    "codex": "codex exec",
    "claude": "claude -p",
    "opencode": "opencode run",
}

_URL_RE = re.compile(r"^https?://[^\s/]+", re.IGNORECASE)


@dataclass
class RepoConfig:
    policy: Optional[str] = None
    instruction_files: list = field(default_factory=lambda: list(DEFAULT_INSTRUCTION_FILES))
    timeout_ms: int = DEFAULT_CONFIG["timeout_ms"]
    linters_enabled: bool = True
    skip_linters_if_precommit: bool = True


@dataclass
class LocalAgentConfig:
    provider: str
    command: str


@dataclass
class UserConfig:
    local_agent: Optional[LocalAgentConfig] = None
    plan_tier: str = "free"


def parse_policy_value(raw) -> Optional[str]:
    """Return a normalized policy name, or None for anything unrecognised."""
    if not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    return value if value in POLICIES else None


def read_manifest(repo_root: str) -> dict:
    """Return the raw `.gitpreflight.yml` mapping, {} when the file is absent."""
    path = Path(repo_root) / MANIFEST_FILENAME
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid {path}: expected a mapping at the top level.")
    return data


def load_repo_config(repo_root: str) -> RepoConfig:
    """
    Load and validate the committed repo manifest.

    Unknown keys and wrong types are configuration errors: a typo in a shared
    manifest should fail loudly for everyone rather than silently change
    enforcement.
    """
    raw = read_manifest(repo_root)
    where = MANIFEST_FILENAME

    if raw.get("api_base_url") is not None:
        raise ConfigurationError(
            f"{where}: api_base_url is not supported. Set GITPREFLIGHT_API_BASE_URL in your environment instead."
        )

    unknown = sorted(set(raw) - set(DEFAULT_CONFIG) - {"api_base_url"})
    if unknown:
        raise ConfigurationError(f"{where}: unknown key(s): {', '.join(unknown)}")

    config = RepoConfig()

    if raw.get("policy") is not None:
        policy = parse_policy_value(raw["policy"])
        if policy is None:
            raise ConfigurationError(f"{where}: policy must be one of {', '.join(POLICIES)}; got {raw['policy']!r}")
        config.policy = policy

    if "instruction_files" in raw:
        files = raw["instruction_files"]
        if not isinstance(files, list) or not all(isinstance(f, str) and f.strip() for f in files):
            raise ConfigurationError(f"{where}: instruction_files must be a list of non-empty strings.")
        config.instruction_files = list(files)

    if "timeout_ms" in raw:
        timeout = raw["timeout_ms"]
        if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
            raise ConfigurationError(f"{where}: timeout_ms must be a positive integer.")
        config.timeout_ms = timeout

    linters = raw.get("linters")
    if linters is not None:
        if not isinstance(linters, dict):
            raise ConfigurationError(f"{where}: linters must be a mapping.")
        unknown_linters = sorted(set(linters) - set(DEFAULT_CONFIG["linters"]))
        if unknown_linters:
            raise ConfigurationError(f"{where}: unknown linters key(s): {', '.join(unknown_linters)}")
        for key in ("enabled", "skip_if_repo_already_has_precommit"):
            if key in linters and not isinstance(linters[key], bool):
                raise ConfigurationError(f"{where}: linters.{key} must be true or false.")
        config.linters_enabled = linters.get("enabled", True)
        config.skip_linters_if_precommit = linters.get("skip_if_repo_already_has_precommit", True)

    return config


def config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Machine-wide gitpreflight directory:
      1. $XDG_CONFIG_HOME/gitpreflight
      2. ~/.config/gitpreflight
    """
    env = os.environ if env is None else env
    xdg = (env.get("XDG_CONFIG_HOME") or "").strip()
    if xdg:
        return Path(xdg) / "gitpreflight"
    home = (env.get("HOME") or "").strip()
    return (Path(home) if home else Path.home()) / ".config" / "gitpreflight"


def _read_user_config_raw(env: Optional[Mapping[str, str]] = None) -> dict:
    path = config_dir(env) / USER_CONFIG_FILENAME
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def load_user_config(env: Optional[Mapping[str, str]] = None) -> UserConfig:
    """Load the per-user config file. Invalid content degrades to defaults."""
    env = os.environ if env is None else env
    raw = _read_user_config_raw(env)
    config = UserConfig()

    agent = raw.get("local_agent")
    if isinstance(agent, dict):
        provider = agent.get("provider")
        command = agent.get("command")
        if provider in LOCAL_AGENT_COMMANDS and isinstance(command, str) and command.strip():
            config.local_agent = LocalAgentConfig(provider=provider, command=command.strip())

    tier = raw.get("plan_tier")
    if isinstance(tier, str) and tier.strip():
        config.plan_tier = tier.strip()

    env_tier = (env.get("GITPREFLIGHT_PLAN_TIER") or "").strip()
    if env_tier:
        config.plan_tier = env_tier

    return config


def save_local_agent_config(provider: str, command: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Path:
    """Persist the local agent choice, preserving any other keys in the file."""
    if provider not in LOCAL_AGENT_COMMANDS:
        raise ConfigurationError(f"Unknown local agent provider: {provider!r}")
    directory = config_dir(env)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / USER_CONFIG_FILENAME

    existing = _read_user_config_raw(env)
    existing["local_agent"] = {"provider": provider, "command": command or LOCAL_AGENT_COMMANDS[provider]}
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False), encoding="utf-8")
    try:
        path.chmod(0o600)
    except OSError:
        pass
    return path


def api_base_url(env: Optional[Mapping[str, str]] = None) -> str:
    """Return GITPREFLIGHT_API_BASE_URL without a trailing slash, or raise ConfigurationError."""
    env = os.environ if env is None else env
    raw = (env.get("GITPREFLIGHT_API_BASE_URL") or "").strip()
    if not raw:
        raise ConfigurationError("GITPREFLIGHT_API_BASE_URL is not set.")
    if not _URL_RE.match(raw):
        raise ConfigurationError(f"GITPREFLIGHT_API_BASE_URL is not a valid http(s) URL: {raw!r}")
    return raw.rstrip("/")
