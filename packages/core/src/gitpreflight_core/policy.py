"""Effective enforcement policy from layered configuration.

Precedence, highest first:

  repo      `policy:` in the committed .gitpreflight.yml
  local     `git config --local gitpreflight.policy`
  global    `git config --global gitpreflight.policy`
  default   optional

A repository owner who commits `policy: required` therefore cannot be
overridden by a contributor's machine settings. Lower-precedence values that
disagree with the winner are reported as ignored, never applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gitpreflight_core.config import parse_policy_value, read_manifest
from gitpreflight_core.errors import ConfigurationError
from gitpreflight_core.git.plumbing import GitPlumbing

logger = logging.getLogger(__name__)

POLICY_CONFIG_KEY = "gitpreflight.policy"
SOURCES = ("repo", "local", "global")
DEFAULT_POLICY = "optional"


@dataclass(frozen=True)
class EffectivePolicy:
    policy: str  # required | optional | disabled
    source: str  # repo | local | global | default


@dataclass
class PolicyResolution:
    effective: EffectivePolicy
    configured: dict[str, str | None] = field(default_factory=dict)
    ignored: list[str] = field(default_factory=list)


def resolve_policy_from_values(configured: dict[str, str | None]) -> PolicyResolution:
    """Fold the configured layers in precedence order into one resolution."""
    effective = EffectivePolicy(DEFAULT_POLICY, "default")
    ignored: list[str] = []
    decided = False

    for source in SOURCES:
        value = configured.get(source)
        if value is None:
            continue
        if not decided:
            effective = EffectivePolicy(value, source)
            decided = True
        elif value != effective.policy:
            ignored.append(source)

    return PolicyResolution(
        effective=effective,
        configured={s: configured.get(s) for s in SOURCES},
        ignored=ignored,
    )


class PolicyResolver:
    def __init__(self, git: GitPlumbing):
        self.git = git

    def resolve(self, repo_root: str | None) -> PolicyResolution:
        configured: dict[str, str | None] = {
            "repo": None,
            "local": None,
            "global": parse_policy_value(self.git.config_get("global", POLICY_CONFIG_KEY)),
        }
        if repo_root:
            configured["local"] = parse_policy_value(self.git.config_get("local", POLICY_CONFIG_KEY, repo_root))
            configured["repo"] = self._repo_policy(repo_root)
        return resolve_policy_from_values(configured)

    def _repo_policy(self, repo_root: str) -> str | None:
        try:
            manifest = read_manifest(repo_root)
        except ConfigurationError as e:
            logger.debug("Ignoring unreadable manifest for policy lookup: %s", e)
            return None
        return parse_policy_value(manifest.get("policy"))
