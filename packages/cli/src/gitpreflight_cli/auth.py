"""gitpreflight token resolution and storage.

Resolution order (stops at first success):
  1. GITPREFLIGHT_TOKEN environment variable (CI / explicit override)
  2. token.json in the gitpreflight config directory (written by `auth login`)
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Mapping
from pathlib import Path

from gitpreflight_core.config import config_dir

logger = logging.getLogger(__name__)

TOKEN_FILENAME = "token.json"


def token_path(env: Mapping[str, str] | None = None) -> Path:
    return config_dir(env) / TOKEN_FILENAME


def load_stored_token(env: Mapping[str, str] | None = None) -> str | None:
    path = token_path(env)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable token file %s: %s", path, e)
        return None
    token = data.get("token") if isinstance(data, dict) else None
    return token if isinstance(token, str) and token else None


def resolve_token(env: Mapping[str, str] | None = None) -> str | None:
    """Return a gitpreflight token or None if no source has one.

    Never raises; the orchestrator decides what a missing token means under
    the effective policy.
    """
    env = os.environ if env is None else env
    token = (env.get("GITPREFLIGHT_TOKEN") or "").strip()
    if token:
        return token
    stored = load_stored_token(env)
    if stored:
        logger.debug("Resolved token from %s", token_path(env))
    return stored


def save_token(token: str, env: Mapping[str, str] | None = None) -> Path:
    path = token_path(env)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"token": token, "createdAtMs": int(time.time() * 1000)}
    # Create with 0600 so the token is never briefly world-readable.
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(json.dumps(data, indent=2) + "\n")
    os.chmod(path, 0o600)
    return path


def clear_token(env: Mapping[str, str] | None = None) -> bool:
    """Delete the stored token. Returns True if one was removed."""
    try:
        token_path(env).unlink()
    except FileNotFoundError:
        return False
    return True
