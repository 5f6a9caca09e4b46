"""Best-effort calls made alongside a review.

Repository registration and instruction-file sync only feed server-side
optimizations. They never raise: every failure is logged and returned as a
BestEffortResult the caller is free to ignore.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gitpreflight_core.reviewers.http import ApiClient
    from gitpreflight_core.utils.instructions import HashedFile

logger = logging.getLogger(__name__)

REGISTER_PATH = "/api/v1/repos/register"
INSTRUCTIONS_CHECK_PATH = "/api/v1/instructions/check"
INSTRUCTIONS_UPLOAD_PATH = "/api/v1/instructions/upload"

_MAX_INSTRUCTION_BYTES = 256 * 1024


@dataclass
class BestEffortResult:
    ok: bool
    error: str | None = None
    value: Any = None


def normalize_origin_url(url: str) -> str:
    """Reduce an origin URL to `host/owner/repo` so SSH and HTTPS remotes match.

    git@github.com:owner/repo.git      → github.com/owner/repo
    https://github.com/owner/repo.git  → github.com/owner/repo
    """
    u = url.strip()
    u = re.sub(r"^[a-z+]+://", "", u, flags=re.IGNORECASE)
    u = re.sub(r"^[^@/]+@", "", u)
    m = re.match(r"^([^/:]+):(?!\d+/)(.*)$", u)
    if m:
        u = f"{m.group(1)}/{m.group(2)}"
    u = re.sub(r":\d+/", "/", u, count=1)
    u = u.removesuffix("/").removesuffix(".git")
    return u.lower()


def register_repo(client: ApiClient, origin_url: str | None, default_branch: str | None) -> BestEffortResult:
    if not origin_url:
        return BestEffortResult(ok=False, error="no origin remote")
    body: dict[str, Any] = {"originUrl": origin_url, "normalizedOriginUrl": normalize_origin_url(origin_url)}
    if default_branch:
        body["defaultBranch"] = default_branch
    try:
        return BestEffortResult(ok=True, value=client.post_json(REGISTER_PATH, body))
    except Exception as e:
        logger.debug("Repository registration failed: %s", e)
        return BestEffortResult(ok=False, error=str(e))


def sync_instruction_files(client: ApiClient, repo_root: str, hashed: list[HashedFile]) -> BestEffortResult:
    """Upload instruction files the server reports as unseen."""
    if not hashed:
        return BestEffortResult(ok=True, value=[])
    try:
        answer = client.post_json(
            INSTRUCTIONS_CHECK_PATH, {"files": [{"path": h.path, "sha256": h.sha256} for h in hashed]}
        )
        missing = answer.get("missing", []) if isinstance(answer, dict) else []
        wanted = {m.get("sha256") if isinstance(m, dict) else m for m in missing}
        uploads = []
        for h in hashed:
            if h.sha256 not in wanted and h.path not in wanted:
                continue
            data = (Path(repo_root) / h.path).read_bytes()[:_MAX_INSTRUCTION_BYTES]
            uploads.append({"path": h.path, "sha256": h.sha256, "content": data.decode("utf-8", errors="replace")})
        if uploads:
            client.post_json(INSTRUCTIONS_UPLOAD_PATH, {"files": uploads})
        return BestEffortResult(ok=True, value=[u["path"] for u in uploads])
    except Exception as e:
        logger.debug("Instruction file sync failed: %s", e)
        return BestEffortResult(ok=False, error=str(e))
