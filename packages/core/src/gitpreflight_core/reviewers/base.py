"""Base reviewer implementing the Template Method pattern.

Every reviewer shares the same algorithm:
    review() → _call()   ← only this differs per reviewer
             → _parse()  ← decode + validate the findings payload

Subclasses implement _call only: send the request somewhere (the remote
review API, a local agent process) and return the raw text answer, raising
one of the ReviewerError subclasses below on failure. The orchestrator maps
those errors to results:

  ReviewerUnavailableError  → UNCHECKED (the answer is unknown, not negative)
  ReviewerAuthError         → blocking FAIL, re-authenticate
  ReviewerRequestError      → blocking FAIL with the server detail verbatim
  ReviewerResponseError     → blocking FAIL with the schema violation
  LocalAgentError           → blocking FAIL
"""

from __future__ import annotations

import errno
import json
import logging
import re
import socket
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import requests

from gitpreflight_core.findings import STATUSES, Finding
from gitpreflight_core.merge import ModelFindings

if TYPE_CHECKING:
    from gitpreflight_core.git.ranges import ChangeEntry
    from gitpreflight_core.utils.instructions import HashedFile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------- #
# Errors                                                                   #
# ---------------------------------------------------------------------- #


class ReviewerError(Exception):
    """Base class for anything that prevented a reviewer from answering."""


class ReviewerUnavailableError(ReviewerError):
    """Timeout, DNS failure, connection reset, 5xx: no answer was obtained."""

    def __init__(self, message: str, reason: str = "network"):
        super().__init__(message)
        self.reason = reason


class ReviewerAuthError(ReviewerError):
    def __init__(self, status: int, body: str = ""):
        super().__init__(f"Reviewer rejected the credentials ({status}).")
        self.status = status
        self.body = body


class ReviewerRequestError(ReviewerError):
    def __init__(self, status: int, body: str):
        super().__init__(f"Reviewer API error ({status})")
        self.status = status
        self.body = body


class ReviewerResponseError(ReviewerError):
    """The reviewer answered, but not with a valid findings payload."""


class LocalAgentError(ReviewerError):
    """The local agent is not configured, could not start, or exited non-zero."""


_NETWORK_ERRNOS = {
    errno.ETIMEDOUT,
    errno.ECONNRESET,
    errno.ECONNREFUSED,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
}


def is_offline_or_timeout_error(exc: BaseException) -> bool:
    """True for failures that mean "could not get an answer" rather than "the answer was no"."""
    if isinstance(exc, ReviewerUnavailableError):
        return True
    if isinstance(exc, (requests.Timeout, requests.ConnectionError, subprocess.TimeoutExpired, TimeoutError)):
        return True
    if isinstance(exc, socket.gaierror):
        return True
    if isinstance(exc, OSError) and exc.errno in _NETWORK_ERRNOS:
        return True
    message = str(exc).lower()
    return "timeout" in message or "timed out" in message or "network" in message


# ---------------------------------------------------------------------- #
# Request / response                                                       #
# ---------------------------------------------------------------------- #


@dataclass
class ReviewRequest:
    branch: str
    plan_tier: str
    staged_patch: str
    staged_files: list[ChangeEntry] = field(default_factory=list)
    instruction_files: list[HashedFile] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "branch": self.branch,
            "planTier": self.plan_tier,
            "stagedPatch": self.staged_patch,
            "stagedFiles": [f.to_request_dict() for f in self.staged_files],
            "instructionFiles": [{"path": h.path, "sha256": h.sha256} for h in self.instruction_files],
        }


@dataclass
class ReviewResponse:
    status: str | None
    findings: list[Finding] = field(default_factory=list)
    per_model: list[ModelFindings] = field(default_factory=list)


def _parse_findings(raw: Any, where: str) -> list[Finding]:
    if not isinstance(raw, list):
        raise ReviewerResponseError(f"{where} must be a list")
    findings = []
    for i, item in enumerate(raw):
        try:
            findings.append(Finding.from_dict(item))
        except ValueError as e:
            raise ReviewerResponseError(f"{where}[{i}]: {e}")
    return findings


def parse_review_payload(payload: Any) -> ReviewResponse:
    """Validate a decoded `{status?, findings, models?}` payload."""
    if not isinstance(payload, dict):
        raise ReviewerResponseError(f"response must be a JSON object, got {type(payload).__name__}")

    status = payload.get("status")
    if status is not None and status not in STATUSES:
        raise ReviewerResponseError(f"status must be one of {', '.join(STATUSES)}; got {status!r}")

    per_model: list[ModelFindings] = []
    models = payload.get("models")
    if models is not None:
        if not isinstance(models, list):
            raise ReviewerResponseError("models must be a list")
        for i, entry in enumerate(models):
            name = entry.get("model") if isinstance(entry, dict) else None
            if not isinstance(name, str) or not name:
                raise ReviewerResponseError(f"models[{i}].model must be a non-empty string")
            per_model.append(ModelFindings(name, _parse_findings(entry.get("findings", []), f"models[{i}].findings")))

    if "findings" in payload:
        findings = _parse_findings(payload["findings"], "findings")
    elif per_model:
        findings = []
    else:
        raise ReviewerResponseError("response is missing 'findings'")

    return ReviewResponse(status=status, findings=findings, per_model=per_model)


# ---------------------------------------------------------------------- #
# Template                                                                 #
# ---------------------------------------------------------------------- #


class BaseReviewer(ABC):
    name: str = "reviewer"

    def review(self, request: ReviewRequest) -> ReviewResponse:
        """Send one review request and return the validated response.

        Raises a ReviewerError subclass when no usable answer was obtained.
        """
        raw = self._call(request)
        return self._parse(raw)

    @abstractmethod
    def _call(self, request: ReviewRequest) -> str:
        """Perform one review attempt and return the raw text answer."""

    def _parse(self, raw: str) -> ReviewResponse:
        # Strip only an outer ```json fence; backticks inside strings stay.
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning("%s: response is not JSON: %s", self.__class__.__name__, raw[:200])
            raise ReviewerResponseError(f"{self.name} returned invalid JSON ({e.msg}): {raw[:500]}")
        return parse_review_payload(payload)
