from __future__ import annotations

import json
import logging
from typing import Any

import requests

from gitpreflight_core.reviewers.base import (
    BaseReviewer,
    ReviewerAuthError,
    ReviewerRequestError,
    ReviewerResponseError,
    ReviewerUnavailableError,
    ReviewRequest,
    is_offline_or_timeout_error,
)
from gitpreflight_core.version import get_version

logger = logging.getLogger(__name__)

REVIEW_PATH = "/api/v1/review"


class ApiClient:
    """Bearer-token JSON client for the gitpreflight API.

    Every call is bounded by ``timeout_s``. Failures are raised as reviewer
    errors so callers share one classification:
    timeouts, connection problems and 5xx → ReviewerUnavailableError,
    401 → ReviewerAuthError, any other 4xx → ReviewerRequestError.
    """

    def __init__(self, base_url: str, token: str, timeout_s: float, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path if path.startswith('/') else '/' + path}"

    def post_text(self, path: str, body: Any) -> str:
        url = self._url(path)
        logger.debug("POST %s (timeout %.1fs)", url, self.timeout_s)
        try:
            res = self.session.post(
                url,
                json=body,
                headers={
                    "authorization": f"Bearer {self.token}",
                    "user-agent": f"gitpreflight/{get_version()}",
                },
                timeout=self.timeout_s,
            )
        except requests.Timeout as e:
            raise ReviewerUnavailableError(f"Request to {url} timed out after {self.timeout_s:g}s: {e}", "timeout")
        except requests.RequestException as e:
            if is_offline_or_timeout_error(e):
                raise ReviewerUnavailableError(f"Could not reach {url}: {e}", "network")
            raise ReviewerRequestError(0, str(e))

        text = res.text or ""
        if res.status_code >= 500:
            raise ReviewerUnavailableError(f"Reviewer API error ({res.status_code})", f"server error {res.status_code}")
        if res.status_code == 401:
            raise ReviewerAuthError(res.status_code, text)
        if res.status_code >= 400:
            raise ReviewerRequestError(res.status_code, text)
        return text

    def post_json(self, path: str, body: Any) -> Any:
        text = self.post_text(path, body)
        try:
            return json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as e:
            raise ReviewerResponseError(f"{path} returned invalid JSON ({e.msg})")


class HttpReviewer(BaseReviewer):
    """Reviewer backed by the remote review endpoint."""

    name = "gitpreflight-api"

    def __init__(self, client: ApiClient):
        self.client = client

    def _call(self, request: ReviewRequest) -> str:
        return self.client.post_text(REVIEW_PATH, request.to_payload())
