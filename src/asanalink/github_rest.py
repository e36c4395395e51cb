from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import TransportError
from .retry import RetryConfig, run_with_retries

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "asanalink-rest/0.3.0"
HTTP_ERROR_STATUS = 400
STATUS_STATES = frozenset({"error", "failure", "pending", "success"})


class GitHubAPIError(TransportError):
    """Raised when the GitHub REST API returns an error."""


@dataclass
class GitHubRestClient:
    """Lightweight REST client for the commit status endpoint."""

    token: str
    repo: str
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    retry: RetryConfig | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
            }
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )

        def _run() -> requests.Response:
            return self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._session.headers,
                timeout=30,
            )

        try:
            response = run_with_retries(_run, cfg=self.retry)
        except requests.RequestException as exc:
            raise GitHubAPIError(f"GitHub API {method} {url} failed: {exc}") from exc
        if response.status_code >= HTTP_ERROR_STATUS:
            raise GitHubAPIError(
                f"GitHub API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            try:
                return response.json()
            except ValueError:
                return response.text
        return None

    def create_status(
        self,
        *,
        sha: str,
        state: str,
        context: str,
        description: str | None = None,
        target_url: str | None = None,
    ) -> dict[str, Any]:
        if state not in STATUS_STATES:
            raise ValueError(f"Unsupported commit status state: {state}")
        payload: dict[str, Any] = {"state": state, "context": context}
        if description:
            payload["description"] = description
        if target_url:
            payload["target_url"] = target_url
        data = self._request("POST", f"/repos/{self.repo}/statuses/{sha}", json_body=payload)
        return data if isinstance(data, dict) else {}


__all__ = ["GitHubAPIError", "GitHubRestClient"]
