"""Blocking REST client for the handful of Asana endpoints the bot uses."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import AuthenticationError, TransportError
from .retry import RetryConfig, run_with_retries

DEFAULT_API_URL = "https://app.asana.com/api/1.0"
USER_AGENT = "asanalink-rest/0.3.0"
HTTP_ERROR_STATUS = 400
DEFAULT_PAGE_SIZE = 100

TASK_FIELDS = ",".join(
    [
        "name",
        "completed",
        "projects.name",
        "memberships.project.name",
        "memberships.section.name",
        "custom_fields.name",
        "custom_fields.type",
        "custom_fields.resource_subtype",
        "custom_fields.display_value",
        "custom_fields.enum_options.name",
        "custom_fields.enum_options.enabled",
    ]
)


class AsanaAPIError(TransportError):
    """Raised when the Asana API returns an error."""


@dataclass
class AsanaRestClient:
    """Lightweight REST client for Asana task operations.

    Each thread gets its own ``requests.Session`` unless one is injected, so
    the executor fan-out in :mod:`asanalink.task_client` never shares a
    connection pool across threads.
    """

    token: str
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    retry: RetryConfig | None = None
    _headers: dict[str, str] = field(init=False, repr=False)
    _local: threading.local = field(init=False, repr=False, default_factory=threading.local)

    def __post_init__(self) -> None:
        self._headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
            "Asana-Enable": "new_sections,string_ids",
        }
        if self.session is not None:
            self.session.headers.update(self._headers)

    def _thread_session(self) -> requests.Session:
        if self.session is not None:
            return self.session
        session: requests.Session | None = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self._headers)
            self._local.session = session
        return session

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        idempotent: bool = True,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )

        session = self._thread_session()

        def _run() -> requests.Response:
            return session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=session.headers,
                timeout=30,
            )

        try:
            response = run_with_retries(_run, cfg=self.retry, idempotent=idempotent)
        except requests.RequestException as exc:
            raise AsanaAPIError(f"Asana API {method} {url} failed: {exc}") from exc
        if response.status_code >= HTTP_ERROR_STATUS:
            raise AsanaAPIError(
                f"Asana API {method} {url} failed with {response.status_code}",
                status=response.status_code,
                response_text=response.text,
            )
        if response.text:
            try:
                return response.json()
            except ValueError:
                return response.text
        return None

    def _data(self, method: str, path: str, **kwargs: Any) -> Any:
        payload = self._request(method, path, **kwargs)
        if isinstance(payload, dict):
            return payload.get("data")
        return None

    def _paginate(
        self, path: str, *, params: dict[str, Any] | None = None, limit: int | None = None
    ) -> list[Any]:
        params = dict(params or {})
        page_size = DEFAULT_PAGE_SIZE if limit is None else min(limit, DEFAULT_PAGE_SIZE)
        params["limit"] = page_size
        results: list[Any] = []
        while True:
            payload = self._request("GET", path, params=params)
            if not isinstance(payload, dict):
                break
            data = payload.get("data")
            if not isinstance(data, list):
                break
            results.extend(data)
            if limit is not None and len(results) >= limit:
                return results[:limit]
            next_page = payload.get("next_page")
            offset = next_page.get("offset") if isinstance(next_page, dict) else None
            if not offset:
                break
            params["offset"] = offset
        return results

    # ---- Authentication -------------------------------------------------
    def verify(self) -> dict[str, Any]:
        """Fetch the token owner; a rejected token raises AuthenticationError."""
        try:
            data = self._data("GET", "/users/me")
        except AsanaAPIError as exc:
            if exc.status in (401, 403):
                raise AuthenticationError(
                    "Asana rejected the access token",
                    status=exc.status,
                    response_text=exc.response_text,
                ) from exc
            raise
        return data if isinstance(data, dict) else {}

    # ---- Task operations ------------------------------------------------
    def get_task(self, task_gid: str) -> dict[str, Any]:
        data = self._data("GET", f"/tasks/{task_gid}", params={"opt_fields": TASK_FIELDS})
        if not isinstance(data, dict):
            raise AsanaAPIError(f"Asana task {task_gid} returned no data")
        return data

    def update_task(self, task_gid: str, fields: dict[str, Any]) -> dict[str, Any]:
        data = self._data("PUT", f"/tasks/{task_gid}", json_body={"data": fields})
        return data if isinstance(data, dict) else {}

    def get_sections(self, project_gid: str) -> list[dict[str, Any]]:
        return [
            entry
            for entry in self._paginate(
                f"/projects/{project_gid}/sections", params={"opt_fields": "name"}
            )
            if isinstance(entry, dict)
        ]

    def add_task_to_section(self, section_gid: str, task_gid: str) -> None:
        self._request(
            "POST", f"/sections/{section_gid}/addTask", json_body={"data": {"task": task_gid}}
        )

    # ---- Stories (comments) ---------------------------------------------
    def get_stories(self, task_gid: str, *, limit: int | None = None) -> list[dict[str, Any]]:
        return [
            entry
            for entry in self._paginate(
                f"/tasks/{task_gid}/stories",
                params={"opt_fields": "text,type,resource_subtype"},
                limit=limit,
            )
            if isinstance(entry, dict)
        ]

    def create_story(self, task_gid: str, *, text: str, is_pinned: bool = False) -> dict[str, Any]:
        data = self._data(
            "POST",
            f"/tasks/{task_gid}/stories",
            json_body={"data": {"text": text, "is_pinned": is_pinned}},
            idempotent=False,
        )
        return data if isinstance(data, dict) else {}

    def delete_story(self, story_gid: str) -> None:
        self._request("DELETE", f"/stories/{story_gid}")


__all__ = ["AsanaAPIError", "AsanaRestClient", "DEFAULT_API_URL", "TASK_FIELDS"]
