import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import Any

import pytest

from asanalink import retry
from asanalink.asana_rest import AsanaAPIError, AsanaRestClient
from asanalink.errors import AuthenticationError
from asanalink.github_rest import GitHubAPIError, GitHubRestClient
from asanalink.retry import RetryConfig
from asanalink.task_client import AsanaTaskClient, find_comment

NO_RETRY = RetryConfig(attempts=1, base_sleep=0.0)


@dataclass
class _DummyResponse:
    status_code: int
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    @property
    def text(self) -> str:
        payload = self.payload
        if isinstance(payload, (dict, list)):
            return json.dumps(payload)
        return "" if payload is None else str(payload)


class _DummySession:
    def __init__(self, responses: list[_DummyResponse]):
        self._responses = responses
        self.request_log: list[tuple[str, str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> _DummyResponse:
        self.request_log.append((method, url, {"headers": headers, "json": json, "params": dict(params or {})}))
        if not self._responses:
            raise AssertionError("No response queued for request")
        return self._responses.pop(0)


def _asana(responses: list[_DummyResponse]) -> tuple[AsanaRestClient, _DummySession]:
    session = _DummySession(responses)
    return AsanaRestClient(token="1/123", session=session, retry=NO_RETRY), session


def test_asana_client_sets_headers_and_unwraps_data():
    client, session = _asana([_DummyResponse(200, {"data": {"gid": "42", "name": "demo"}})])
    task = client.get_task("42")
    assert task["name"] == "demo"
    method, url, meta = session.request_log[0]
    assert method == "GET"
    assert url == "https://app.asana.com/api/1.0/tasks/42"
    assert "custom_fields.enum_options.name" in meta["params"]["opt_fields"]
    assert session.headers["Authorization"] == "Bearer 1/123"
    assert session.headers["Asana-Enable"] == "new_sections,string_ids"


def test_asana_client_follows_next_page_and_respects_limit():
    client, session = _asana(
        [
            _DummyResponse(200, {"data": [{"gid": "1", "text": "a"}], "next_page": {"offset": "tok"}}),
            _DummyResponse(200, {"data": [{"gid": "2", "text": "b"}], "next_page": None}),
        ]
    )
    stories = client.get_stories("42", limit=200)
    assert [s["gid"] for s in stories] == ["1", "2"]
    assert session.request_log[0][2]["params"]["limit"] == 100
    assert session.request_log[1][2]["params"]["offset"] == "tok"


def test_asana_client_write_payloads():
    client, session = _asana(
        [
            _DummyResponse(201, {"data": {"gid": "s1", "text": "hi"}}),
            _DummyResponse(200, {"data": {}}),
            _DummyResponse(200, {"data": {"gid": "42"}}),
            _DummyResponse(200, {"data": {}}),
        ]
    )
    client.create_story("42", text="hi", is_pinned=True)
    client.delete_story("s1")
    client.update_task("42", {"completed": True})
    client.add_task_to_section("sec", "42")
    log = session.request_log
    assert (log[0][0], log[0][1].rsplit("/api/1.0", 1)[1]) == ("POST", "/tasks/42/stories")
    assert log[0][2]["json"] == {"data": {"text": "hi", "is_pinned": True}}
    assert (log[1][0], log[1][1].endswith("/stories/s1")) == ("DELETE", True)
    assert log[2][2]["json"] == {"data": {"completed": True}}
    assert log[3][2]["json"] == {"data": {"task": "42"}}


def test_asana_client_raises_on_error():
    client, _ = _asana([_DummyResponse(500, {"errors": [{"message": "boom"}]})])
    with pytest.raises(AsanaAPIError) as excinfo:
        client.get_sections("9")
    assert excinfo.value.status == 500


def test_asana_story_post_is_not_repeated_after_gateway_timeout(monkeypatch):
    monkeypatch.setattr(retry.time, "sleep", lambda _: None)
    session = _DummySession(
        [_DummyResponse(504, "gateway timeout"), _DummyResponse(201, {"data": {"gid": "s1"}})]
    )
    client = AsanaRestClient(token="1/123", session=session, retry=RetryConfig(attempts=3, base_sleep=0.0))
    with pytest.raises(AsanaAPIError) as excinfo:
        client.create_story("42", text="hi")
    assert excinfo.value.status == 504
    assert [entry[0] for entry in session.request_log] == ["POST"]


def test_asana_reads_are_retried_after_gateway_timeout(monkeypatch):
    monkeypatch.setattr(retry.time, "sleep", lambda _: None)
    session = _DummySession(
        [_DummyResponse(504, "gateway timeout"), _DummyResponse(200, {"data": {"gid": "42"}})]
    )
    client = AsanaRestClient(token="1/123", session=session, retry=RetryConfig(attempts=3, base_sleep=0.0))
    assert client.get_task("42")["gid"] == "42"
    assert len(session.request_log) == 2


def test_asana_client_uses_one_session_per_thread():
    client = AsanaRestClient(token="1/123")
    main = client._thread_session()
    assert client._thread_session() is main
    assert main.headers["Accept"] == "application/json"
    assert main.headers["User-Agent"].startswith("asanalink-rest/")
    assert main.headers["Asana-Enable"] == "new_sections,string_ids"

    seen = []
    worker = threading.Thread(target=lambda: seen.append(client._thread_session()))
    worker.start()
    worker.join()
    assert seen[0] is not main
    assert seen[0].headers["Authorization"] == "Bearer 1/123"

def test_asana_verify_maps_401_to_authentication_error():
    client, _ = _asana([_DummyResponse(401, {"errors": [{"message": "Not Authorized"}]})])
    with pytest.raises(AuthenticationError):
        client.verify()


def test_asana_task_client_converts_payloads():
    rest, _ = _asana(
        [
            _DummyResponse(
                200,
                {
                    "data": {
                        "gid": "42",
                        "completed": False,
                        "projects": [{"gid": "9", "name": "Board"}],
                        "custom_fields": [
                            {
                                "gid": "cf",
                                "name": "Task Progress",
                                "resource_subtype": "enum",
                                "display_value": "Todo",
                                "enum_options": [{"gid": "o1", "name": "Todo", "enabled": True}],
                            }
                        ],
                        "memberships": [
                            {"project": {"gid": "9", "name": "Board"}, "section": {"gid": "s", "name": "Todo"}}
                        ],
                    }
                },
            ),
            _DummyResponse(200, {"data": [{"gid": "c1", "text": "hello marker"}]}),
        ]
    )

    async def _run() -> None:
        async with AsanaTaskClient(rest) as client:
            task = await client.get_task("42")
            assert task.find_project(name="Board").gid == "9"
            field = task.find_custom_field("Task Progress")
            assert field.type == "enum" and field.enum_options[0].gid == "o1"
            assert task.memberships[0].section.name == "Todo"
            comment = await find_comment(client, "42", "marker")
            assert comment is not None and comment.gid == "c1"

    asyncio.run(_run())


def test_github_client_creates_status():
    session = _DummySession([_DummyResponse(201, {"state": "success"})])
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session, retry=NO_RETRY)
    client.create_status(sha="abc", state="success", context="asana-link-presence", description="ok")
    method, url, meta = session.request_log[0]
    assert method == "POST"
    assert url.endswith("/repos/acme/widgets/statuses/abc")
    assert meta["json"] == {"state": "success", "context": "asana-link-presence", "description": "ok"}


def test_github_client_rejects_unknown_state_and_errors():
    session = _DummySession([_DummyResponse(422, {"message": "bad"})])
    client = GitHubRestClient(token="tkn", repo="acme/widgets", session=session, retry=NO_RETRY)
    with pytest.raises(ValueError):
        client.create_status(sha="abc", state="green", context="x")
    with pytest.raises(GitHubAPIError):
        client.create_status(sha="abc", state="error", context="x")


def test_github_client_overrides_default_session_headers():
    client = GitHubRestClient(token="tkn", repo="acme/widgets")
    headers = client._session.headers
    assert headers["Accept"] == "application/vnd.github+json"
    assert headers["User-Agent"].startswith("asanalink-rest/")
    assert headers["Authorization"] == "Bearer tkn"
