"""Pytest configuration for asana-link tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install, and provides an in-memory task tracker
that records every call the handlers make.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from asanalink.asana_rest import AsanaAPIError  # noqa: E402
from asanalink.errors import AuthenticationError  # noqa: E402
from asanalink.models import (  # noqa: E402
    Comment,
    CustomField,
    Membership,
    ProjectRef,
    RemoteTask,
    Section,
)

# Ensure pytest-asyncio plugin is loaded explicitly
pytest_plugins = ["pytest_asyncio"]


class FakeTaskClient:
    """In-memory stand-in for the Asana task client."""

    def __init__(self) -> None:
        self.tasks: dict[str, RemoteTask] = {}
        self.sections: dict[str, list[Section]] = {}
        self.comments: dict[str, list[Comment]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, set[str]] = {}
        self.reject_token = False
        self.entered = False
        self._next_gid = 5000

    # ---- lifecycle ------------------------------------------------------
    async def __aenter__(self) -> FakeTaskClient:
        self.entered = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.entered = False

    async def verify(self) -> None:
        self.calls.append(("verify", None))
        if self.reject_token:
            raise AuthenticationError("Asana rejected the access token", status=401)

    # ---- helpers --------------------------------------------------------
    def fail_on(self, method: str, key: str) -> None:
        self.failures.setdefault(method, set()).add(key)

    def _check(self, method: str, key: str) -> None:
        self.calls.append((method, key))
        if key in self.failures.get(method, set()):
            raise AsanaAPIError(f"Asana API {method} {key} failed with 500", status=500)

    def writes(self) -> list[tuple[str, Any]]:
        reads = {"verify", "get_task", "get_sections", "get_comments"}
        return [call for call in self.calls if call[0] not in reads]

    # ---- TaskClient -----------------------------------------------------
    async def get_task(self, task_id: str) -> RemoteTask:
        self._check("get_task", task_id)
        if task_id not in self.tasks:
            raise AsanaAPIError(f"Asana API GET /tasks/{task_id} failed with 404", status=404)
        return self.tasks[task_id]

    async def get_sections(self, project_id: str) -> list[Section]:
        self._check("get_sections", project_id)
        return list(self.sections.get(project_id, []))

    async def get_comments(self, task_id: str, limit: int = 200) -> list[Comment]:
        self._check("get_comments", task_id)
        return list(self.comments.get(task_id, []))[:limit]

    async def add_comment(self, task_id: str, text: str, is_pinned: bool = False) -> Comment:
        self._check("add_comment", task_id)
        self._next_gid += 1
        comment = Comment(gid=str(self._next_gid), text=text)
        self.comments.setdefault(task_id, []).append(comment)
        return comment

    async def delete_comment(self, comment_id: str) -> None:
        self._check("delete_comment", comment_id)
        for entries in self.comments.values():
            entries[:] = [c for c in entries if c.gid != comment_id]

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        self._check("update_task", task_id)
        task = self.tasks[task_id]
        if "completed" in fields:
            task.completed = bool(fields["completed"])
        for field_gid, value in (fields.get("custom_fields") or {}).items():
            for custom_field in task.custom_fields:
                if custom_field.gid != field_gid:
                    continue
                options = {opt.gid: opt.name for opt in custom_field.enum_options}
                custom_field.display_value = options.get(value, str(value))

    async def add_task_to_section(self, section_id: str, task_id: str) -> None:
        self._check("add_task_to_section", section_id)
        task = self.tasks[task_id]
        for project_id, sections in self.sections.items():
            for section in sections:
                if section.gid != section_id:
                    continue
                task.memberships = [m for m in task.memberships if m.project.gid != project_id]
                project = task.find_project(gid=project_id) or ProjectRef(project_id, "")
                task.memberships.append(
                    Membership(project=project, section=ProjectRef(section.gid, section.name))
                )

    async def set_completed(self, task_id: str, completed: bool) -> None:
        await self.update_task(task_id, {"completed": completed})


def make_task(gid: str, *, projects: list[tuple[str, str]] | None = None,
              custom_fields: list[CustomField] | None = None) -> RemoteTask:
    return RemoteTask(
        gid=gid,
        name=f"task {gid}",
        projects=[ProjectRef(pid, name) for pid, name in (projects or [])],
        custom_fields=list(custom_fields or []),
    )


@pytest.fixture
def tracker() -> FakeTaskClient:
    return FakeTaskClient()


@pytest.fixture
def task_factory():  # type: ignore[no-untyped-def]
    return make_task


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # Each test gets a logger bound to its own captured stdout.
    import asanalink.logging as structured_logging

    monkeypatch.setattr(structured_logging, "_GLOBAL", None)
