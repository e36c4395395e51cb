"""Async task-tracker facade consumed by the action handlers.

:class:`TaskClient` is the capability surface the engine depends on. The
Asana implementation drives the blocking :class:`AsanaRestClient` through the
event loop's executor so handlers can ``await`` each remote call and fan out
with ``asyncio.gather`` where targets are independent.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from types import TracebackType
from typing import Any, Protocol, TypeVar

from .asana_rest import AsanaRestClient
from .logging import get_logger
from .models import Comment, RemoteTask, Section, task_from_payload

T = TypeVar("T")

COMMENT_SEARCH_LIMIT = 200


class TaskClient(Protocol):
    async def get_task(self, task_id: str) -> RemoteTask: ...

    async def get_sections(self, project_id: str) -> list[Section]: ...

    async def get_comments(self, task_id: str, limit: int = COMMENT_SEARCH_LIMIT) -> list[Comment]: ...

    async def add_comment(self, task_id: str, text: str, is_pinned: bool = False) -> Comment: ...

    async def delete_comment(self, comment_id: str) -> None: ...

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None: ...

    async def add_task_to_section(self, section_id: str, task_id: str) -> None: ...

    async def set_completed(self, task_id: str, completed: bool) -> None: ...


class ManagedTaskClient(TaskClient, Protocol):
    """TaskClient with an async lifecycle and an upfront credential check."""

    async def __aenter__(self) -> ManagedTaskClient: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...

    async def verify(self) -> None: ...


async def find_comment(
    client: TaskClient, task_id: str, marker: str, limit: int = COMMENT_SEARCH_LIMIT
) -> Comment | None:
    """Return the first comment whose text contains ``marker``."""
    for comment in await client.get_comments(task_id, limit):
        if marker in comment.text:
            return comment
    return None


class AsanaTaskClient:
    """TaskClient backed by the Asana REST API."""

    def __init__(self, rest: AsanaRestClient, max_workers: int = 4):
        self.rest = rest
        self.max_workers = max_workers
        self.logger = get_logger()
        self._executor: ThreadPoolExecutor | None = None

    async def __aenter__(self) -> AsanaTaskClient:
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))

    async def verify(self) -> None:
        me = await self._call(self.rest.verify)
        self.logger.debug("authenticated with Asana", user=me.get("gid"))

    async def get_task(self, task_id: str) -> RemoteTask:
        return task_from_payload(await self._call(self.rest.get_task, task_id))

    async def get_sections(self, project_id: str) -> list[Section]:
        raw = await self._call(self.rest.get_sections, project_id)
        return [Section(gid=str(s.get("gid", "")), name=str(s.get("name") or "")) for s in raw]

    async def get_comments(self, task_id: str, limit: int = COMMENT_SEARCH_LIMIT) -> list[Comment]:
        raw = await self._call(self.rest.get_stories, task_id, limit=limit)
        return [Comment(gid=str(s.get("gid", "")), text=str(s.get("text") or "")) for s in raw]

    async def add_comment(self, task_id: str, text: str, is_pinned: bool = False) -> Comment:
        raw = await self._call(self.rest.create_story, task_id, text=text, is_pinned=is_pinned)
        return Comment(gid=str(raw.get("gid", "")), text=str(raw.get("text") or text))

    async def delete_comment(self, comment_id: str) -> None:
        await self._call(self.rest.delete_story, comment_id)

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await self._call(self.rest.update_task, task_id, fields)

    async def add_task_to_section(self, section_id: str, task_id: str) -> None:
        await self._call(self.rest.add_task_to_section, section_id, task_id)

    async def set_completed(self, task_id: str, completed: bool) -> None:
        await self.update_task(task_id, {"completed": completed})


__all__ = ["TaskClient", "ManagedTaskClient", "AsanaTaskClient", "find_comment", "COMMENT_SEARCH_LIMIT"]
