"""Action handlers: one coroutine per :class:`ActionKind`.

Each handler receives the parsed references, the task client and the host,
re-reads remote state before deciding whether to write, and returns the list
of identifiers it processed (append order). Failures that concern a single
reference or move target are logged through the host and never abort the
remaining work.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from .errors import ConfigurationError, EnumResolutionError, TransportError, redact
from .host import Host
from .models import CustomField, MoveTarget, RemoteTask, TaskReference
from .task_client import TaskClient, find_comment

LINK_STATUS_CONTEXT = "asana-link-presence"
TASK_PROGRESS_FIELD = "Task Progress"
ENUM_FIELD_TYPES = frozenset({"enum"})
NUMBER_FIELD_TYPES = frozenset({"number"})


class ActionKind(str, Enum):
    ASSERT_LINK = "assert-link"
    ADD_COMMENT = "add-comment"
    REMOVE_COMMENT = "remove-comment"
    COMPLETE_TASK = "complete-task"
    MOVE_SECTION = "move-section"
    UPDATE_CUSTOM_FIELD = "update-custom-field"
    CHANGE_TASK_PROGRESS = "change-task-progress"

    @classmethod
    def from_name(cls, name: str) -> ActionKind:
        try:
            return cls(name.strip())
        except ValueError:
            known = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(f"unexpected action {name!r} (expected one of: {known})") from None


class StatusPublisher(Protocol):
    def create_status(
        self,
        *,
        sha: str,
        state: str,
        context: str,
        description: str | None = None,
        target_url: str | None = None,
    ) -> dict[str, Any]: ...


@dataclass
class ActionContext:
    client: TaskClient
    host: Host
    references: list[TaskReference] = field(default_factory=list)


@dataclass
class AssertLinkSettings:
    link_required: bool
    publisher: StatusPublisher
    sha: str


@dataclass
class AddCommentSettings:
    text: str
    comment_id: str = ""
    is_pinned: bool = False


@dataclass
class RemoveCommentSettings:
    comment_id: str


@dataclass
class CompleteTaskSettings:
    is_complete: bool


@dataclass
class MoveSectionSettings:
    targets: list[MoveTarget]


@dataclass
class UpdateCustomFieldSettings:
    field_name: str
    content: str


@dataclass
class ChangeTaskProgressSettings:
    state: str


def _failure(host: Host, what: str, task_id: str, exc: BaseException) -> None:
    host.error(f"{what} failed for task {task_id}: {redact(str(exc))}")


# ---- assert-link ---------------------------------------------------------


def link_status_state(link_required: bool, reference_count: int) -> str:
    return "success" if not link_required or reference_count > 0 else "error"


async def assert_link(ctx: ActionContext, settings: AssertLinkSettings) -> list[str]:
    state = link_status_state(settings.link_required, len(ctx.references))
    description = "asana link found" if ctx.references else "asana link not found"
    ctx.host.info(f"setting {state} for {settings.sha}")
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(
            None,
            functools.partial(
                settings.publisher.create_status,
                sha=settings.sha,
                state=state,
                context=LINK_STATUS_CONTEXT,
                description=description,
            ),
        )
    except TransportError as exc:
        ctx.host.set_failed(f"Could not set {LINK_STATUS_CONTEXT} status: {redact(str(exc))}")
    return [ref.task_id for ref in ctx.references]


# ---- comments ------------------------------------------------------------


def compose_comment_text(text: str, comment_id: str) -> str:
    if comment_id:
        return f"{text}\n{comment_id}\n"
    return text


async def add_comment(ctx: ActionContext, settings: AddCommentSettings) -> list[str]:
    created: list[str] = []
    body = compose_comment_text(settings.text, settings.comment_id)
    for ref in ctx.references:
        try:
            if settings.comment_id:
                existing = await find_comment(ctx.client, ref.task_id, settings.comment_id)
                if existing is not None:
                    ctx.host.info(f"found existing comment {existing.gid}")
                    continue
            comment = await ctx.client.add_comment(ref.task_id, body, settings.is_pinned)
        except TransportError as exc:
            _failure(ctx.host, "add-comment", ref.task_id, exc)
            continue
        ctx.host.info(f"added comment {comment.gid} to task {ref.task_id}")
        created.append(comment.gid)
    return created


async def remove_comment(ctx: ActionContext, settings: RemoveCommentSettings) -> list[str]:
    removed: list[str] = []
    for ref in ctx.references:
        try:
            comment = await find_comment(ctx.client, ref.task_id, settings.comment_id)
            if comment is None:
                continue
            ctx.host.info(f"removing comment {comment.gid}")
            await ctx.client.delete_comment(comment.gid)
        except TransportError as exc:
            _failure(ctx.host, "remove-comment", ref.task_id, exc)
            continue
        removed.append(comment.gid)
    return removed


# ---- completion ----------------------------------------------------------


async def complete_task(ctx: ActionContext, settings: CompleteTaskSettings) -> list[str]:
    completed: list[str] = []
    label = "complete" if settings.is_complete else "incomplete"
    for ref in ctx.references:
        if not ref.close_on_merge:
            continue
        ctx.host.info(f"marking task {ref.task_id} {label}")
        try:
            await ctx.client.set_completed(ref.task_id, settings.is_complete)
        except TransportError as exc:
            _failure(ctx.host, "complete-task", ref.task_id, exc)
            continue
        completed.append(ref.task_id)
    return completed


# ---- sections ------------------------------------------------------------


async def _move_to_target(
    client: TaskClient, host: Host, task: RemoteTask, target: MoveTarget
) -> bool:
    project = task.find_project(name=target.project, gid=target.project_id)
    if project is None:
        host.info(f'This task does not exist in "{target.project or target.project_id}" project')
        return False
    sections = await client.get_sections(project.gid)
    section = next((s for s in sections if s.name == target.section), None)
    if section is None:
        host.error(f"Asana section {target.section} not found.")
        return False
    current = task.section_in(project.gid)
    if current is not None and current.gid == section.gid:
        host.info(f"Already in: {project.name or project.gid}/{target.section}")
        return True
    await client.add_task_to_section(section.gid, task.gid or "")
    host.info(f"Moved to: {project.name or project.gid}/{target.section}")
    return True


async def move_section(ctx: ActionContext, settings: MoveSectionSettings) -> list[str]:
    moved: list[str] = []
    for ref in ctx.references:
        try:
            task = await ctx.client.get_task(ref.task_id)
        except TransportError as exc:
            _failure(ctx.host, "move-section", ref.task_id, exc)
            continue
        if not task.gid:
            task.gid = ref.task_id
        outcomes = await asyncio.gather(
            *(_move_to_target(ctx.client, ctx.host, task, target) for target in settings.targets),
            return_exceptions=True,
        )
        for target, outcome in zip(settings.targets, outcomes):
            if isinstance(outcome, BaseException):
                ctx.host.error(
                    f"Moving task {ref.task_id} to {target.label()} failed: {redact(str(outcome))}"
                )
        moved.append(ref.task_id)
    return moved


# ---- custom fields -------------------------------------------------------


def resolve_field_value(custom_field: CustomField, content: str) -> Any:
    """Translate ``content`` into the value Asana expects for ``custom_field``."""
    if custom_field.type in ENUM_FIELD_TYPES:
        matches = [opt for opt in custom_field.enum_options if opt.name == content]
        enabled = [opt for opt in matches if opt.enabled]
        chosen = (enabled or matches or [None])[0]
        if chosen is None:
            raise EnumResolutionError(custom_field.name, content)
        return chosen.gid
    if custom_field.type in NUMBER_FIELD_TYPES:
        try:
            number = float(content)
        except ValueError:
            raise ValueError(
                f"Custom field {custom_field.name!r} expects a number, got {content!r}"
            ) from None
        return int(number) if number.is_integer() else number
    return content


async def update_custom_field_for_task(
    client: TaskClient, host: Host, task_id: str, field_name: str, content: str
) -> bool:
    """Fetch, compare, write. Returns True when a write happened."""
    task = await client.get_task(task_id)
    target = task.find_custom_field(field_name)
    if target is None:
        host.info(f'The custom field "{field_name}" does not exist in project')
        return False
    if (target.display_value or "") == content:
        host.info(f"Custom field {field_name} already set to: {content}")
        return False
    value = resolve_field_value(target, content)
    await client.update_task(task_id, {"custom_fields": {target.gid: value}})
    host.info(f"Custom fields {field_name} updated to: {content}")
    return True


async def _update_references(
    ctx: ActionContext, references: list[TaskReference], field_name: str, content: str
) -> list[str]:
    updated: list[str] = []
    for ref in references:
        try:
            await update_custom_field_for_task(ctx.client, ctx.host, ref.task_id, field_name, content)
        except ValueError as exc:
            ctx.host.error(f"Error updating custom field {field_name}: {exc}")
        except TransportError as exc:
            _failure(ctx.host, f"updating custom field {field_name}", ref.task_id, exc)
            continue
        updated.append(ref.task_id)
    return updated


async def update_custom_field(ctx: ActionContext, settings: UpdateCustomFieldSettings) -> list[str]:
    return await _update_references(ctx, ctx.references, settings.field_name, settings.content)


async def change_task_progress(
    ctx: ActionContext, settings: ChangeTaskProgressSettings
) -> list[str]:
    ctx.host.warning(
        "Setting the custom Task Progress field is deprecated!\n"
        "Instead, move the task to the appropriate section using the `move-section` action."
    )
    closing = [ref for ref in ctx.references if ref.close_on_merge]
    return await _update_references(ctx, closing, TASK_PROGRESS_FIELD, settings.state)


__all__ = [
    "ActionContext",
    "ActionKind",
    "AddCommentSettings",
    "AssertLinkSettings",
    "ChangeTaskProgressSettings",
    "CompleteTaskSettings",
    "LINK_STATUS_CONTEXT",
    "MoveSectionSettings",
    "RemoveCommentSettings",
    "StatusPublisher",
    "TASK_PROGRESS_FIELD",
    "UpdateCustomFieldSettings",
    "add_comment",
    "assert_link",
    "change_task_progress",
    "complete_task",
    "compose_comment_text",
    "link_status_state",
    "move_section",
    "remove_comment",
    "resolve_field_value",
    "update_custom_field",
    "update_custom_field_for_task",
]
