"""Bridge between the CI host and the action handlers.

One :class:`Dispatcher` run:

1. reads ``task-tracker-token`` and ``action`` and resolves the action kind;
2. reads only the inputs the selected action needs (missing required
   inputs are fatal before any remote call);
3. parses the pull request body into task references;
4. builds and verifies the task client, then awaits the handler;
5. logs the result list and publishes it as the ``result`` output.

Configuration and authentication failures mark the host as failed; every
other failure is contained inside the handlers.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .actions import (
    ActionContext,
    ActionKind,
    AddCommentSettings,
    AssertLinkSettings,
    ChangeTaskProgressSettings,
    CompleteTaskSettings,
    MoveSectionSettings,
    RemoveCommentSettings,
    StatusPublisher,
    UpdateCustomFieldSettings,
    add_comment,
    assert_link,
    change_task_progress,
    complete_task,
    move_section,
    remove_comment,
    update_custom_field,
)
from .asana_rest import AsanaRestClient
from .config import INPUT_ALIASES, LinkConfig
from .env_auth import EnvironmentAuthManager, create_env_auth_manager
from .errors import AuthenticationError, ConfigurationError, TransportError, classify_error
from .github_rest import GitHubRestClient
from .host import Host
from .logging import get_logger
from .models import MoveTarget, TaskReference
from .parser import parse_references
from .schemas import targets_errors
from .task_client import AsanaTaskClient, ManagedTaskClient

ClientFactory = Callable[[str], ManagedTaskClient]
PublisherFactory = Callable[[str, str], StatusPublisher]
Handler = Callable[[ActionContext, Any], Awaitable[list[str]]]

RESULT_OUTPUT = "result"


def parse_flag(value: str) -> bool:
    return value.strip().lower() == "true"


def parse_targets(raw: str) -> list[MoveTarget]:
    """Decode the ``targets`` input into validated :class:`MoveTarget` records."""
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"targets is not valid JSON: {exc}") from exc
    problems = targets_errors(document)
    if problems:
        raise ConfigurationError("invalid targets: " + "; ".join(problems))
    targets: list[MoveTarget] = []
    for entry in document:
        project_id = entry.get("projectId")
        targets.append(
            MoveTarget(
                section=entry["section"],
                project=entry.get("project"),
                project_id=str(project_id) if project_id is not None else None,
            )
        )
    return targets


@dataclass
class _Route:
    handler: Handler
    resolve: Callable[[Dispatcher], Any]


class Dispatcher:
    def __init__(
        self,
        host: Host,
        config: LinkConfig | None = None,
        *,
        client_factory: ClientFactory | None = None,
        publisher_factory: PublisherFactory | None = None,
        env_auth: EnvironmentAuthManager | None = None,
    ):
        self.host = host
        self.config = config or LinkConfig()
        self.client_factory = client_factory or self._asana_client
        self.publisher_factory = publisher_factory or self._github_publisher
        self._env_auth = env_auth
        self.logger = get_logger()

    # ---- inputs ---------------------------------------------------------
    def _env_token(self, name: str) -> str | None:
        if name not in INPUT_ALIASES:
            return None
        if self._env_auth is None:
            self._env_auth = create_env_auth_manager()
        if name == "task-tracker-token":
            return self._env_auth.get_asana_token()
        return self._env_auth.get_github_token()

    def input(self, name: str, required: bool = False) -> str:
        """Host value, then legacy aliases, then config defaults, then env tokens."""
        names = (name, *INPUT_ALIASES.get(name, ()))
        for candidate in names:
            value = self.host.get_input(candidate)
            if value:
                return value
        for candidate in names:
            value = self.config.inputs.get(candidate, "").strip()
            if value:
                return value
        value = self._env_token(name) or ""
        if required and not value:
            raise ConfigurationError(f"Input required and not supplied: {name}")
        return value

    # ---- per-action settings ---------------------------------------------
    def _assert_link_settings(self) -> AssertLinkSettings:
        token = self.input("host-token", required=True)
        link_required = parse_flag(self.input("link-required", required=True))
        pr = self.host.pull_request
        repository = self.host.repository
        if pr is None or not pr.head_sha:
            raise ConfigurationError("assert-link needs the pull request head commit")
        if repository is None:
            raise ConfigurationError("assert-link needs the repository owner/name")
        return AssertLinkSettings(
            link_required=link_required,
            publisher=self.publisher_factory(token, repository.full_name),
            sha=pr.head_sha,
        )

    def _add_comment_settings(self) -> AddCommentSettings:
        return AddCommentSettings(
            comment_id=self.input("comment-id"),
            text=self.input("text", required=True),
            is_pinned=parse_flag(self.input("is-pinned")),
        )

    def _remove_comment_settings(self) -> RemoveCommentSettings:
        return RemoveCommentSettings(comment_id=self.input("comment-id", required=True))

    def _complete_task_settings(self) -> CompleteTaskSettings:
        return CompleteTaskSettings(is_complete=parse_flag(self.input("is-complete")))

    def _move_section_settings(self) -> MoveSectionSettings:
        return MoveSectionSettings(targets=parse_targets(self.input("targets", required=True)))

    def _update_custom_field_settings(self) -> UpdateCustomFieldSettings:
        return UpdateCustomFieldSettings(
            content=self.input("content", required=True),
            field_name=self.input("field-name", required=True),
        )

    def _change_task_progress_settings(self) -> ChangeTaskProgressSettings:
        return ChangeTaskProgressSettings(state=self.input("state", required=True))

    # ---- clients --------------------------------------------------------
    def _asana_client(self, token: str) -> ManagedTaskClient:
        rest = AsanaRestClient(
            token=token,
            base_url=self.config.asana_base_url,
            retry=self.config.retry_config(),
        )
        return AsanaTaskClient(rest)

    def _github_publisher(self, token: str, repo: str) -> StatusPublisher:
        return GitHubRestClient(
            token=token,
            repo=repo,
            base_url=self.config.github_api_url,
            retry=self.config.retry_config(),
        )

    # ---- run ------------------------------------------------------------
    def references(self) -> list[TaskReference]:
        pr = self.host.pull_request
        if pr is None:
            raise ConfigurationError("No pull_request found in the triggering event payload")
        trigger = self.input("trigger-phrase")
        refs = parse_references(
            pr.body,
            trigger,
            trigger_is_pattern=parse_flag(self.input("trigger-is-pattern")),
        )
        self.host.info(
            f"found {len(refs)} taskIds: " + ", ".join(ref.task_id for ref in refs)
        )
        return refs

    async def run_async(self) -> list[str]:
        token = self.input("task-tracker-token", required=True)
        kind = ActionKind.from_name(self.input("action", required=True))
        route = ROUTES[kind]
        settings = route.resolve(self)
        references = self.references()

        client = self.client_factory(token)
        async with client:
            try:
                await client.verify()
            except AuthenticationError:
                raise
            except TransportError as exc:
                raise AuthenticationError(
                    f"client authorization failed: {exc}", status=exc.status
                ) from exc
            self.host.info(f"calling {kind.value}")
            ctx = ActionContext(client=client, host=self.host, references=references)
            with self.logger.timed_operation("action", action=kind.value):
                result = await route.handler(ctx, settings)

        self.host.info(f"{kind.value} processed {len(result)} item(s): {', '.join(result)}")
        self.host.set_output(RESULT_OUTPUT, json.dumps(result))
        return result

    def run(self) -> list[str] | None:
        """Run one invocation; returns None when the run was marked failed."""
        try:
            return asyncio.run(self.run_async())
        except (ConfigurationError, AuthenticationError) as exc:
            info = classify_error(exc)
            self.logger.debug("fatal error", category=info.category)
            self.host.set_failed(info.message)
            return None


ROUTES: dict[ActionKind, _Route] = {
    ActionKind.ASSERT_LINK: _Route(assert_link, Dispatcher._assert_link_settings),
    ActionKind.ADD_COMMENT: _Route(add_comment, Dispatcher._add_comment_settings),
    ActionKind.REMOVE_COMMENT: _Route(remove_comment, Dispatcher._remove_comment_settings),
    ActionKind.COMPLETE_TASK: _Route(complete_task, Dispatcher._complete_task_settings),
    ActionKind.MOVE_SECTION: _Route(move_section, Dispatcher._move_section_settings),
    ActionKind.UPDATE_CUSTOM_FIELD: _Route(
        update_custom_field, Dispatcher._update_custom_field_settings
    ),
    ActionKind.CHANGE_TASK_PROGRESS: _Route(
        change_task_progress, Dispatcher._change_task_progress_settings
    ),
}


__all__ = ["Dispatcher", "ROUTES", "RESULT_OUTPUT", "parse_flag", "parse_targets"]
