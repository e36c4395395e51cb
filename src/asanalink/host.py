"""CI host capability: inputs, log lines, failure state, step outputs.

:class:`ActionsHost` speaks the GitHub Actions runner protocol (``INPUT_*``
environment variables, the event payload file, ``GITHUB_OUTPUT``).
:class:`MemoryHost` keeps everything in memory for tests and local runs.
"""

from __future__ import annotations

import json
import os
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .errors import ConfigurationError
from .logging import StructuredLogger, get_logger


@dataclass
class PullRequest:
    body: str
    head_sha: str | None = None


@dataclass
class Repository:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class Host(Protocol):
    def get_input(self, name: str, required: bool = False) -> str: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def set_failed(self, message: str) -> None: ...

    def set_output(self, name: str, value: str) -> None: ...

    @property
    def pull_request(self) -> PullRequest | None: ...

    @property
    def repository(self) -> Repository | None: ...


def _missing_input(name: str) -> ConfigurationError:
    return ConfigurationError(f"Input required and not supplied: {name}")


def pull_request_from_event(event: Mapping[str, Any]) -> PullRequest | None:
    raw = event.get("pull_request")
    if not isinstance(raw, dict):
        return None
    head = raw.get("head") if isinstance(raw.get("head"), dict) else {}
    return PullRequest(
        body=str(raw.get("body") or ""),
        head_sha=head.get("sha") if isinstance(head.get("sha"), str) else None,
    )


def parse_repository(full_name: str | None) -> Repository | None:
    if not full_name or "/" not in full_name:
        return None
    owner, _, repo = full_name.partition("/")
    return Repository(owner=owner, repo=repo)


class ActionsHost:
    """Host backed by the GitHub Actions runner environment."""

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        logger: StructuredLogger | None = None,
        event_path: str | None = None,
    ):
        self.env = env if env is not None else os.environ
        self.logger = logger or get_logger()
        self.event_path = event_path or self.env.get("GITHUB_EVENT_PATH")
        self.failed = False
        self._event: dict[str, Any] | None = None

    def get_input(self, name: str, required: bool = False) -> str:
        key = f"INPUT_{name.replace(' ', '_').upper()}"
        value = self.env.get(key, "").strip()
        if required and not value:
            raise _missing_input(name)
        return value

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    def set_failed(self, message: str) -> None:
        self.failed = True
        self.logger.error(message)

    def set_output(self, name: str, value: str) -> None:
        output_file = self.env.get("GITHUB_OUTPUT")
        if not output_file:
            self.logger.info(f"output {name}={value}")
            return
        delimiter = f"ghadelimiter_{uuid.uuid4()}"
        with open(output_file, "a", encoding="utf-8") as fh:
            fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")

    def _load_event(self) -> dict[str, Any]:
        if self._event is None:
            self._event = {}
            if self.event_path and Path(self.event_path).exists():
                try:
                    loaded = json.loads(Path(self.event_path).read_text(encoding="utf-8"))
                except json.JSONDecodeError as exc:
                    raise ConfigurationError(f"Unreadable event payload {self.event_path}: {exc}") from exc
                if isinstance(loaded, dict):
                    self._event = loaded
        return self._event

    @property
    def pull_request(self) -> PullRequest | None:
        return pull_request_from_event(self._load_event())

    @property
    def repository(self) -> Repository | None:
        return parse_repository(self.env.get("GITHUB_REPOSITORY"))


@dataclass
class MemoryHost:
    """In-memory host; records every log line and output."""

    inputs: dict[str, str] = field(default_factory=dict)
    pr: PullRequest | None = None
    repo: Repository | None = None
    infos: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    outputs: dict[str, str] = field(default_factory=dict)
    failure: str | None = None

    def get_input(self, name: str, required: bool = False) -> str:
        value = (self.inputs.get(name) or "").strip()
        if required and not value:
            raise _missing_input(name)
        return value

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def set_failed(self, message: str) -> None:
        self.failure = message

    def set_output(self, name: str, value: str) -> None:
        self.outputs[name] = value

    @property
    def failed(self) -> bool:
        return self.failure is not None

    @property
    def pull_request(self) -> PullRequest | None:
        return self.pr

    @property
    def repository(self) -> Repository | None:
        return self.repo


__all__ = [
    "ActionsHost",
    "Host",
    "MemoryHost",
    "PullRequest",
    "Repository",
    "parse_repository",
    "pull_request_from_event",
]
