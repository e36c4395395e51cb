"""Extract Asana task references from a pull request body.

The grammar is deliberately explicit and runs in two stages:

1. tokenize: at the start of a line, the trigger phrase, optional
   whitespace (line breaks included), then an Asana task URL of the shape
   ``https://app.asana.com/<workspace>/<project>/<task>`` and the rest of
   that line;
2. look ahead: skip the whitespace after the occurrence and check whether
   the next line starts with the ``- [x] close on merge`` checkbox.

Example body::

    **Asana Task:**
    https://app.asana.com/0/1200000000000001/1200000000000002

    - [x] close on merge
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from .errors import ConfigurationError, ReferenceParseWarning
from .logging import get_logger
from .models import TaskReference

TASK_URL_PATTERN = (
    r"https://app\.asana\.com/(?P<workspace>[0-9]+)/(?P<project>[0-9]+)/(?P<task>[0-9]*)[^\n]*"
)
CLOSE_ON_MERGE_PATTERN = re.compile(r"\s*^-\s\[x\]\s*close on merge", re.MULTILINE)


@dataclass(frozen=True)
class _Occurrence:
    project_id: str
    task_id: str
    end: int


def trigger_expression(trigger_phrase: str, *, is_pattern: bool = False) -> str:
    """Return the regular-expression text matching ``trigger_phrase``.

    The phrase is escaped so ``**Asana Task:**`` matches literally. With
    ``is_pattern`` the caller's text is used verbatim and must compile.
    """
    if not is_pattern:
        return re.escape(trigger_phrase)
    try:
        re.compile(trigger_phrase)
    except re.error as exc:
        raise ConfigurationError(f"Invalid trigger-phrase pattern {trigger_phrase!r}: {exc}") from exc
    return f"(?:{trigger_phrase})" if trigger_phrase else ""


def build_pattern(trigger_phrase: str, *, is_pattern: bool = False) -> re.Pattern[str]:
    trigger = trigger_expression(trigger_phrase, is_pattern=is_pattern)
    try:
        return re.compile(rf"^{trigger}\s*{TASK_URL_PATTERN}", re.MULTILINE)
    except re.error as exc:
        # inline global flags or a reused group name only fail once combined
        raise ConfigurationError(
            f"Invalid trigger-phrase pattern {trigger_phrase!r}: {exc}"
        ) from exc


def _occurrences(body: str, pattern: re.Pattern[str]) -> Iterator[_Occurrence]:
    pos = 0
    while pos <= len(body):
        match = pattern.search(body, pos)
        if match is None:
            return
        yield _Occurrence(
            project_id=match.group("project"),
            task_id=match.group("task"),
            end=match.end(),
        )
        pos = max(match.end(), match.start() + 1)


def _close_marker_end(body: str, pos: int) -> int | None:
    marker = CLOSE_ON_MERGE_PATTERN.match(body, pos)
    return marker.end() if marker else None


def parse_references(
    body: str | None, trigger_phrase: str = "", *, trigger_is_pattern: bool = False
) -> list[TaskReference]:
    if not body:
        return []
    pattern = build_pattern(trigger_phrase, is_pattern=trigger_is_pattern)
    logger = get_logger()
    references: list[TaskReference] = []
    for occurrence in _occurrences(body, pattern):
        if not occurrence.task_id:
            logger.warning(
                f"Invalid Asana task URL after the trigger phrase {trigger_phrase!r}",
                category=ReferenceParseWarning.__name__,
                project_id=occurrence.project_id,
            )
            continue
        close_end = _close_marker_end(body, occurrence.end)
        references.append(
            TaskReference(task_id=occurrence.task_id, close_on_merge=close_end is not None)
        )
    return references


__all__ = [
    "CLOSE_ON_MERGE_PATTERN",
    "TASK_URL_PATTERN",
    "build_pattern",
    "parse_references",
    "trigger_expression",
]
