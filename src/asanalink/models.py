from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TaskReference:
    """One Asana task linked from a pull request body.

    Produced once per match by :func:`asanalink.parser.parse_references`, in
    order of appearance. Duplicate task ids are kept as separate entries.
    """

    task_id: str
    close_on_merge: bool = False


@dataclass(frozen=True)
class MoveTarget:
    section: str
    project: str | None = None
    project_id: str | None = None

    def label(self) -> str:
        return f"{self.project or self.project_id}/{self.section}"


@dataclass
class ProjectRef:
    gid: str
    name: str


@dataclass
class EnumOption:
    gid: str
    name: str
    enabled: bool = True


@dataclass
class CustomField:
    gid: str
    name: str
    type: str
    display_value: str | None = None
    enum_options: list[EnumOption] = field(default_factory=list)


@dataclass
class Membership:
    project: ProjectRef
    section: ProjectRef | None = None


@dataclass
class RemoteTask:
    """Snapshot of a task as returned by the tracker.

    Never cached between decisions; handlers fetch a fresh copy before every
    write they might perform.
    """

    gid: str
    name: str = ""
    completed: bool = False
    projects: list[ProjectRef] = field(default_factory=list)
    custom_fields: list[CustomField] = field(default_factory=list)
    memberships: list[Membership] = field(default_factory=list)

    def find_project(self, *, name: str | None = None, gid: str | None = None) -> ProjectRef | None:
        for project in self.projects:
            if gid is not None and project.gid == gid:
                return project
            if name is not None and project.name == name:
                return project
        return None

    def section_in(self, project_gid: str) -> ProjectRef | None:
        for membership in self.memberships:
            if membership.project.gid == project_gid:
                return membership.section
        return None

    def find_custom_field(self, name: str) -> CustomField | None:
        for custom_field in self.custom_fields:
            if custom_field.name == name:
                return custom_field
        return None


@dataclass
class Section:
    gid: str
    name: str


@dataclass
class Comment:
    gid: str
    text: str = ""


def _ref(raw: Any) -> ProjectRef | None:
    if not isinstance(raw, dict):
        return None
    return ProjectRef(gid=str(raw.get("gid", "")), name=str(raw.get("name") or ""))


def task_from_payload(data: dict[str, Any]) -> RemoteTask:
    """Build a :class:`RemoteTask` from an Asana ``/tasks/{gid}`` payload."""
    projects = [p for p in (_ref(raw) for raw in data.get("projects") or []) if p]
    fields: list[CustomField] = []
    for raw in data.get("custom_fields") or []:
        if not isinstance(raw, dict):
            continue
        options = [
            EnumOption(
                gid=str(opt.get("gid", "")),
                name=str(opt.get("name") or ""),
                enabled=bool(opt.get("enabled", True)),
            )
            for opt in raw.get("enum_options") or []
            if isinstance(opt, dict)
        ]
        fields.append(
            CustomField(
                gid=str(raw.get("gid", "")),
                name=str(raw.get("name") or ""),
                type=str(raw.get("resource_subtype") or raw.get("type") or "text"),
                display_value=raw.get("display_value"),
                enum_options=options,
            )
        )
    memberships: list[Membership] = []
    for raw in data.get("memberships") or []:
        if not isinstance(raw, dict):
            continue
        project = _ref(raw.get("project"))
        if project is None:
            continue
        memberships.append(Membership(project=project, section=_ref(raw.get("section"))))
    return RemoteTask(
        gid=str(data.get("gid", "")),
        name=str(data.get("name") or ""),
        completed=bool(data.get("completed", False)),
        projects=projects,
        custom_fields=fields,
        memberships=memberships,
    )


__all__ = [
    "TaskReference",
    "MoveTarget",
    "ProjectRef",
    "EnumOption",
    "CustomField",
    "Membership",
    "RemoteTask",
    "Section",
    "Comment",
    "task_from_payload",
]
