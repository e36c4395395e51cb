"""JSON Schemas for structured action inputs."""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"

TARGETS_SCHEMA: dict[str, Any] = {
    SCHEMA_KEY: SCHEMA_URL,
    "title": "MoveTargets",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["section"],
        "properties": {
            "project": {"type": "string", "minLength": 1},
            "projectId": {"type": ["string", "integer"]},
            "section": {"type": "string", "minLength": 1},
        },
        "anyOf": [{"required": ["project"]}, {"required": ["projectId"]}],
    },
}

_TARGETS_VALIDATOR = Draft7Validator(TARGETS_SCHEMA)


def targets_errors(document: Any) -> list[str]:
    """Return human-readable validation errors for a ``targets`` document."""
    errors = sorted(_TARGETS_VALIDATOR.iter_errors(document), key=lambda e: list(e.path))
    messages: list[str] = []
    for err in errors:
        location = "/".join(str(p) for p in err.path) or "<root>"
        messages.append(f"{location}: {err.message}")
    return messages


__all__ = ["TARGETS_SCHEMA", "targets_errors"]
