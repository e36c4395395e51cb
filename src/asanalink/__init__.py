"""asana-link - link GitHub pull requests to Asana tasks.

from asanalink import parse_references, Dispatcher, MemoryHost

refs = parse_references(pr_body, "**Asana Task:**")
host = MemoryHost(inputs={"action": "complete-task", ...}, pr=PullRequest(body=pr_body))
Dispatcher(host).run()

The GitHub Action (``action.yml``) calls the ``asanalink run`` CLI, which
wires an :class:`ActionsHost` to the same dispatcher.
"""

from __future__ import annotations

from .actions import ActionKind
from .config import LinkConfig, load_config
from .dispatcher import Dispatcher
from .errors import ConfigurationError
from .host import ActionsHost, MemoryHost, PullRequest, Repository
from .models import MoveTarget, TaskReference
from .parser import parse_references

__version__ = "0.3.0"

__all__ = [
    "ActionKind",
    "ActionsHost",
    "ConfigurationError",
    "Dispatcher",
    "LinkConfig",
    "MemoryHost",
    "MoveTarget",
    "PullRequest",
    "Repository",
    "TaskReference",
    "load_config",
    "parse_references",
    "__version__",
]
