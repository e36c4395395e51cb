"""asana-link CLI.

Subcommands:
  run    -> execute the configured action (default; what the GitHub Action calls)
  parse  -> print the task references found in a pull request body (no network)

Inside GitHub Actions every input arrives as ``INPUT_<NAME>``; ``--action``
and ``--input NAME=VALUE`` override them for local runs.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from asanalink.config import discover_config
from asanalink.dispatcher import Dispatcher
from asanalink.errors import ConfigurationError, redact
from asanalink.host import ActionsHost
from asanalink.logging import configure_logging
from asanalink.parser import parse_references

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="asanalink", description="Link GitHub pull requests to Asana tasks"
    )
    p.add_argument("--config", help="YAML config file (env: ASANALINK_CONFIG)")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors (env: ASANALINK_QUIET=1)",
    )
    p.set_defaults(cmd="run", action=None, inputs=[], event_path=None)
    sub = p.add_subparsers(dest="cmd", parser_class=_FormatterArgumentParser, metavar="<command>")

    pr = sub.add_parser("run", help="Execute the configured action")
    pr.add_argument("--action", help="Override the action input")
    pr.add_argument(
        "--input",
        dest="inputs",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Override an action input (repeatable)",
    )
    pr.add_argument("--event-path", help="Event payload JSON (default: $GITHUB_EVENT_PATH)")

    pp = sub.add_parser("parse", help="Print task references found in a PR body")
    pp.add_argument("--body-file", default="-", help="File holding the PR body ('-' for stdin)")
    pp.add_argument("--trigger-phrase", default="")
    pp.add_argument("--trigger-is-pattern", action="store_true")
    return p


def _input_env(overrides: Sequence[str], action: str | None) -> dict[str, str]:
    env = dict(os.environ)
    if action:
        env["INPUT_ACTION"] = action
    for item in overrides:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ConfigurationError(f"--input expects NAME=VALUE, got {item!r}")
        env[f"INPUT_{name.strip().replace(' ', '_').upper()}"] = value
    return env


def _cmd_run(args: argparse.Namespace) -> int:
    quiet = args.quiet or os.environ.get("ASANALINK_QUIET") == "1"
    try:
        cfg = discover_config(args.config)
        env = _input_env(args.inputs, args.action)
    except ConfigurationError as exc:
        print(f"::error::{redact(str(exc))}", file=sys.stderr)
        return 1
    logger = configure_logging(
        json_logging=args.json_logs or cfg.logging_json_enabled,
        level="WARNING" if quiet else cfg.logging_level,
        actions=env.get("GITHUB_ACTIONS") == "true",
    )
    host = ActionsHost(env=env, logger=logger, event_path=args.event_path)
    try:
        result = Dispatcher(host, cfg).run()
    except Exception as exc:
        host.set_failed(f"asanalink failed: {redact(str(exc))}")
        return 1
    return 1 if result is None or host.failed else 0


def _cmd_parse(args: argparse.Namespace) -> int:
    if args.body_file == "-":
        body = sys.stdin.read()
    else:
        with open(args.body_file, encoding="utf-8") as fh:
            body = fh.read()
    try:
        refs = parse_references(
            body, args.trigger_phrase, trigger_is_pattern=args.trigger_is_pattern
        )
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    print(json.dumps([asdict(ref) for ref in refs], indent=2))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.cmd == "parse":
        return _cmd_parse(args)
    return _cmd_run(args)


__all__ = ["main"]
