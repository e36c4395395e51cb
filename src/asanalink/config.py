from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .asana_rest import DEFAULT_API_URL as ASANA_API_URL
from .errors import ConfigurationError
from .github_rest import DEFAULT_API_URL as GITHUB_API_URL
from .retry import RetryConfig

CONFIG_DEFAULT = "asanalink.config.yaml"
CONFIG_ENV = "ASANALINK_CONFIG"

# Input names accepted in place of the canonical ones (older workflow files).
INPUT_ALIASES: dict[str, tuple[str, ...]] = {
    "task-tracker-token": ("asana-pat",),
    "host-token": ("github-token",),
}


@dataclass
class LinkConfig:
    source_file: Path | None = None
    asana_base_url: str = ASANA_API_URL
    github_api_url: str = GITHUB_API_URL
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    retry_attempts: int | None = None
    retry_base_sleep: float | None = None
    inputs: dict[str, str] = field(default_factory=dict)

    def retry_config(self) -> RetryConfig:
        cfg = RetryConfig()
        if self.retry_attempts is not None:
            cfg.attempts = self.retry_attempts
        if self.retry_base_sleep is not None:
            cfg.base_sleep = self.retry_base_sleep
        return cfg


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        return os.getenv(value[1:], value)
    return value


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_config(path: str | Path) -> LinkConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f'Configuration file not found: {p}')
    try:
        loaded = yaml.safe_load(p.read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f'Invalid YAML in {p}: {exc}') from exc
    if not isinstance(loaded, dict):
        raise ConfigurationError(f'Configuration file {p} must contain a mapping')
    raw = cast(dict[str, Any], loaded)
    asana = cast(dict[str, Any], raw.get('asana', {}) or {})
    github = cast(dict[str, Any], raw.get('github', {}) or {})
    logging_config = cast(dict[str, Any], raw.get('logging', {}) or {})
    retry_config = cast(dict[str, Any], raw.get('retry', {}) or {})
    inputs = cast(dict[str, Any], raw.get('inputs', {}) or {})

    attempts = retry_config.get('attempts')
    base_sleep = retry_config.get('base_sleep')
    return LinkConfig(
        source_file=p,
        asana_base_url=str(asana.get('base_url', ASANA_API_URL)),
        github_api_url=str(github.get('api_url', GITHUB_API_URL)),
        logging_json_enabled=bool(logging_config.get('json_enabled', False)),
        logging_level=str(logging_config.get('level', 'INFO')),
        retry_attempts=int(attempts) if attempts is not None else None,
        retry_base_sleep=float(base_sleep) if base_sleep is not None else None,
        inputs={
            str(k): _stringify(_resolve_env_var(v)) for k, v in inputs.items() if v is not None
        },
    )


def discover_config(explicit: str | None = None) -> LinkConfig:
    """Load ``explicit``, ``$ASANALINK_CONFIG`` or ``./asanalink.config.yaml``.

    Only an explicitly requested file must exist; otherwise defaults apply.
    """
    if explicit:
        return load_config(explicit)
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return load_config(env_path)
    if Path(CONFIG_DEFAULT).exists():
        return load_config(CONFIG_DEFAULT)
    return LinkConfig()


__all__ = ["CONFIG_DEFAULT", "INPUT_ALIASES", "LinkConfig", "discover_config", "load_config"]
