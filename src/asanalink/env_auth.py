"""Environment-based credentials for local runs.

Inside GitHub Actions the tokens arrive as action inputs. Outside of it
(``asanalink run`` on a laptop) they are read from environment variables,
optionally seeded from a ``.env`` file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

ASANA_TOKEN_VARS = ("ASANA_PAT", "ASANA_TOKEN", "ASANA_ACCESS_TOKEN")
GITHUB_TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None


class EnvironmentAuthManager:
    """Looks up tracker and host credentials in the process environment."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        if config.load_dotenv:
            self._load_dotenv()

    def _load_dotenv(self) -> None:
        candidates = [self.config.dotenv_path] if self.config.dotenv_path else ['.env', '.env.local']
        for location in candidates:
            env_path = Path(location)
            if env_path.exists():
                load_dotenv(str(env_path))
                self.logger.debug(f"Loaded environment variables from {env_path}")
                break

    def _first(self, names: tuple[str, ...]) -> str | None:
        for name in names:
            value = os.getenv(name)
            if value:
                self.logger.debug(f"Found token in {name}")
                return value
        return None

    def get_asana_token(self) -> str | None:
        return self._first(ASANA_TOKEN_VARS)

    def get_github_token(self) -> str | None:
        return self._first(GITHUB_TOKEN_VARS)


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    """Factory function to create environment authentication manager."""
    if config is None:
        config = EnvAuthConfig()
    return EnvironmentAuthManager(config)


__all__ = [
    "ASANA_TOKEN_VARS",
    "GITHUB_TOKEN_VARS",
    "EnvAuthConfig",
    "EnvironmentAuthManager",
    "create_env_auth_manager",
]
