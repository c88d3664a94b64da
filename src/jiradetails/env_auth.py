"""Environment-based authentication for jiradetails.

Credentials come from environment variables, optionally seeded from a
``.env`` file. The password is never part of ``RunConfig`` or the
YAML config file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    domain_var: str = "JIRA_DOMAIN"
    user_var: str = "JIRA_USER"
    password_var: str = "JIRA_PW"
    password_alternatives: tuple[str, ...] = field(
        default_factory=lambda: ("JIRA_PASSWORD", "JIRA_API_TOKEN")
    )


@dataclass(frozen=True)
class JiraCredentials:
    domain: str
    user: str
    password: str = field(repr=False)


class EnvironmentAuthManager:
    """Reads Jira credentials from the environment and .env files."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self._dotenv_loaded = False

        if config.load_dotenv:
            self._load_dotenv()

    @property
    def dotenv_loaded(self) -> bool:
        return self._dotenv_loaded

    def _load_dotenv(self) -> None:
        """Load .env file if available; existing variables win."""
        candidates = [self.config.dotenv_path] if self.config.dotenv_path else ['.env', '.env.local']
        for location in candidates:
            env_path = Path(location)
            if env_path.exists():
                load_dotenv(str(env_path), override=False)
                self._dotenv_loaded = True
                self.logger.debug(f"Loaded environment variables from {env_path}")
                break

    def get_password(self) -> str | None:
        password = os.getenv(self.config.password_var)
        if password:
            return password
        for alt_var in self.config.password_alternatives:
            password = os.getenv(alt_var)
            if password:
                self.logger.debug(f"Found Jira password in {alt_var}")
                return password
        return None

    def missing_variables(
        self, *, domain: str | None = None, user: str | None = None
    ) -> list[str]:
        """Name the variables still needed; ``domain``/``user`` may come from config."""
        missing: list[str] = []
        if not (domain or os.getenv(self.config.domain_var)):
            missing.append(self.config.domain_var)
        if not (user or os.getenv(self.config.user_var)):
            missing.append(self.config.user_var)
        if not self.get_password():
            missing.append(self.config.password_var)
        return missing

    def get_credentials(
        self, *, domain: str | None = None, user: str | None = None
    ) -> JiraCredentials | None:
        """Return credentials, or ``None`` when anything is missing."""
        missing = self.missing_variables(domain=domain, user=user)
        if missing:
            for name in missing:
                self.logger.debug(f"Missing {name} env variable")
            return None
        return JiraCredentials(
            domain=str(domain or os.getenv(self.config.domain_var)),
            user=str(user or os.getenv(self.config.user_var)),
            password=str(self.get_password()),
        )


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    """Factory function to create environment authentication manager."""
    if config is None:
        config = EnvAuthConfig()
    return EnvironmentAuthManager(config)


__all__ = [
    "EnvAuthConfig",
    "EnvironmentAuthManager",
    "JiraCredentials",
    "create_env_auth_manager",
]
