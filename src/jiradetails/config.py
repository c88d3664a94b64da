"""Run configuration.

Settings come from four layers, highest precedence first: command-line
overrides, environment variables, an optional YAML file and built-in
defaults. The result is a frozen :class:`RunConfig` built once at startup and
handed to whoever needs it; nothing reads flags from module state.

Example file (``~/.config/jiradetails/config.yaml``)::

    jira:
      domain: https://jira.example.com
      user: $JIRA_USER
      verify_tls: true
      timeout: 30
      batch_size: 100
    cache:
      path: ~/.cache/jira.cache
    output:
      mode: table        # table | html | markdown | summary | current
      color: auto        # auto | true | false
    logging:
      level: WARNING
      json_enabled: false

The Jira password is never read from this file; see ``env_auth``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, cast

import yaml

from .cache_store import DEFAULT_CACHE_PATH
from .errors import ConfigError
from .fetcher import DEFAULT_BATCH_SIZE
from .jira_rest import DEFAULT_TIMEOUT
from .ux import supports_color

DEFAULT_CONFIG_PATH = Path("~/.config/jiradetails/config.yaml")
_FALSE_WORDS = {"0", "false", "no", "off"}
_TRUE_WORDS = {"1", "true", "yes", "on"}


class OutputMode(str, Enum):
    TABLE = "table"
    HTML = "html"
    MARKDOWN = "markdown"
    SUMMARY = "summary"
    CURRENT = "current"

    @classmethod
    def parse(cls, value: Any) -> OutputMode:
        if isinstance(value, OutputMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(m.value for m in cls)
            raise ConfigError(f"Unknown output mode {value!r} (expected one of {choices})") from exc


@dataclass(frozen=True)
class PresentationConfig:
    mode: OutputMode = OutputMode.TABLE
    color: bool = False
    browse_url: str | None = None


@dataclass(frozen=True)
class RunConfig:
    presentation: PresentationConfig = field(default_factory=PresentationConfig)
    whole_text: bool = False
    cache_path: Path = DEFAULT_CACHE_PATH
    jira_domain: str | None = None
    jira_user: str | None = None
    verify_tls: bool = True
    timeout: float = DEFAULT_TIMEOUT
    batch_size: int = DEFAULT_BATCH_SIZE
    log_level: str = "WARNING"
    json_logging: bool = False
    source_file: Path | None = None


def _resolve_env_var(value: Any, env: Mapping[str, str]) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        return env.get(value[1:], value)  # Fallback to original if not found
    return value


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return default


def resolve_config_path(explicit: str | Path | None, env: Mapping[str, str]) -> Path | None:
    """Pick the config file to read; ``None`` when there is nothing to read.

    An explicit path (flag or ``JIRADETAILS_CONFIG``) is returned even if it
    does not exist so that ``read_config_file`` can report it.
    """
    chosen = explicit or env.get("JIRADETAILS_CONFIG")
    if chosen:
        return Path(chosen).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f'Configuration file not found: {path}')
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f'Failed to read configuration file {path}: {exc}') from exc
    if not isinstance(raw, dict):
        raise ConfigError(f'Configuration file {path} must contain a mapping')
    return cast(dict[str, Any], raw)


def _section(raw: Mapping[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f'Configuration section {name!r} must be a mapping')
    return cast(dict[str, Any], value)


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def load_config(
    path: Path | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> RunConfig:
    """Build the immutable run configuration.

    ``overrides`` holds command-line values; ``None`` entries mean "not given".
    Raises ``ConfigError`` when ``path`` is given but unusable.
    """
    env = os.environ if env is None else env
    cli = {k: v for k, v in (overrides or {}).items() if v is not None}
    raw = read_config_file(path) if path is not None else {}
    jira = {k: _resolve_env_var(v, env) for k, v in _section(raw, 'jira').items()}
    cache = {k: _resolve_env_var(v, env) for k, v in _section(raw, 'cache').items()}
    output = _section(raw, 'output')
    logging_config = _section(raw, 'logging')

    domain = _first(cli.get('jira_domain'), env.get('JIRA_DOMAIN'), jira.get('domain'))
    user = _first(cli.get('jira_user'), env.get('JIRA_USER'), jira.get('user'))
    verify_tls = _as_bool(
        _first(cli.get('verify_tls'), env.get('JIRA_VERIFY_TLS'), jira.get('verify_tls')), True
    )
    cache_path = _first(cli.get('cache_path'), env.get('JIRADETAILS_CACHE'), cache.get('path'))
    mode = OutputMode.parse(_first(cli.get('mode'), output.get('mode'), OutputMode.TABLE))

    color_setting = _first(cli.get('color'), output.get('color'), 'auto')
    if isinstance(color_setting, str) and color_setting.strip().lower() == 'auto':
        color = supports_color()
    else:
        color = _as_bool(color_setting, False)

    try:
        timeout = float(_first(cli.get('timeout'), jira.get('timeout'), DEFAULT_TIMEOUT))
        batch_size = int(_first(cli.get('batch_size'), jira.get('batch_size'), DEFAULT_BATCH_SIZE))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f'Invalid numeric setting: {exc}') from exc
    if batch_size < 1:
        raise ConfigError('jira.batch_size must be at least 1')

    level = str(_first(cli.get('log_level'), logging_config.get('level'), 'WARNING')).upper()
    if env.get('JIRADETAILS_QUIET') == '1' and 'log_level' not in cli:
        level = 'ERROR'

    return RunConfig(
        presentation=PresentationConfig(
            mode=mode,
            color=color,
            browse_url=str(domain).rstrip('/') if domain else None,
        ),
        whole_text=bool(cli.get('whole_text', False)),
        cache_path=Path(str(cache_path)).expanduser() if cache_path else DEFAULT_CACHE_PATH,
        jira_domain=str(domain) if domain else None,
        jira_user=str(user) if user else None,
        verify_tls=verify_tls,
        timeout=timeout,
        batch_size=batch_size,
        log_level=level,
        json_logging=_as_bool(
            _first(cli.get('json_logging'), logging_config.get('json_enabled')), False
        ),
        source_file=path,
    )


__all__ = [
    "OutputMode",
    "PresentationConfig",
    "RunConfig",
    "load_config",
    "read_config_file",
    "resolve_config_path",
    "DEFAULT_CONFIG_PATH",
]
