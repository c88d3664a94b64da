"""Centralized retry / backoff helpers.

Provides a single small function ``run_with_retries`` that encapsulates
exponential backoff with jitter for transient Jira responses (rate limiting
and gateway hiccups: HTTP 429, 502, 503, 504).

Environment overrides:
  JIRADETAILS_RETRY_ATTEMPTS (default 3)
  JIRADETAILS_RETRY_BASE (seconds base, default 0.5)
  JIRADETAILS_RETRY_MAX_SLEEP (cap for any single sleep)

The caller supplies a thunk returning the desired result or raising
``TransientHTTPError``. Any other exception propagates immediately; connection
failures and timeouts are not retried here.
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_JITTER = random.SystemRandom()


class TransientHTTPError(Exception):
    """Raised by a request thunk when the response status is worth retrying."""

    def __init__(self, status: int, *, retry_after: str | None = None, body: str = ""):
        super().__init__(f"transient HTTP {status}")
        self.status = status
        self.retry_after = retry_after
        self.body = body


def _extract_explicit_backoff(exc: TransientHTTPError) -> float | None:
    """Extract an explicit backoff (seconds) from the error.

    Prefers the ``Retry-After`` header value, then falls back to a
    ``Retry-After: N`` hint inside the body. Returns None if no valid positive
    value is found.
    """
    candidates = []
    if exc.retry_after:
        candidates.append(exc.retry_after.strip())
    m = _RE_RETRY_AFTER.search(exc.body or "")
    if m:
        candidates.append(m.group(1))
    for raw in candidates:
        try:
            val = float(raw)
        except ValueError:
            continue
        if val > 0:
            return val
    return None


def _env_number(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        get_logger().warning(
            f"Ignoring invalid {name}={raw!r}; using {default}",
            operation="retry_config",
        )
        return default


def _env_int(name: str, default: int) -> int:
    return _env_number(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env_number(name, default, float)


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("JIRADETAILS_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("JIRADETAILS_RETRY_BASE", 0.5))


def is_transient(status: int) -> bool:
    return status in TRANSIENT_STATUSES


def _compute_sleep(attempt: int, cfg: RetryConfig, exc: TransientHTTPError) -> float:
    explicit = _extract_explicit_backoff(exc)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("JIRADETAILS_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def run_with_retries(fn: Callable[[], T], *, cfg: RetryConfig | None = None) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransientHTTPError as exc:
            if attempt >= attempts:
                raise
            sleep_for = _compute_sleep(attempt, cfg, exc)
            get_logger().warning(
                f"[retry] transient HTTP {exc.status}, attempt {attempt}/{attempts}, "
                f"sleeping {sleep_for:.2f}s",
                operation="retry",
                status=exc.status,
            )
            time.sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "TransientHTTPError", "run_with_retries", "is_transient"]
