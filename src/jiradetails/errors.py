"""Error taxonomy & redaction helpers.

Every failure the tool can run into has a class here so the reconciliation
engine can decide, in one place, what is fatal and what only degrades the
result. Only :class:`UsageError` ends a run; everything else is caught at the
engine boundary, logged and rendered around.

Public API:
- exception hierarchy rooted at ``JiraDetailsError``
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


class JiraDetailsError(RuntimeError):
    """Base class for all errors raised by jiradetails."""


class UsageError(JiraDetailsError):
    """No input was received on stdin."""


class ConfigError(JiraDetailsError):
    """Configuration file could not be read or parsed."""


class FetchError(JiraDetailsError):
    """Base class for failures talking to the Jira search API."""


class TransportError(FetchError):
    """Network-level or HTTP-level failure reaching the Jira API."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text


class MalformedResponseError(FetchError):
    """The Jira API answered with a payload we cannot use."""


class EmptyResultError(FetchError):
    """The Jira API returned no issues and did not say why."""


class RejectedQueryError(FetchError):
    """The Jira API rejected the query without naming any requested key."""

    def __init__(self, message: str, *, messages: list[str] | None = None):
        super().__init__(message)
        self.messages = list(messages or [])


class PartialFetchError(FetchError):
    """Some batches failed after others already returned summaries.

    ``partial`` holds the summaries that did arrive; ``causes`` the batch
    failures.
    """

    def __init__(
        self,
        message: str,
        *,
        partial: dict[str, str] | None = None,
        causes: list[FetchError] | None = None,
    ):
        super().__init__(message)
        self.partial = dict(partial or {})
        self.causes = list(causes or [])


class CacheError(JiraDetailsError):
    """Base class for cache file failures."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(message)
        self.path = path


class CacheReadError(CacheError):
    """Cache file exists but could not be read."""


class CacheWriteError(CacheError):
    """Appending to the cache file failed."""


_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(Authorization:\s*Basic\s+)[A-Za-z0-9+/=]+", re.IGNORECASE),
    re.compile(r"((?:password|passwd|pw|token)\s*[=:]\s*)\S+", re.IGNORECASE),
    re.compile(r"ATATT[A-Za-z0-9_\-=]{20,}"),  # Atlassian API tokens
]

_REDACTION_PLACEHOLDER = "<redacted>"


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact credentials in arbitrary text.

    Patterns with a leading group keep the label (``password=``) and mask only
    the value so log lines stay readable.
    """
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


_CATEGORY_BY_TYPE: list[tuple[type[BaseException], str, bool]] = [
    (UsageError, "usage", False),
    (ConfigError, "config", False),
    (TransportError, "jira.transport", True),
    (MalformedResponseError, "jira.malformed", False),
    (EmptyResultError, "jira.empty", False),
    (RejectedQueryError, "jira.rejected", False),
    (PartialFetchError, "jira.partial", False),
    (CacheReadError, "cache.read", False),
    (CacheWriteError, "cache.write", False),
]


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Known jiradetails errors map by type. Anything else falls back to
    keyword matching:
    - rate limit wording -> 'jira.rate_limit', transient
    - network-y keywords -> 'network', transient
    - fallback -> 'generic'
    """
    msg = str(exc) if exc else ""
    name = exc.__class__.__name__
    for klass, category, transient in _CATEGORY_BY_TYPE:
        if isinstance(exc, klass):
            details: dict[str, Any] | None = None
            if isinstance(exc, TransportError) and exc.status is not None:
                details = {"status": exc.status}
                transient = exc.status >= 500 or exc.status == 429
            elif isinstance(exc, CacheError) and exc.path:
                details = {"path": exc.path}
            elif isinstance(exc, PartialFetchError):
                details = {
                    "resolved": len(exc.partial),
                    "failures": [type(c).__name__ for c in exc.causes],
                }
                transient = any(classify_error(c).transient for c in exc.causes)
            elif isinstance(exc, RejectedQueryError) and exc.messages:
                details = {"messages": [redact(m) for m in exc.messages]}
            return ErrorInfo(category, redact(msg), name, transient=transient, details=details)

    low = msg.lower()
    if "rate limit" in low or "too many requests" in low:
        return ErrorInfo("jira.rate_limit", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "JiraDetailsError",
    "UsageError",
    "ConfigError",
    "FetchError",
    "TransportError",
    "MalformedResponseError",
    "EmptyResultError",
    "RejectedQueryError",
    "PartialFetchError",
    "CacheError",
    "CacheReadError",
    "CacheWriteError",
    "ErrorInfo",
    "classify_error",
    "redact",
]
