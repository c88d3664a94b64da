"""Reconciliation of requested keys against the cache and Jira.

Flow for one run::

    requested --dedupe--> working set
    cache.load()                      -> cached
    working set - cached              -> missing
    fetcher.fetch(missing)            -> fetched      (skipped when empty)
    cache.append(fetched)                             (best effort)
    cached | fetched, projected onto the working set -> mapping

Network and cache I/O failures never escape :meth:`Reconciler.reconcile`;
they are logged, recorded on the report as ``ErrorInfo`` and the run carries
on with whatever summaries are available. The worst case is an empty
mapping.

Report structure (stable for tests and callers)::

    ReconcileReport(
        mapping={key: summary, ...},   # request order, unresolved keys absent
        requested=[key, ...],          # deduplicated request order
        cached_hits=[key, ...],
        missing=[key, ...],
        fetched={key: summary, ...},
        persisted=bool,
        errors=[ErrorInfo, ...],
    )
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from .cache_store import CacheStore
from .errors import (
    CacheReadError,
    CacheWriteError,
    ErrorInfo,
    FetchError,
    PartialFetchError,
    classify_error,
)
from .keys import IssueKey, dedupe
from .logging import StructuredLogger, get_logger


class Fetcher(Protocol):
    def fetch(self, keys: Iterable[IssueKey]) -> dict[IssueKey, str]: ...


@dataclass
class ReconcileReport:
    mapping: dict[IssueKey, str]
    requested: list[IssueKey]
    cached_hits: list[IssueKey] = field(default_factory=list)
    missing: list[IssueKey] = field(default_factory=list)
    fetched: dict[IssueKey, str] = field(default_factory=dict)
    persisted: bool = False
    errors: list[ErrorInfo] = field(default_factory=list)

    @property
    def unresolved(self) -> list[IssueKey]:
        return [key for key in self.requested if key not in self.mapping]

    @property
    def degraded(self) -> bool:
        return bool(self.errors)


class Reconciler:
    def __init__(
        self,
        cache: CacheStore,
        fetcher: Fetcher | None = None,
        *,
        logger: StructuredLogger | None = None,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.logger = logger or get_logger()

    def resolve(self, requested: Iterable[IssueKey]) -> dict[IssueKey, str]:
        return self.reconcile(requested).mapping

    def reconcile(self, requested: Iterable[IssueKey]) -> ReconcileReport:
        wanted = dedupe(requested)
        errors: list[ErrorInfo] = []
        cached = self._load_cache(errors)
        missing = [key for key in wanted if key not in cached]
        fetched: dict[IssueKey, str] = {}
        persisted = False
        if missing:
            fetched = self._fetch(missing, errors)
            if fetched:
                persisted = self._persist(fetched, errors)
        merged = {**cached, **fetched}
        mapping = {key: merged[key] for key in wanted if key in merged}
        self.logger.log_operation(
            "reconcile",
            requested=len(wanted),
            cached_hits=len(wanted) - len(missing),
            fetched=len(fetched),
            resolved=len(mapping),
        )
        return ReconcileReport(
            mapping=mapping,
            requested=wanted,
            cached_hits=[key for key in wanted if key in cached],
            missing=missing,
            fetched=fetched,
            persisted=persisted,
            errors=errors,
        )

    def _record(self, errors: list[ErrorInfo], message: str, exc: BaseException) -> None:
        info = classify_error(exc)
        errors.append(info)
        self.logger.warning(f"{message}: {info.message}", category=info.category)

    def _load_cache(self, errors: list[ErrorInfo]) -> dict[IssueKey, str]:
        try:
            return self.cache.load()
        except CacheReadError as exc:
            self._record(errors, "Cache unreadable, continuing without it", exc)
            return {}

    def _fetch(self, missing: list[IssueKey], errors: list[ErrorInfo]) -> dict[IssueKey, str]:
        if self.fetcher is None:
            self.logger.warning(
                f"No Jira credentials configured; {len(missing)} keys left unresolved",
                key_count=len(missing),
            )
            return {}
        start = time.perf_counter()
        try:
            fetched = self.fetcher.fetch(missing)
        except PartialFetchError as exc:
            self._record(errors, "Jira lookup partly failed, keeping what arrived", exc)
            return dict(exc.partial)
        except FetchError as exc:
            self._record(errors, "Jira lookup failed, using cached summaries only", exc)
            return {}
        self.logger.log_performance(
            "fetch", (time.perf_counter() - start) * 1000, key_count=len(missing)
        )
        return fetched

    def _persist(self, fetched: dict[IssueKey, str], errors: list[ErrorInfo]) -> bool:
        try:
            self.cache.append(fetched)
        except CacheWriteError as exc:
            self._record(errors, "Could not update cache", exc)
            return False
        return True


def resolve(
    requested: Iterable[IssueKey], cache: CacheStore, fetcher: Fetcher | None = None
) -> dict[IssueKey, str]:
    """Convenience wrapper around :class:`Reconciler`."""
    return Reconciler(cache, fetcher).resolve(requested)


def format_report(report: ReconcileReport) -> list[str]:  # return list of human lines
    lines = [
        f"[reconcile] requested={len(report.requested)} cached={len(report.cached_hits)} "
        f"fetched={len(report.fetched)} resolved={len(report.mapping)}"
    ]
    if report.unresolved:
        lines.append(f"  unresolved: {', '.join(report.unresolved)}")
    for info in report.errors:
        lines.append(f"  {info.category}: {info.message}")
    return lines


__all__ = ["Reconciler", "ReconcileReport", "Fetcher", "resolve", "format_report"]
