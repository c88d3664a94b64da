"""Batched summary lookup against the Jira search API.

One request asks for every wanted key at once (``key=A OR key=B ...``). Jira
answers a query that names an unknown or malformed key with HTTP 400 and a
list of ``errorMessages`` instead of the issues it could find, so a single
stale branch would otherwise hide every other summary. The fetcher reads the
offending keys out of those messages, drops them and asks again with what is
left. Each round must strictly shrink the key set, which bounds a batch of N
keys to at most N + 1 round trips.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from .errors import (
    EmptyResultError,
    FetchError,
    MalformedResponseError,
    PartialFetchError,
    RejectedQueryError,
)
from .keys import IssueKey, dedupe
from .schemas import search_response_errors

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("id", "key", "summary")
DEFAULT_BATCH_SIZE = 100

_QUOTED_RE = re.compile(r"""['"]([^'"]+)['"]""")
_KEYLIKE_RE = re.compile(r"[A-Za-z][A-Za-z0-9_]*-\d+")


class SearchClient(Protocol):
    def search(
        self, jql: str, *, fields: Sequence[str] = ..., max_results: int = ...
    ) -> Any: ...


def build_jql(keys: Sequence[IssueKey]) -> str:
    return " OR ".join(f"key={key}" for key in keys)


def rejected_keys(messages: Iterable[str], requested: Iterable[IssueKey]) -> set[IssueKey]:
    """Return the requested keys that the rejection messages talk about.

    Jira phrases these as ``An issue with key 'ABC-99' does not exist for field
    'key'.`` or ``The issue key 'abc' for field 'key' is invalid.``, so both
    quoted tokens and bare key-shaped tokens are considered. Matching is
    case-insensitive against the canonical keys.
    """
    wanted = {key.upper(): key for key in requested}
    found: set[IssueKey] = set()
    for message in messages:
        tokens = _QUOTED_RE.findall(message) + _KEYLIKE_RE.findall(message)
        for token in tokens:
            hit = wanted.get(token.strip().upper())
            if hit is not None:
                found.add(hit)
    return found


def _chunks(keys: Sequence[IssueKey], size: int) -> Iterable[list[IssueKey]]:
    for start in range(0, len(keys), size):
        yield list(keys[start:start + size])


class RemoteFetcher:
    def __init__(self, client: SearchClient, *, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.client = client
        self.batch_size = batch_size
        self.round_trips = 0

    def fetch(self, keys: Iterable[IssueKey]) -> dict[IssueKey, str]:
        """Return summaries for as many of ``keys`` as Jira knows.

        The result may cover only part of the request. A failing batch does
        not stop the others. When some batches failed but others returned
        summaries, ``PartialFetchError`` carries those summaries. When nothing
        came back, the first real failure is raised, or ``EmptyResultError``
        if every batch was simply empty.
        """
        wanted = dedupe(keys)
        if not wanted:
            return {}
        batches = list(_chunks(wanted, self.batch_size))
        result: dict[IssueKey, str] = {}
        empty: list[EmptyResultError] = []
        failures: list[FetchError] = []
        for batch in batches:
            try:
                result.update(self._fetch_batch(batch))
            except EmptyResultError as exc:
                logger.debug("batch of %d keys came back empty: %s", len(batch), exc)
                empty.append(exc)
            except FetchError as exc:
                logger.debug("batch of %d keys failed: %s", len(batch), exc)
                failures.append(exc)
        if failures:
            if not result:
                raise failures[0]
            raise PartialFetchError(
                f"{len(failures)} of {len(batches)} batches failed; "
                f"{len(result)} summaries fetched",
                partial=result,
                causes=failures,
            )
        if len(empty) == len(batches):
            if len(batches) == 1:
                raise empty[0]
            raise EmptyResultError(f"No issues returned for any of {len(wanted)} keys")
        return result

    def _fetch_batch(self, batch: list[IssueKey]) -> dict[IssueKey, str]:
        remaining = list(batch)
        for _round in range(len(batch) + 1):
            if not remaining:
                return {}
            payload = self._search(remaining)
            messages = payload.get("errorMessages") or []
            if messages:
                remaining = self._drop_rejected(remaining, messages)
                continue
            return self._summaries(payload, remaining)
        raise RuntimeError("rejection loop exceeded its bound")  # pragma: no cover

    def _search(self, keys: list[IssueKey]) -> dict[str, Any]:
        self.round_trips += 1
        payload = self.client.search(
            build_jql(keys), fields=SEARCH_FIELDS, max_results=len(keys)
        )
        if payload is None:
            raise MalformedResponseError("Jira search returned an empty body")
        problems = search_response_errors(payload)
        if problems:
            raise MalformedResponseError(
                "Jira search returned an unusable payload: " + "; ".join(problems[:5])
            )
        return payload

    def _drop_rejected(self, remaining: list[IssueKey], messages: list[str]) -> list[IssueKey]:
        rejected = rejected_keys(messages, remaining)
        if not rejected:
            raise RejectedQueryError(
                "Jira rejected the query without naming a requested key", messages=messages
            )
        reduced = [key for key in remaining if key not in rejected]
        if len(reduced) >= len(remaining):  # pragma: no cover - guarded by the check above
            raise RuntimeError("rejection retry did not shrink the key set")
        logger.debug(
            "dropping %d rejected keys (%s), %d left",
            len(rejected),
            ",".join(sorted(rejected)),
            len(reduced),
        )
        return reduced

    @staticmethod
    def _summaries(payload: dict[str, Any], requested: list[IssueKey]) -> dict[IssueKey, str]:
        issues = payload.get("issues")
        if not isinstance(issues, list):
            raise MalformedResponseError("Jira search response has no issues list")
        if not issues:
            raise EmptyResultError(f"No issues returned for {len(requested)} keys")
        out: dict[IssueKey, str] = {}
        for issue in issues:
            fields = issue.get("fields") or {}
            summary = fields.get("summary")
            if not isinstance(summary, str):
                logger.debug("issue %s has no summary; skipping", issue.get("key"))
                continue
            out[str(issue["key"]).upper()] = summary
        return out


__all__ = ["RemoteFetcher", "SearchClient", "build_jql", "rejected_keys", "DEFAULT_BATCH_SIZE"]
