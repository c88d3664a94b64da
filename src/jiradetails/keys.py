"""Issue key extraction.

Grammar of an issue key::

    key     := project "-" number
    project := letter (letter | digit | "_")*
    number  := digit+

Matching is case-insensitive; the canonical form is uppercase.

Two scanning modes are supported. Branch mode (the default, fed by
``git branch``) treats each line as one branch name: the current-branch
marker and any path prefix such as ``origin/`` or ``feature/`` are removed and
the first key in what remains is taken. Whole-text mode yields every key on
every line.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

IssueKey = str

CURRENT_MARKER = "*"

_KEY_RE = re.compile(r"(?<![A-Za-z0-9_])([A-Za-z][A-Za-z0-9_]*)-(\d+)(?!\d)")
_FULL_KEY_RE = re.compile(r"^([A-Za-z][A-Za-z0-9_]*)-(\d+)$")
_PATH_PREFIX_RE = re.compile(r"^\S*/")


def parse_key(token: str) -> IssueKey | None:
    """Return the canonical key if ``token`` is exactly one issue key."""
    m = _FULL_KEY_RE.match(token.strip())
    if not m:
        return None
    return f"{m.group(1).upper()}-{m.group(2)}"


def strip_branch_prefix(line: str) -> str:
    """Drop the current marker and the ``namespace/`` part of a branch line."""
    name = line.strip()
    if name.startswith(CURRENT_MARKER):
        name = name[len(CURRENT_MARKER):].strip()
    return _PATH_PREFIX_RE.sub("", name)


def _first_key(text: str) -> IssueKey | None:
    m = _KEY_RE.search(text)
    if not m:
        return None
    return f"{m.group(1).upper()}-{m.group(2)}"


def _all_keys(text: str) -> Iterator[IssueKey]:
    for m in _KEY_RE.finditer(text):
        yield f"{m.group(1).upper()}-{m.group(2)}"


def _split_lines(source: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(source, str):
        return tuple(source.splitlines())
    return tuple(source)


class IssueKeys:
    """Restartable, lazy sequence of keys found in ``source``.

    Keys come out in order of appearance and are not deduplicated. Every call
    to ``iter()`` rescans from the first line.
    """

    def __init__(self, source: str | Iterable[str], *, whole_text: bool = False):
        self._lines = _split_lines(source)
        self.whole_text = whole_text

    def __iter__(self) -> Iterator[IssueKey]:
        for line in self._lines:
            if self.whole_text:
                yield from _all_keys(line)
                continue
            key = _first_key(strip_branch_prefix(line))
            if key is not None:
                yield key

    def __repr__(self) -> str:
        mode = "text" if self.whole_text else "branch"
        return f"IssueKeys(lines={len(self._lines)}, mode={mode})"


def extract_keys(source: str | Iterable[str], *, whole_text: bool = False) -> IssueKeys:
    return IssueKeys(source, whole_text=whole_text)


def dedupe(keys: Iterable[IssueKey]) -> list[IssueKey]:
    """Drop repeated keys, keeping first-seen order."""
    return list(dict.fromkeys(keys))


@dataclass(frozen=True)
class BranchRecord:
    line: str
    name: str
    is_current: bool
    key: IssueKey | None = None


def parse_branch_records(source: str | Iterable[str]) -> list[BranchRecord]:
    records: list[BranchRecord] = []
    for raw in _split_lines(source):
        line = raw.rstrip()
        if not line.strip():
            continue
        is_current = line.lstrip().startswith(CURRENT_MARKER)
        name = line.strip()
        if is_current:
            name = name[len(CURRENT_MARKER):].strip()
        records.append(
            BranchRecord(
                line=line,
                name=name,
                is_current=is_current,
                key=_first_key(strip_branch_prefix(line)),
            )
        )
    return records


__all__ = [
    "IssueKey",
    "IssueKeys",
    "BranchRecord",
    "extract_keys",
    "parse_key",
    "strip_branch_prefix",
    "parse_branch_records",
    "dedupe",
]
