from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from .errors import CacheReadError, CacheWriteError
from .keys import IssueKey, parse_key

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path("/tmp/jira.cache")  # nosec B108 - well-known shared cache location
SEPARATOR = "|"

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", SEPARATOR: "\\" + SEPARATOR}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r", SEPARATOR: SEPARATOR}


def escape_summary(summary: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in summary)


def unescape_summary(raw: str) -> str:
    out: list[str] = []
    chars = iter(raw)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        # Unknown escapes are kept verbatim
        out.append(_UNESCAPES.get(nxt, "\\" + nxt))
    return "".join(out)


def parse_record(line: str) -> tuple[IssueKey, str] | None:
    """Split one ``KEY|SUMMARY`` record; ``None`` for malformed lines."""
    key_part, sep, summary = line.partition(SEPARATOR)
    if not sep:
        return None
    key = parse_key(key_part)
    if key is None:
        return None
    return key, unescape_summary(summary)


def format_record(key: IssueKey, summary: str) -> str:
    return f"{key}{SEPARATOR}{escape_summary(summary)}\n"


class CacheStore:
    """Append-only ``KEY|SUMMARY`` cache file.

    The file is never rewritten or compacted. Duplicate keys can appear when
    two runs race; the last record for a key wins on load.
    """

    def __init__(self, path: str | Path = DEFAULT_CACHE_PATH):
        self.path = Path(path)

    def load(self) -> dict[IssueKey, str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            raise CacheReadError(
                f"Failed to read cache file {self.path}: {exc}", path=str(self.path)
            ) from exc
        entries: dict[IssueKey, str] = {}
        # str.splitlines() would also break on U+2028 and friends inside summaries
        for lineno, raw in enumerate(text.split("\n"), start=1):
            line = raw.rstrip("\r")
            if not line.strip():
                continue
            record = parse_record(line)
            if record is None:
                logger.debug("skipping malformed cache record %s:%d: %r", self.path, lineno, line)
                continue
            key, summary = record
            entries[key] = summary
        return entries

    def append(self, entries: Mapping[IssueKey, str]) -> None:
        if not entries:
            return
        payload = "".join(format_record(key, summary) for key, summary in entries.items())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(payload)
        except OSError as exc:
            raise CacheWriteError(
                f"Failed to append {len(entries)} entries to cache file {self.path}: {exc}",
                path=str(self.path),
            ) from exc

    def __repr__(self) -> str:
        return f"CacheStore(path={str(self.path)!r})"


__all__ = [
    "CacheStore",
    "DEFAULT_CACHE_PATH",
    "SEPARATOR",
    "escape_summary",
    "unescape_summary",
    "parse_record",
    "format_record",
]
