"""Renderers turning a resolved mapping into text.

All functions are pure: they take the requested keys (deduplicated, in
request order), the resolved ``key -> summary`` mapping and, for the
current-branch table, the parsed branch records. Unresolved keys are rendered
with an empty summary except in summary-only mode, which skips them.
"""

from __future__ import annotations

import html
from collections.abc import Callable, Mapping, Sequence

from .config import OutputMode, PresentationConfig
from .keys import BranchRecord, IssueKey
from .ux import Colors, paint

COLUMN_SEPARATOR = " | "


def _browse_link(config: PresentationConfig, key: IssueKey) -> str | None:
    if not config.browse_url:
        return None
    return f"{config.browse_url}/browse/{key}"


def render_table(
    config: PresentationConfig, keys: Sequence[IssueKey], resolved: Mapping[IssueKey, str]
) -> list[str]:
    width = max((len(k) for k in keys), default=0)
    lines: list[str] = []
    for key in keys:
        row = f"{key.ljust(width)}{COLUMN_SEPARATOR}{resolved.get(key, '')}"
        lines.append(row.rstrip())
    return lines


def render_html(
    config: PresentationConfig, keys: Sequence[IssueKey], resolved: Mapping[IssueKey, str]
) -> list[str]:
    lines = ["<ul>"]
    for key in keys:
        link = _browse_link(config, key)
        label = html.escape(key)
        if link:
            label = f'<a href="{html.escape(link, quote=True)}">{label}</a>'
        summary = resolved.get(key)
        item = f"{label}: {html.escape(summary)}" if summary is not None else label
        lines.append(f"  <li>{item}</li>")
    lines.append("</ul>")
    return lines


def _escape_markdown(text: str) -> str:
    for ch in ("\\", "`", "*", "_", "[", "]"):
        text = text.replace(ch, "\\" + ch)
    return text


def render_markdown(
    config: PresentationConfig, keys: Sequence[IssueKey], resolved: Mapping[IssueKey, str]
) -> list[str]:
    lines: list[str] = []
    for key in keys:
        link = _browse_link(config, key)
        label = f"[{key}]({link})" if link else f"**{key}**"
        summary = resolved.get(key)
        lines.append(f"- {label}: {_escape_markdown(summary)}" if summary is not None else f"- {label}")
    return lines


def render_summaries(
    config: PresentationConfig, keys: Sequence[IssueKey], resolved: Mapping[IssueKey, str]
) -> list[str]:
    return [resolved[key] for key in keys if key in resolved]


def render_current(
    config: PresentationConfig,
    records: Sequence[BranchRecord],
    resolved: Mapping[IssueKey, str],
) -> list[str]:
    """Branch table with a ``*`` column for the checked-out branch."""
    width = max((len(r.name) for r in records if r.key), default=0)
    lines: list[str] = []
    for record in records:
        marker = "*" if record.is_current else " "
        if record.key is None:
            row = f"{marker} {record.name}"
        else:
            summary = resolved.get(record.key, "")
            row = f"{marker} {record.name.ljust(width)}{COLUMN_SEPARATOR}{summary}".rstrip()
        if record.is_current:
            row = paint(row, Colors.GREEN, enabled=config.color)
        lines.append(row)
    return lines


_KEY_RENDERERS: dict[
    OutputMode,
    Callable[[PresentationConfig, Sequence[IssueKey], Mapping[IssueKey, str]], list[str]],
] = {
    OutputMode.TABLE: render_table,
    OutputMode.HTML: render_html,
    OutputMode.MARKDOWN: render_markdown,
    OutputMode.SUMMARY: render_summaries,
}


def render(
    config: PresentationConfig,
    keys: Sequence[IssueKey],
    resolved: Mapping[IssueKey, str],
    *,
    records: Sequence[BranchRecord] | None = None,
) -> list[str]:
    if config.mode is OutputMode.CURRENT:
        if records is not None:
            return render_current(config, records, resolved)
        return render_table(config, keys, resolved)
    return _KEY_RENDERERS[config.mode](config, keys, resolved)


def render_text(
    config: PresentationConfig,
    keys: Sequence[IssueKey],
    resolved: Mapping[IssueKey, str],
    *,
    records: Sequence[BranchRecord] | None = None,
) -> str:
    return "\n".join(render(config, keys, resolved, records=records))


__all__ = [
    "render",
    "render_text",
    "render_table",
    "render_html",
    "render_markdown",
    "render_summaries",
    "render_current",
]
