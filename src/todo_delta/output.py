"""Output sinks for diff results and watch events.

Console rendering (text or JSON lines) and Discord-style webhook delivery.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from typing import Any, Protocol

import click
import httpx

from todo_delta.logging import get_logger
from todo_delta.models import DiffResult, DiffStatus, Tag, TodoItem, WatchEvent

log = get_logger("todo_delta.output")

# Discord embed colour (blue)
EMBED_COLOR = 3447003

# Embed colours per change direction
CHANGE_COLORS = {
    "added": 16776960,  # Yellow
    "removed": 3066993,  # Green
}

# Terminal colours by tag severity
TAG_COLORS = {
    Tag.NOTE: "blue",
    Tag.TODO: "cyan",
    Tag.HACK: "yellow",
    Tag.XXX: "yellow",
    Tag.FIXME: "red",
    Tag.BUG: "red",
}


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


class EventSink(Protocol):
    """Receives watch output."""

    def summary(self, tag_counts: Sequence[tuple[Tag, int]], total: int) -> None: ...

    def event(self, event: WatchEvent) -> None: ...


# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------


def _format_item(item: TodoItem, prefix: str, *, color: bool = True) -> str:
    tag = item.tag.value
    if color:
        tag = click.style(tag, fg=TAG_COLORS[item.tag], bold=True)
    author = f"({item.author})" if item.author else ""
    marker = {"high": " !", "urgent": " !!"}.get(item.priority.value, "")
    return f"  {prefix} {item.file}:{item.line} {tag}{author}{marker}: {item.message}"


def _format_summary(tag_counts: Sequence[tuple[str, int]], total: int) -> str:
    parts = ", ".join(f"{tag}: {count}" for tag, count in tag_counts)
    return f"{total} annotation(s)" + (f" ({parts})" if parts else "")


def render_diff(result: DiffResult, fmt: OutputFormat, *, color: bool = True) -> str:
    """Render a diff result as text or JSON."""
    if fmt is OutputFormat.JSON:
        return json.dumps(result.to_dict(), indent=2)

    lines = [f"Annotation changes since {result.base_ref}:"]
    for entry in result.entries:
        added = entry.status is DiffStatus.ADDED
        sign = "+" if added else "-"
        prefix = click.style(sign, fg="green" if added else "red") if color else sign
        lines.append(_format_item(entry.item, prefix, color=color))
    if not result.entries:
        lines.append("  (no changes)")
    lines.append(f"{result.added_count} added, {result.removed_count} removed")
    return "\n".join(lines)


def render_event(
    event: WatchEvent,
    fmt: OutputFormat,
    *,
    max_items: int | None = None,
    color: bool = True,
) -> str:
    """Render one watch event; ``max_items`` caps the listed items per direction."""
    if fmt is OutputFormat.JSON:
        return json.dumps(event.to_dict())

    header = f"{event.timestamp} {event.file}"
    lines = [click.style(header, bold=True) if color else header]
    for direction, items in (("+", event.added), ("-", event.removed)):
        shown = items if max_items is None else items[:max_items]
        for item in shown:
            lines.append(_format_item(item, direction, color=color))
        if len(shown) < len(items):
            lines.append(f"  ... {len(items) - len(shown)} more")
    delta = f"{event.total_delta:+d}"
    lines.append(f"  {_format_summary(event.tag_summary, event.total)} [{delta}]")
    return "\n".join(lines)


class ConsoleSink:
    """Writes summaries and events to stdout."""

    def __init__(
        self,
        fmt: OutputFormat = OutputFormat.TEXT,
        *,
        max_items: int | None = None,
        color: bool = True,
    ) -> None:
        self._fmt = fmt
        self._max_items = max_items
        self._color = color

    def summary(self, tag_counts: Sequence[tuple[Tag, int]], total: int) -> None:
        counts = [(tag.value, count) for tag, count in tag_counts]
        if self._fmt is OutputFormat.JSON:
            payload = {
                "type": "summary",
                "total": total,
                "tag_summary": [{"tag": t, "count": c} for t, c in counts],
            }
            click.echo(json.dumps(payload))
            return
        click.echo(f"Tracking {_format_summary(counts, total)}")

    def event(self, event: WatchEvent) -> None:
        click.echo(
            render_event(event, self._fmt, max_items=self._max_items, color=self._color)
        )


# ---------------------------------------------------------------------------
# Webhook delivery
# ---------------------------------------------------------------------------


def build_webhook_payload(agent_name: str, event: WatchEvent) -> dict[str, Any]:
    """Build a Discord-compatible webhook body with one embed per item."""
    embeds: list[dict[str, Any]] = []
    for action, items in (("added", event.added), ("removed", event.removed)):
        for item in items:
            fields = {
                "file": item.file,
                "line": str(item.line),
                "annotation_type": item.tag.value,
                "action": action,
                "total": str(event.total),
            }
            embeds.append(
                {
                    "title": "annotation",
                    "description": item.message,
                    "fields": [
                        {"name": k, "value": str(v), "inline": True} for k, v in fields.items()
                    ],
                    "timestamp": event.timestamp,
                    "color": CHANGE_COLORS.get(action, EMBED_COLOR),
                }
            )
    # Discord accepts at most 10 embeds per message
    return {"username": agent_name, "embeds": embeds[:10]}


class WebhookSink:
    """Posts watch events to a webhook URL."""

    def __init__(
        self,
        webhook_url: str,
        agent_name: str = "todo-delta",
        *,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._webhook_url = webhook_url
        self._agent_name = agent_name
        self._client = client or httpx.Client(timeout=timeout)

    def summary(self, tag_counts: Sequence[tuple[Tag, int]], total: int) -> None:
        return None

    def event(self, event: WatchEvent) -> None:
        self.send(event)

    def send(self, event: WatchEvent) -> bool:
        """Send one event. Returns True if the webhook accepted it."""
        payload = build_webhook_payload(self._agent_name, event)
        try:
            resp = self._client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            log.warning("webhook_delivery_failed", file=event.file, error=str(e))
            return False
        ok = resp.status_code in (200, 204)
        if not ok:
            log.warning("webhook_rejected", file=event.file, status_code=resp.status_code)
        return ok

    def close(self) -> None:
        self._client.close()


class FanOutSink:
    """Forwards output to several sinks in order."""

    def __init__(self, sinks: Sequence[EventSink]) -> None:
        self._sinks = list(sinks)

    def summary(self, tag_counts: Sequence[tuple[Tag, int]], total: int) -> None:
        for sink in self._sinks:
            sink.summary(tag_counts, total)

    def event(self, event: WatchEvent) -> None:
        for sink in self._sinks:
            sink.event(event)
