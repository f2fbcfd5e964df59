"""CLI for todo-delta."""

from __future__ import annotations

import sys
import tomllib
from pathlib import Path
from typing import Any, NoReturn

import click  # type: ignore[import-not-found]
from pydantic import ValidationError

from todo_delta import __version__
from todo_delta.config import Settings, load_settings
from todo_delta.logging import get_logger, setup_logging
from todo_delta.models import Tag

log = get_logger("todo_delta.cli")

TAG_CHOICE = click.Choice([tag.value for tag in Tag], case_sensitive=False)
FORMAT_CHOICE = click.Choice(["text", "json"], case_sensitive=False)

root_option = click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Project root to scan",
)
tag_option = click.option(
    "--tag",
    "tags",
    multiple=True,
    type=TAG_CHOICE,
    help="Only report these tags (can specify multiple)",
)
format_option = click.option(
    "--format",
    "fmt",
    type=FORMAT_CHOICE,
    default="text",
    show_default=True,
    help="Output format",
)


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load(root: Path, **overrides: Any) -> Settings:
    """Load settings for ``root`` and configure logging from them."""
    try:
        settings = load_settings(root, **overrides)
    except (ValidationError, tomllib.TOMLDecodeError, OSError) as e:
        _fail(f"invalid configuration: {e}")
    setup_logging(settings)
    return settings


def _tag_filter(tags: tuple[str, ...]) -> set[Tag]:
    return {Tag(tag.upper()) for tag in tags}


@click.group()  # type: ignore[misc]
@click.version_option(__version__, prog_name="todo-delta")  # type: ignore[misc]
def main() -> None:
    """todo-delta — tracks how TODO/FIXME/HACK annotations change."""


@main.command()  # type: ignore[misc]
@click.option(  # type: ignore[misc]
    "--ref", default="HEAD", show_default=True, help="Git ref to compare the working tree with"
)
@root_option  # type: ignore[misc]
@tag_option  # type: ignore[misc]
@format_option  # type: ignore[misc]
def diff(ref: str, root: Path, tags: tuple[str, ...], fmt: str) -> None:
    """Show annotations added or removed since a git ref."""
    from todo_delta.diff import DiffError, compute_diff
    from todo_delta.output import OutputFormat, render_diff
    from todo_delta.scanner import PatternCompileError, scan_directory

    settings = _load(root)
    try:
        current = scan_directory(root, settings)
        result = compute_diff(current, ref, root, settings)
    except (DiffError, PatternCompileError) as e:
        log.debug("diff_failed", ref=ref, error=str(e))
        _fail(str(e))

    result = result.filter_tags(_tag_filter(tags))
    click.echo(render_diff(result, OutputFormat(fmt.lower())))


@main.command()  # type: ignore[misc]
@root_option  # type: ignore[misc]
@tag_option  # type: ignore[misc]
@format_option  # type: ignore[misc]
@click.option(  # type: ignore[misc]
    "--max",
    "max_items",
    type=click.IntRange(min=1),
    default=None,
    help="List at most N items per direction for each event",
)
@click.option(  # type: ignore[misc]
    "--debounce-ms",
    type=click.IntRange(min=1),
    default=None,
    help="Debounce window for file events (overrides config)",
)
@click.option(  # type: ignore[misc]
    "--webhook-url",
    envvar="TODO_DELTA_WEBHOOK_URL",
    default=None,
    help="Also post each event to this Discord-compatible webhook",
)
def watch(
    root: Path,
    tags: tuple[str, ...],
    fmt: str,
    max_items: int | None,
    debounce_ms: int | None,
    webhook_url: str | None,
) -> None:
    """Watch a directory and report annotation changes as files are saved."""
    from todo_delta.output import ConsoleSink, EventSink, FanOutSink, OutputFormat, WebhookSink
    from todo_delta.scanner import PatternCompileError
    from todo_delta.watch import run_watch

    settings = _load(root, debounce_ms=debounce_ms)

    sinks: list[EventSink] = [ConsoleSink(OutputFormat(fmt.lower()), max_items=max_items)]
    webhook: WebhookSink | None = None
    if webhook_url:
        webhook = WebhookSink(webhook_url, settings.webhook_agent_name)
        sinks.append(webhook)

    try:
        run_watch(root, settings, FanOutSink(sinks), tag_filter=_tag_filter(tags))
    except PatternCompileError as e:
        _fail(str(e))
    finally:
        if webhook is not None:
            webhook.close()


if __name__ == "__main__":
    main()
