"""Watch mode — keeps the annotation index current while files change.

A background thread owns the file-system subscription (watchfiles, which
debounces bursts of writes into settled batches) and pushes each batch onto a
queue. A single consumer drains the queue, re-scans each changed file through
the index and emits one event per file whose annotations changed.

Cancellation is cooperative: a signal handler sets a stop flag that the
consumer checks between queue receives, so an in-flight file update always
completes.
"""

from __future__ import annotations

import queue
import signal
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, TypeAlias

import watchfiles

from todo_delta.index import TodoIndex
from todo_delta.logging import get_logger
from todo_delta.models import FileUpdate, Tag, WatchEvent

if TYPE_CHECKING:
    from todo_delta.config import Settings
    from todo_delta.output import EventSink

log = get_logger("todo_delta.watch")

# Maximum time the consumer blocks before re-checking the stop flag
POLL_INTERVAL_SECONDS = 0.2

RawChange: TypeAlias = tuple[watchfiles.Change, str]
ChangeBatch: TypeAlias = list[RawChange]
# None marks the end of the watcher thread
Channel: TypeAlias = "queue.Queue[ChangeBatch | None]"


class FileWatcher:
    """Background thread forwarding debounced file changes to a queue."""

    def __init__(
        self,
        root: Path,
        debounce_ms: int = 500,
        channel: Channel | None = None,
    ) -> None:
        self._root = root
        self._debounce_ms = debounce_ms
        self._channel: Channel = channel if channel is not None else queue.Queue()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def channel(self) -> Channel:
        return self._channel

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="todo-delta-watcher", daemon=True)
        self._thread.start()
        log.debug("watcher_started", root=str(self._root), debounce_ms=self._debounce_ms)

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        try:
            for changes in watchfiles.watch(
                self._root,
                debounce=self._debounce_ms,
                stop_event=self._stop,
            ):
                self._channel.put(list(changes))
        except Exception:
            log.exception("watcher_failed", root=str(self._root))
        finally:
            self._channel.put(None)


# ---------------------------------------------------------------------------
# Event assembly
# ---------------------------------------------------------------------------


def collect_changed_files(changes: Iterable[RawChange], root: Path) -> list[str]:
    """Distinct root-relative posix paths in first-seen order.

    Paths outside ``root`` are dropped. Every change watchfiles yields has
    already been coalesced by its debouncer, so each path is handled once per
    batch whatever mix of kinds it received.
    """
    seen: set[str] = set()
    result: list[str] = []
    for _kind, raw_path in changes:
        try:
            relative = Path(raw_path).relative_to(root).as_posix()
        except ValueError:
            continue
        if relative == "." or relative in seen:
            continue
        seen.add(relative)
        result.append(relative)
    return result


def now_iso8601() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def build_watch_event(
    file: str,
    update: FileUpdate,
    index: TodoIndex,
    previous_total: int,
) -> WatchEvent:
    """Snapshot the index state right after ``update`` was applied."""
    total = index.total_count()
    return WatchEvent(
        timestamp=now_iso8601(),
        file=file,
        added=list(update.added),
        removed=list(update.removed),
        tag_summary=[(tag.value, count) for tag, count in index.tag_counts()],
        total=total,
        total_delta=total - previous_total,
    )


def filter_event(event: WatchEvent, tags: set[Tag]) -> WatchEvent | None:
    """Restrict an event's items to ``tags``; None if nothing is left."""
    if not tags:
        return event
    added = [item for item in event.added if item.tag in tags]
    removed = [item for item in event.removed if item.tag in tags]
    if not added and not removed:
        return None
    return WatchEvent(
        timestamp=event.timestamp,
        file=event.file,
        added=added,
        removed=removed,
        tag_summary=event.tag_summary,
        total=event.total,
        total_delta=event.total_delta,
    )


class WatchSession:
    """Single-threaded consumer that applies file changes to the index."""

    def __init__(
        self,
        index: TodoIndex,
        sink: EventSink,
        tag_filter: set[Tag] | None = None,
    ) -> None:
        self._index = index
        self._sink = sink
        self._tag_filter = tag_filter or set()

    @property
    def index(self) -> TodoIndex:
        return self._index

    def handle_file(self, relative_path: str) -> WatchEvent | None:
        """Apply one changed path to the index and build its event, if any."""
        if self._index.should_exclude(relative_path):
            return None

        previous_total = self._index.total_count()
        abs_path = self._index.root / relative_path
        if abs_path.is_file():
            try:
                update = self._index.update_file(relative_path)
            except (OSError, UnicodeDecodeError) as e:
                # Dropped; the next event for this path retries
                log.debug("file_update_skipped", path=relative_path, error=str(e))
                return None
        elif abs_path.exists():
            update = FileUpdate(added=[], removed=self._index.remove_file(relative_path))
        else:
            # Gone; it may have been a directory holding indexed files
            update = FileUpdate(added=[], removed=self._index.remove_tree(relative_path))

        if update.is_empty:
            return None

        event = build_watch_event(relative_path, update, self._index, previous_total)
        return filter_event(event, self._tag_filter)

    def process_batch(self, changes: Iterable[RawChange]) -> list[WatchEvent]:
        """Handle one debounced batch, emitting each resulting event to the sink."""
        events: list[WatchEvent] = []
        for relative_path in collect_changed_files(changes, self._index.root):
            event = self.handle_file(relative_path)
            if event is None:
                continue
            log.debug(
                "watch_event",
                path=event.file,
                added=len(event.added),
                removed=len(event.removed),
                total=event.total,
            )
            self._sink.event(event)
            events.append(event)
        return events

    def run(
        self,
        channel: Channel,
        stop_event: threading.Event,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        """Consume batches until ``stop_event`` is set or the watcher ends."""
        while not stop_event.is_set():
            try:
                batch = channel.get(timeout=poll_interval)
            except queue.Empty:
                continue
            if batch is None:
                log.info("watcher_disconnected")
                break
            self.process_batch(batch)


@contextmanager
def stop_on_signals(stop_event: threading.Event) -> Iterator[None]:
    """Set ``stop_event`` on SIGINT/SIGTERM for the duration of the block."""
    if threading.current_thread() is not threading.main_thread():
        # Signal handlers can only be installed from the main thread
        yield
        return

    def _handler(signum: int, frame: object) -> None:
        log.debug("stop_signal_received", signum=signum)
        stop_event.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run_watch(
    root: Path,
    settings: Settings,
    sink: EventSink,
    *,
    tag_filter: set[Tag] | None = None,
    stop_event: threading.Event | None = None,
) -> TodoIndex:
    """Index ``root`` and follow changes until interrupted.

    Returns the index as it stood when watching stopped.
    """
    # Resolve symlinks so paths match those reported by the OS watcher
    root = root.resolve()
    stop_event = stop_event or threading.Event()

    index = TodoIndex(root, settings)
    sink.summary(index.tag_counts(), index.total_count())

    session = WatchSession(index, sink, tag_filter)
    watcher = FileWatcher(root, debounce_ms=settings.debounce_ms)
    with stop_on_signals(stop_event):
        watcher.start()
        log.info("watch_started", root=str(root), total=index.total_count())
        try:
            session.run(watcher.channel, stop_event)
        finally:
            watcher.stop()
    log.info("watch_stopped", root=str(root), total=index.total_count())
    return index
