"""In-memory annotation index kept current by per-file re-scans.

Each file is either absent from the index or maps to a non-empty list of its
annotations. The index has a single owner (the watch loop or a direct caller)
and is not thread-safe.
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING

from todo_delta.diff import reconcile
from todo_delta.logging import get_logger
from todo_delta.models import FileUpdate, Tag, TodoItem
from todo_delta.scanner import (
    ExclusionRules,
    GitIgnoreMatcher,
    compile_pattern,
    scan_content,
    scan_directory,
)

if TYPE_CHECKING:
    from todo_delta.config import Settings

log = get_logger("todo_delta.index")


class TodoIndex:
    """Annotations grouped by relative file path."""

    def __init__(self, root: Path, settings: Settings) -> None:
        """Build the index with one full directory scan.

        Raises:
            PatternCompileError: the configured tag pattern is invalid.
        """
        self._root = root.resolve()
        self._pattern = compile_pattern(settings.tags_pattern)
        self._rules = ExclusionRules.from_settings(settings)
        self._ignore = GitIgnoreMatcher(self._root) if settings.respect_gitignore else None
        self._max_file_size = settings.max_file_size
        self._items: dict[str, list[TodoItem]] = {}

        scan = scan_directory(root, settings)
        for item in scan.items:
            self._items.setdefault(item.file, []).append(item)

        log.info(
            "index_built",
            root=str(root),
            files_scanned=scan.files_scanned,
            files_indexed=len(self._items),
            total=len(scan.items),
        )

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_file(self, relative_path: str) -> FileUpdate:
        """Re-scan one file and reconcile it against its indexed items.

        Files above the size ceiling are treated as holding no annotations
        and are not read.

        Raises:
            OSError: the file cannot be stat'ed or read.
            UnicodeDecodeError: the file is not valid UTF-8.

        On error the entry for ``relative_path`` is left untouched.
        """
        abs_path = self._root / relative_path
        size = abs_path.stat().st_size
        if size > self._max_file_size:
            removed = self._items.pop(relative_path, [])
            log.debug("file_oversized", path=relative_path, size=size, removed=len(removed))
            return FileUpdate(added=[], removed=removed)

        content = abs_path.read_text(encoding="utf-8")
        new_items = scan_content(content, relative_path, self._pattern)
        old_items = self._items.get(relative_path, [])
        update = reconcile(old_items, new_items)

        if new_items:
            self._items[relative_path] = new_items
        else:
            self._items.pop(relative_path, None)
        return update

    def remove_file(self, relative_path: str) -> list[TodoItem]:
        """Evict a file, returning its former items (empty if not indexed)."""
        return self._items.pop(relative_path, [])

    def remove_tree(self, relative_path: str) -> list[TodoItem]:
        """Evict a path and every file below it, returning their former items.

        Used when a deleted path may have been a directory.
        """
        prefix = relative_path.rstrip("/") + "/"
        removed = self.remove_file(relative_path)
        for path in sorted(p for p in self._items if p.startswith(prefix)):
            removed.extend(self._items.pop(path))
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def total_count(self) -> int:
        """Total annotations across all files."""
        return sum(len(items) for items in self._items.values())

    def tag_counts(self) -> list[tuple[Tag, int]]:
        """Per-tag totals, highest count first (ties: higher severity first)."""
        counts: Counter[Tag] = Counter()
        for items in self._items.values():
            counts.update(item.tag for item in items)
        return sorted(counts.items(), key=lambda pair: (-pair[1], -pair[0].severity))

    def items_for(self, relative_path: str) -> list[TodoItem]:
        return list(self._items.get(relative_path, []))

    def files(self) -> list[str]:
        return sorted(self._items)

    def should_exclude(self, relative_path: str) -> bool:
        """Check if a path is excluded by the configured rules or ignored by git."""
        if self._rules.should_exclude(relative_path):
            return True
        return self._ignore is not None and self._ignore.is_ignored(relative_path)

    def __contains__(self, relative_path: object) -> bool:
        return relative_path in self._items

    def __len__(self) -> int:
        return len(self._items)
