"""Data models for annotation tracking.

Defines the closed tag vocabulary, the annotation record with its identity
key, and the plain result values produced by diffing and watching.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Tag(Enum):
    """Annotation tag vocabulary."""

    TODO = "TODO"
    FIXME = "FIXME"
    HACK = "HACK"
    XXX = "XXX"
    BUG = "BUG"
    NOTE = "NOTE"

    @classmethod
    def parse(cls, text: str) -> Tag | None:
        """Parse a tag case-insensitively, returning None for unknown text."""
        try:
            return cls(text.strip().upper())
        except ValueError:
            return None

    @property
    def severity(self) -> int:
        """Ordinal used for tie-breaks and coloring (NOTE lowest, BUG highest)."""
        return _SEVERITY[self]


_SEVERITY: dict[Tag, int] = {
    Tag.NOTE: 0,
    Tag.TODO: 1,
    Tag.HACK: 2,
    Tag.XXX: 3,
    Tag.FIXME: 4,
    Tag.BUG: 5,
}


class Priority(Enum):
    """Priority marker following the tag colon (`!` high, `!!` urgent)."""

    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_marker(cls, marker: str | None) -> Priority:
        if marker == "!!":
            return cls.URGENT
        if marker == "!":
            return cls.HIGH
        return cls.NORMAL


@dataclass(frozen=True)
class TodoItem:
    """A single tagged annotation found on one source line."""

    file: str  # Relative posix path
    line: int  # 1-based, informational only
    tag: Tag
    message: str
    author: str | None = None
    issue_ref: str | None = None
    priority: Priority = Priority.NORMAL

    @property
    def match_key(self) -> str:
        """Identity used to decide whether two items are the same annotation.

        The line number is deliberately excluded so that moving an annotation
        does not register as a change.
        """
        return f"{self.file}:{self.tag.value}:{self.message.strip().lower()}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "file": self.file,
            "line": self.line,
            "tag": self.tag.value,
            "message": self.message,
            "author": self.author,
            "issue_ref": self.issue_ref,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class ScanResult:
    """Every item found by one directory walk."""

    items: tuple[TodoItem, ...] = ()
    files_scanned: int = 0

    @property
    def files(self) -> set[str]:
        return {item.file for item in self.items}


class DiffStatus(Enum):
    """Direction of a diff entry."""

    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class DiffEntry:
    status: DiffStatus
    item: TodoItem

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "item": self.item.to_dict()}


@dataclass(frozen=True)
class DiffResult:
    """Added/removed annotations relative to a base ref.

    Counts are always derived from ``entries`` so they cannot drift.
    """

    entries: tuple[DiffEntry, ...]
    base_ref: str

    @property
    def added(self) -> list[TodoItem]:
        return [e.item for e in self.entries if e.status is DiffStatus.ADDED]

    @property
    def removed(self) -> list[TodoItem]:
        return [e.item for e in self.entries if e.status is DiffStatus.REMOVED]

    @property
    def added_count(self) -> int:
        return sum(1 for e in self.entries if e.status is DiffStatus.ADDED)

    @property
    def removed_count(self) -> int:
        return sum(1 for e in self.entries if e.status is DiffStatus.REMOVED)

    def filter_tags(self, tags: set[Tag]) -> DiffResult:
        """Return a copy keeping only entries whose tag is in ``tags``."""
        if not tags:
            return self
        kept = tuple(e for e in self.entries if e.item.tag in tags)
        return DiffResult(entries=kept, base_ref=self.base_ref)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_ref": self.base_ref,
            "added_count": self.added_count,
            "removed_count": self.removed_count,
            "entries": [e.to_dict() for e in self.entries],
        }


@dataclass(frozen=True)
class FileUpdate:
    """Per-file delta from re-scanning one file against its indexed items."""

    added: list[TodoItem] = field(default_factory=list)
    removed: list[TodoItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


@dataclass(frozen=True)
class WatchEvent:
    """Snapshot of the index immediately after one file's update."""

    timestamp: str
    file: str
    added: list[TodoItem]
    removed: list[TodoItem]
    tag_summary: list[tuple[str, int]]
    total: int
    total_delta: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "file": self.file,
            "added": [item.to_dict() for item in self.added],
            "removed": [item.to_dict() for item in self.removed],
            "tag_summary": [{"tag": tag, "count": count} for tag, count in self.tag_summary],
            "total": self.total,
            "total_delta": self.total_delta,
        }
