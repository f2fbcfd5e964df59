"""Annotation scanner — finds TODO/FIXME/HACK/XXX/BUG/NOTE comments."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from pathspec import GitIgnoreSpec

from todo_delta.logging import get_logger
from todo_delta.models import Priority, ScanResult, Tag, TodoItem

if TYPE_CHECKING:
    from todo_delta.config import Settings

log = get_logger("todo_delta.scanner")

# Matches issue references like JIRA-456 or #123
ISSUE_REF_PATTERN = re.compile(r"(?:([A-Z]+-\d+)|#(\d+))")


class PatternCompileError(Exception):
    """The configured tag pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid tags pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a tag pattern, raising PatternCompileError on failure."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternCompileError(pattern, str(e)) from e


def extract_issue_ref(message: str) -> str | None:
    """Extract the first issue reference (`#123` or `PROJ-456`) from a message."""
    match = ISSUE_REF_PATTERN.search(message)
    if match is None:
        return None
    if match.group(1):
        return match.group(1)
    return f"#{match.group(2)}"


def _group(match: re.Match[str], index: int) -> str | None:
    # Custom patterns may define fewer groups than the default one
    if index > (match.re.groups or 0):
        return None
    return match.group(index)


def scan_content(content: str, file_path: str, pattern: re.Pattern[str]) -> list[TodoItem]:
    """Scan text line by line for tagged annotations.

    Pure and total: lines whose tag is outside the vocabulary are skipped.
    """
    items: list[TodoItem] = []
    for line_no, line in enumerate(content.splitlines(), 1):
        match = pattern.search(line)
        if match is None:
            continue
        tag = Tag.parse(_group(match, 1) or "")
        if tag is None:
            continue
        message = (_group(match, 4) or "").strip()
        items.append(
            TodoItem(
                file=file_path,
                line=line_no,
                tag=tag,
                message=message,
                author=_group(match, 2),
                issue_ref=extract_issue_ref(message),
                priority=Priority.from_marker(_group(match, 3)),
            )
        )
    return items


@dataclass(frozen=True)
class ExclusionRules:
    """Directory-name and regex exclusions applied to relative paths."""

    exclude_dirs: frozenset[str]
    exclude_patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def from_settings(cls, settings: Settings) -> ExclusionRules:
        """Build rules, dropping exclude patterns that do not compile."""
        patterns: list[re.Pattern[str]] = []
        for raw in settings.exclude_patterns:
            try:
                patterns.append(re.compile(raw))
            except re.error as e:
                log.debug("exclude_pattern_dropped", pattern=raw, error=str(e))
        return cls(exclude_dirs=frozenset(settings.exclude_dirs), exclude_patterns=tuple(patterns))

    def should_exclude(self, relative_path: str) -> bool:
        """Return True when a path is excluded.

        Directory names match whole path components only, so `node_modules`
        excludes `a/node_modules/b.js` but not `src/not_node_modules.js`.
        """
        parts = PurePosixPath(relative_path.replace("\\", "/")).parts
        if any(part in self.exclude_dirs for part in parts):
            return True
        return any(p.search(relative_path) for p in self.exclude_patterns)


class GitIgnoreMatcher:
    """Matches relative paths against the .gitignore files that govern them.

    Rules come from ``.gitignore`` in the root and each directory below it,
    plus, when the root sits inside a git repository, the ``.gitignore``
    files of its ancestors up to the repository top and that repository's
    ``.git/info/exclude``. Rule files are read lazily and cached.
    """

    def __init__(self, root: Path):
        self._root = root.resolve()
        self._specs: dict[Path, GitIgnoreSpec | None] = {}
        self._ancestors, self._repo_top = self._find_repository_dirs()

    def _find_repository_dirs(self) -> tuple[list[Path], Path | None]:
        if (self._root / ".git").exists():
            return [], self._root
        dirs: list[Path] = []
        for parent in self._root.parents:
            dirs.append(parent)
            if (parent / ".git").exists():
                return list(reversed(dirs)), parent
        # Outside a repository, rule files above the root do not apply
        return [], None

    def _read_lines(self, path: Path) -> list[str]:
        try:
            return path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            return []

    def _spec_for(self, directory: Path) -> GitIgnoreSpec | None:
        if directory not in self._specs:
            lines: list[str] = []
            if directory == self._repo_top:
                lines.extend(self._read_lines(directory / ".git" / "info" / "exclude"))
            lines.extend(self._read_lines(directory / ".gitignore"))
            self._specs[directory] = GitIgnoreSpec.from_lines(lines) if lines else None
        return self._specs[directory]

    def is_ignored(self, relative_path: str, *, is_dir: bool = False) -> bool:
        """Return True when ``relative_path`` or one of its parent directories is ignored."""
        parts = PurePosixPath(relative_path.replace("\\", "/")).parts
        for depth in range(1, len(parts) + 1):
            directory_match = is_dir or depth < len(parts)
            if self._matches(parts[:depth], directory_match):
                return True
        return False

    def _matches(self, parts: tuple[str, ...], is_dir: bool) -> bool:
        target = self._root.joinpath(*parts)
        governing = [*self._ancestors, self._root]
        governing.extend(self._root.joinpath(*parts[:i]) for i in range(1, len(parts)))
        ignored = False
        # Last matching rule wins; deeper rule files are consulted later
        for directory in governing:
            spec = self._spec_for(directory)
            if spec is None:
                continue
            candidate = target.relative_to(directory).as_posix() + ("/" if is_dir else "")
            for rule in spec.patterns:
                if rule.include is not None and rule.match_file(candidate) is not None:
                    ignored = rule.include
        return ignored


def read_text_file(path: Path, max_size: int) -> str | None:
    """Read a UTF-8 file, returning None for oversized, binary or unreadable files."""
    try:
        if path.stat().st_size > max_size:
            return None
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def scan_directory(root: Path, settings: Settings) -> ScanResult:
    """Walk ``root`` and scan every non-excluded text file.

    Paths in the result are posix paths relative to ``root``. Excluded and
    git-ignored directories are pruned during the walk.
    """
    pattern = compile_pattern(settings.tags_pattern)
    rules = ExclusionRules.from_settings(settings)
    root = root.resolve()
    ignore = GitIgnoreMatcher(root) if settings.respect_gitignore else None

    items: list[TodoItem] = []
    files_scanned = 0
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        kept: list[str] = []
        for d in sorted(dirnames):
            if d in rules.exclude_dirs:
                continue
            relative_dir = (base / d).relative_to(root).as_posix()
            if ignore is not None and ignore.is_ignored(relative_dir, is_dir=True):
                continue
            kept.append(d)
        dirnames[:] = kept
        for name in sorted(filenames):
            full_path = base / name
            if not full_path.is_file():
                continue
            relative = full_path.relative_to(root).as_posix()
            if rules.should_exclude(relative):
                continue
            if ignore is not None and ignore.is_ignored(relative):
                continue
            content = read_text_file(full_path, settings.max_file_size)
            if content is None:
                continue
            items.extend(scan_content(content, relative, pattern))
            files_scanned += 1

    log.debug("directory_scanned", root=str(root), files=files_scanned, items=len(items))
    return ScanResult(items=tuple(items), files_scanned=files_scanned)
