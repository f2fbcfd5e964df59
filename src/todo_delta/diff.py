"""Annotation diffing — snapshot reconciliation and the git-scoped diff driver.

Two snapshots are compared by identity key (file, tag, normalised message),
never by line number, so moving an annotation is not a change while editing
its tag or message is a removal plus an addition.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from todo_delta.git import GitBackend, GitError, SubprocessGit
from todo_delta.logging import get_logger
from todo_delta.models import DiffEntry, DiffResult, DiffStatus, FileUpdate, ScanResult, TodoItem
from todo_delta.scanner import ExclusionRules, GitIgnoreMatcher, compile_pattern, scan_content

if TYPE_CHECKING:
    from todo_delta.config import Settings

log = get_logger("todo_delta.diff")


class DiffError(Exception):
    """Base exception for a failed diff invocation."""


class InvalidRefError(DiffError):
    """The ref is empty or could be mistaken for a git option."""

    def __init__(self, ref: str):
        super().__init__(f"invalid git ref {ref!r}: must be non-empty and not start with '-'")
        self.ref = ref


class RefNotFoundError(DiffError):
    """Files could not be listed at the ref."""

    def __init__(self, ref: str, detail: str = ""):
        message = f"failed to list files at ref {ref!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.ref = ref
        self.detail = detail


class NotARepositoryError(DiffError):
    """The root is not inside a git work tree."""

    def __init__(self, path: Path, detail: str = ""):
        super().__init__(f"{path} is not a git repository")
        self.path = path
        self.detail = detail


# ---------------------------------------------------------------------------
# Snapshot reconciliation
# ---------------------------------------------------------------------------


def _surplus(items: Iterable[TodoItem], other_counts: Counter[str]) -> list[TodoItem]:
    """Items not matched one-for-one by an equal key on the other side."""
    remaining = Counter(other_counts)
    surplus: list[TodoItem] = []
    for item in items:
        key = item.match_key
        if remaining[key] > 0:
            remaining[key] -= 1
            continue
        surplus.append(item)
    return surplus


def reconcile(old: Sequence[TodoItem], new: Sequence[TodoItem]) -> FileUpdate:
    """Compare two snapshots by identity key.

    Keys are counted, so when one side holds more copies of a key than the
    other only the extra copies are reported (earliest copies are matched
    first). A key missing on one side reports every copy on the other.
    """
    old_counts = Counter(item.match_key for item in old)
    new_counts = Counter(item.match_key for item in new)
    return FileUpdate(added=_surplus(new, old_counts), removed=_surplus(old, new_counts))


def diff_snapshots(
    base: Sequence[TodoItem],
    current: Sequence[TodoItem],
    base_ref: str = "",
) -> DiffResult:
    """Partition two snapshots into Added (current only) and Removed (base only)."""
    update = reconcile(base, current)
    entries = [DiffEntry(status=DiffStatus.ADDED, item=item) for item in update.added]
    entries.extend(DiffEntry(status=DiffStatus.REMOVED, item=item) for item in update.removed)
    return DiffResult(entries=tuple(entries), base_ref=base_ref)


# ---------------------------------------------------------------------------
# Git-scoped diff
# ---------------------------------------------------------------------------


def validate_ref(ref: str) -> None:
    """Reject refs that git would parse as an option."""
    if not ref or ref.startswith("-"):
        raise InvalidRefError(ref)


def detect_changed_files(
    base_ref: str,
    git: GitBackend,
    base_files: set[str],
    current: ScanResult,
) -> set[str]:
    """Files that may differ between ``base_ref`` and the working tree.

    Union of ref-vs-index changes, index-vs-worktree changes and files that
    only exist in the current scan. When git cannot list changes (shallow
    clone, detached state) every known file is treated as changed.
    """
    try:
        staged = git.diff_names(base_ref, cached=True)
        unstaged = git.diff_names()
    except GitError as e:
        all_files = set(base_files) | current.files
        log.warning(
            "changed_files_fallback",
            base_ref=base_ref,
            error=str(e),
            files=len(all_files),
        )
        return all_files

    changed = set(staged) | set(unstaged)
    changed.update(path for path in current.files if path not in base_files)
    return changed


def _list_base_files(git: GitBackend, base_ref: str, root: Path) -> set[str]:
    try:
        return set(git.list_tree(base_ref))
    except GitError as e:
        if e.not_a_repository:
            raise NotARepositoryError(root, e.stderr) from e
        raise RefNotFoundError(base_ref, e.stderr) from e


def _exceeds_size(path: Path, max_size: int) -> bool:
    try:
        return path.stat().st_size > max_size
    except OSError:
        return False


def compute_diff(
    current: ScanResult,
    base_ref: str,
    root: Path,
    settings: Settings,
    git: GitBackend | None = None,
) -> DiffResult:
    """Diff the current scan against the annotations present at ``base_ref``.

    Only files in the changed-file set are read at the ref and compared.
    Files that are excluded, git-ignored or larger than ``max_file_size``
    on either side are left out of the comparison.

    Raises:
        InvalidRefError: ``base_ref`` is empty or starts with '-'.
        PatternCompileError: the configured tag pattern is invalid.
        NotARepositoryError: ``root`` is not inside a git repository.
        RefNotFoundError: files cannot be listed at ``base_ref``.
    """
    validate_ref(base_ref)
    pattern = compile_pattern(settings.tags_pattern)
    rules = ExclusionRules.from_settings(settings)
    ignore = GitIgnoreMatcher(root) if settings.respect_gitignore else None
    git = git or SubprocessGit(root, timeout=settings.git_timeout)

    base_files = _list_base_files(git, base_ref, root)
    changed_files = detect_changed_files(base_ref, git, base_files, current)

    base_items: list[TodoItem] = []
    skipped = 0
    excluded: set[str] = set()
    oversized: set[str] = set()
    for path in sorted(changed_files):
        if rules.should_exclude(path) or (ignore is not None and ignore.is_ignored(path)):
            excluded.add(path)
            continue
        if _exceeds_size(root / path, settings.max_file_size):
            oversized.add(path)
            continue
        if path not in base_files:
            continue  # new file, nothing at the ref
        try:
            content = git.show_file_at(base_ref, path)
        except GitError as e:
            # Binary or unreadable at the ref
            skipped += 1
            log.debug("base_file_skipped", base_ref=base_ref, path=path, error=str(e))
            continue
        if len(content.encode("utf-8")) > settings.max_file_size:
            oversized.add(path)
            continue
        base_items.extend(scan_content(content, path, pattern))

    # A file over the size ceiling on either side is left out of both
    compared = changed_files - excluded - oversized
    current_items = [item for item in current.items if item.file in compared]
    if oversized:
        log.debug("oversized_files_skipped", base_ref=base_ref, paths=sorted(oversized))
    result = diff_snapshots(base_items, current_items, base_ref=base_ref)

    log.info(
        "diff_computed",
        base_ref=base_ref,
        changed_files=len(changed_files),
        skipped_files=skipped,
        added=result.added_count,
        removed=result.removed_count,
    )
    return result
