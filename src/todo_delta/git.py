"""Git access — subprocess runner and the capability used by the diff driver."""

from __future__ import annotations

import subprocess  # nosec B404
from pathlib import Path
from typing import Protocol, runtime_checkable

DEFAULT_TIMEOUT = 30.0


class GitError(Exception):
    """A git invocation failed (non-zero exit, timeout, or unreadable output)."""

    def __init__(self, args: list[str], stderr: str):
        self.args_list = list(args)
        self.stderr = stderr.strip()
        super().__init__(f"git {' '.join(self.args_list)} failed: {self.stderr}")

    @property
    def not_a_repository(self) -> bool:
        return "not a git repository" in self.stderr.lower()


def run_git(args: list[str], cwd: Path, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Run `git <args>` in ``cwd`` and return stdout.

    Raises GitError on non-zero exit, timeout, a missing git executable or
    stdout that is not valid UTF-8.
    """
    try:
        result = subprocess.run(  # nosec B603 B607
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise GitError(args, f"timed out after {timeout}s") from e
    except OSError as e:
        raise GitError(args, str(e)) from e

    if result.returncode != 0:
        raise GitError(args, result.stderr.decode("utf-8", errors="replace"))
    try:
        return result.stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise GitError(args, "git output is not valid UTF-8") from e


def _split_lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


@runtime_checkable
class GitBackend(Protocol):
    """Version-control operations needed to diff against a ref."""

    def list_tree(self, ref: str) -> list[str]:
        """Every file path present at ``ref``."""
        ...

    def diff_names(self, ref: str | None = None, *, cached: bool = False) -> list[str]:
        """Paths that differ (ref vs index when cached, else index vs worktree)."""
        ...

    def show_file_at(self, ref: str, path: str) -> str:
        """Content of ``path`` at ``ref``."""
        ...


class SubprocessGit:
    """GitBackend implemented with the git command line."""

    def __init__(self, root: Path, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._root = root
        self._timeout = timeout

    @property
    def root(self) -> Path:
        return self._root

    def _run(self, args: list[str]) -> str:
        # Unquoted paths so listings match the names produced by the scanner
        return run_git(["-c", "core.quotepath=off", *args], self._root, timeout=self._timeout)

    def list_tree(self, ref: str) -> list[str]:
        return _split_lines(self._run(["ls-tree", "-r", "--name-only", ref, "--"]))

    def diff_names(self, ref: str | None = None, *, cached: bool = False) -> list[str]:
        args = ["diff", "--name-only", "--relative"]
        if cached:
            args.append("--cached")
        if ref is not None:
            args.append(ref)
        args.append("--")
        return _split_lines(self._run(args))

    def show_file_at(self, ref: str, path: str) -> str:
        return self._run(["show", f"{ref}:./{path}"])
