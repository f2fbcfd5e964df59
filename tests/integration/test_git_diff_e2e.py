"""End-to-end diff tests against real git repositories.

Each test builds a small repository in ``tmp_path`` and runs the diff driver
(or the CLI) against it with the real git executable.
"""

import json
import shutil
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from todo_delta.cli import main
from todo_delta.config import Settings
from todo_delta.diff import NotARepositoryError, RefNotFoundError, compute_diff
from todo_delta.git import SubprocessGit
from todo_delta.scanner import scan_directory

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("git") is None, reason="git executable not found"),
]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=repo, capture_output=True, text=True, check=True
    )
    return result.stdout


def _commit(repo: Path, message: str = "update") -> str:
    _git(repo, "add", "-A")
    _git(repo, "commit", "--quiet", "--allow-empty", "-m", message)
    return _git(repo, "rev-parse", "HEAD").strip()


def _write(repo: Path, relative: str, content: str) -> None:
    path = repo / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _diff(repo: Path, ref: str = "HEAD", **overrides):
    settings = Settings(_env_file=None, **overrides)
    return compute_diff(scan_directory(repo, settings), ref, repo, settings)


class TestWorkingTreeDiff:
    """Diffs between HEAD and uncommitted changes."""

    def test_added_and_removed_in_edited_file(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: old task\n# FIXME: keep\n")
        _commit(git_repo)
        _write(git_repo, "app.py", "# FIXME: keep\n\n# TODO: new task\n")

        result = _diff(git_repo)

        assert [i.message for i in result.added] == ["new task"]
        assert [i.message for i in result.removed] == ["old task"]

    def test_clean_tree_is_empty(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: one\n")
        _commit(git_repo)
        assert _diff(git_repo).entries == ()

    def test_staged_changes_count(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: one\n")
        _commit(git_repo)
        _write(git_repo, "app.py", "# TODO: one\n# HACK: staged\n")
        _git(git_repo, "add", "app.py")

        assert [i.message for i in _diff(git_repo).added] == ["staged"]

    def test_untracked_file(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: one\n")
        _commit(git_repo)
        _write(git_repo, "pkg/new.py", "# BUG: fresh\n")

        result = _diff(git_repo)
        assert [(i.file, i.message) for i in result.added] == [("pkg/new.py", "fresh")]
        assert result.removed == []

    def test_deleted_file(self, git_repo: Path):
        _write(git_repo, "gone.py", "# TODO: one\n# NOTE: two\n")
        _write(git_repo, "kept.py", "# TODO: kept\n")
        _commit(git_repo)
        (git_repo / "gone.py").unlink()

        result = _diff(git_repo)
        assert sorted(i.message for i in result.removed) == ["one", "two"]
        assert result.added == []

    def test_moved_annotation_is_not_a_change(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: stays\n")
        _commit(git_repo)
        _write(git_repo, "app.py", "import os\n\n\n# TODO: stays\n")
        assert _diff(git_repo).entries == ()

    def test_file_grown_past_size_limit_is_not_a_removal(self, git_repo: Path):
        _write(git_repo, "big.py", "# TODO: keep me\n")
        _commit(git_repo)
        _write(git_repo, "big.py", "# TODO: keep me\n" + "x = 1\n" * 50)

        assert _diff(git_repo, max_file_size=100).entries == ()

    def test_file_over_size_limit_at_ref_is_not_an_addition(self, git_repo: Path):
        _write(git_repo, "big.py", "# TODO: keep me\n" + "x = 1\n" * 50)
        _commit(git_repo)
        _write(git_repo, "big.py", "# TODO: keep me\n")

        assert _diff(git_repo, max_file_size=100).entries == ()

    def test_gitignored_untracked_file(self, git_repo: Path):
        _write(git_repo, ".gitignore", "generated/\n")
        _write(git_repo, "app.py", "# TODO: one\n")
        _commit(git_repo)
        _write(git_repo, "generated/out.py", "# TODO: generated\n")

        assert _diff(git_repo).entries == ()


class TestRefDiff:
    """Diffs against earlier commits."""

    def test_against_earlier_commit(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: first\n")
        first = _commit(git_repo, "first")
        _write(git_repo, "app.py", "# TODO: first\n# TODO: second\n")
        _commit(git_repo, "second")

        assert _diff(git_repo).entries == ()
        result = _diff(git_repo, first)
        assert result.base_ref == first
        assert [i.message for i in result.added] == ["second"]

    def test_non_ascii_path(self, git_repo: Path):
        _write(git_repo, "naïve.py", "# TODO: unicode\n")
        _commit(git_repo, "first")
        _write(git_repo, "naïve.py", "# TODO: changed\n")

        result = _diff(git_repo)
        assert [i.file for i in result.added] == ["naïve.py"]
        assert [i.file for i in result.removed] == ["naïve.py"]

    def test_root_in_subdirectory(self, git_repo: Path):
        _write(git_repo, "sub/app.py", "# TODO: old\n")
        _write(git_repo, "other.py", "# TODO: elsewhere\n")
        _commit(git_repo)
        _write(git_repo, "sub/app.py", "# TODO: new\n")
        _write(git_repo, "other.py", "# TODO: ignored\n")

        result = _diff(git_repo / "sub")
        assert [(i.file, i.message) for i in result.added] == [("app.py", "new")]
        assert [(i.file, i.message) for i in result.removed] == [("app.py", "old")]


class TestErrors:
    def test_unknown_ref(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: one\n")
        _commit(git_repo)
        with pytest.raises(RefNotFoundError) as exc_info:
            _diff(git_repo, "no-such-branch")
        assert exc_info.value.ref == "no-such-branch"

    def test_not_a_repository(self, tmp_path: Path):
        plain = tmp_path / "plain"
        plain.mkdir()
        # Stop git from discovering a repository above tmp_path
        with patch.dict("os.environ", {"GIT_CEILING_DIRECTORIES": str(tmp_path)}):
            with pytest.raises(NotARepositoryError):
                _diff(plain)

    def test_subprocess_backend_lists_tree(self, git_repo: Path):
        _write(git_repo, "a.py", "x\n")
        _write(git_repo, "b/c.py", "y\n")
        _commit(git_repo)
        assert SubprocessGit(git_repo).list_tree("HEAD") == ["a.py", "b/c.py"]


class TestCli:
    def test_diff_json(self, git_repo: Path):
        _write(git_repo, "app.py", "# TODO: one\n")
        _commit(git_repo)
        _write(git_repo, "app.py", "# TODO: one\n# BUG: two\n")

        with patch("todo_delta.cli.setup_logging"):
            result = CliRunner().invoke(
                main, ["diff", "--root", str(git_repo), "--format", "json"]
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["added_count"] == 1
        assert data["entries"][0]["item"]["message"] == "two"

    def test_diff_unknown_ref_exits_1(self, git_repo: Path):
        _commit(git_repo)
        with patch("todo_delta.cli.setup_logging"):
            result = CliRunner().invoke(main, ["diff", "--root", str(git_repo), "--ref", "nope"])
        assert result.exit_code == 1
        assert "nope" in result.output
