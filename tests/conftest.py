"""Pytest fixtures for todo-delta tests."""

import subprocess
from pathlib import Path

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Start every session with a fresh settings cache and quiet logging.

    Structured logs go to stderr at WARNING so rendered output on stdout stays
    parseable in CLI tests.
    """
    from todo_delta.config import Settings, get_settings
    from todo_delta.logging import setup_logging

    get_settings.cache_clear()
    setup_logging(Settings(_env_file=None, log_level="WARNING", environment="test"))

    yield

    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Default settings without reading a .env file."""
    from todo_delta.config import Settings

    return Settings(_env_file=None)


@pytest.fixture
def make_settings():
    """Factory for settings with overrides, without reading a .env file."""
    from todo_delta.config import Settings

    def _make(**kwargs):
        return Settings(_env_file=None, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Git helpers
# ---------------------------------------------------------------------------


def _git(repo: Path, *args: str) -> str:
    """Run git in ``repo`` and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """An empty git repository with a committer identity configured."""
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "--quiet")
    _git(repo, "config", "user.email", "tests@example.com")
    _git(repo, "config", "user.name", "Tests")
    _git(repo, "config", "commit.gpgsign", "false")
    return repo
