"""Tests for configuration management."""

import pytest
from pydantic import ValidationError

from todo_delta.config import (
    CONFIG_FILE_NAME,
    DEFAULT_EXCLUDE_DIRS,
    DEFAULT_MAX_FILE_SIZE,
    get_settings,
    load_settings,
    read_config_file,
)
from todo_delta.models import Tag


def create_test_settings(**kwargs):
    """Helper to create Settings instance without loading .env file."""
    from todo_delta.config import Settings

    return Settings(_env_file=None, **kwargs)


class TestSettingsDefaults:
    """Tests for default values."""

    def test_defaults(self):
        settings = create_test_settings()
        assert settings.tags == [tag.value for tag in Tag]
        assert settings.tags_pattern_override is None
        assert settings.exclude_dirs == DEFAULT_EXCLUDE_DIRS
        assert settings.exclude_patterns == []
        assert settings.max_file_size == DEFAULT_MAX_FILE_SIZE == 10 * 1024 * 1024
        assert settings.debounce_ms == 500
        assert settings.git_timeout == 30.0
        assert settings.log_level == "WARNING"
        assert settings.is_development

    def test_tag_set(self):
        settings = create_test_settings(tags=["todo", "bug"])
        assert settings.tag_set == {Tag.TODO, Tag.BUG}

    def test_log_file_path(self):
        settings = create_test_settings(log_directory="/tmp/logs")
        assert settings.log_file_path == "/tmp/logs/todo_delta.log"


class TestSettingsFromEnv:
    """Tests for loading settings from environment variables."""

    def test_comma_separated_lists(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that list settings accept comma-separated environment values."""
        monkeypatch.setenv("TODO_DELTA_TAGS", "todo, fixme")
        monkeypatch.setenv("TODO_DELTA_EXCLUDE_DIRS", "vendor,third_party")
        monkeypatch.setenv("TODO_DELTA_EXCLUDE_PATTERNS", r"\.min\.js$")

        settings = create_test_settings()
        assert settings.tags == ["TODO", "FIXME"]
        assert settings.exclude_dirs == ["vendor", "third_party"]
        assert settings.exclude_patterns == [r"\.min\.js$"]

    def test_scalar_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TODO_DELTA_MAX_FILE_SIZE", "2048")
        monkeypatch.setenv("TODO_DELTA_DEBOUNCE_MS", "250")
        monkeypatch.setenv("TODO_DELTA_LOG_LEVEL", "debug")

        settings = create_test_settings()
        assert settings.max_file_size == 2048
        assert settings.debounce_ms == 250
        assert settings.log_level == "DEBUG"

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestSettingsValidation:
    """Tests for field validators."""

    def test_tags_are_normalized_and_deduplicated(self):
        settings = create_test_settings(tags=["todo", "TODO", "Hack"])
        assert settings.tags == ["TODO", "HACK"]

    def test_unknown_tag_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            create_test_settings(tags=["TODO", "OPTIMIZE"])
        assert "OPTIMIZE" in str(exc_info.value)

    def test_empty_tags_rejected(self):
        with pytest.raises(ValidationError):
            create_test_settings(tags=[])

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError) as exc_info:
            create_test_settings(log_level="LOUD")
        assert "log_level must be one of" in str(exc_info.value)

    @pytest.mark.parametrize("field", ["max_file_size", "debounce_ms"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            create_test_settings(**{field: 0})


class TestTagsPattern:
    """Tests for the generated scanner pattern."""

    def test_generated_from_tags(self):
        settings = create_test_settings(tags=["TODO", "FIXME"])
        assert settings.tags_pattern.startswith("(?i)\\b(TODO|FIXME)")

    def test_override_wins(self):
        settings = create_test_settings(tags_pattern_override=r"@(todo)\s+(.*)")
        assert settings.tags_pattern == r"@(todo)\s+(.*)"


class TestConfigFile:
    """Tests for the project config file."""

    def test_missing_file(self, tmp_path):
        assert read_config_file(tmp_path) == {}

    def test_load_settings_reads_file(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text(
            'tags = ["TODO", "BUG"]\nexclude_dirs = ["generated"]\ndebounce_ms = 100\n'
        )
        settings = load_settings(tmp_path)
        assert settings.tags == ["TODO", "BUG"]
        assert settings.exclude_dirs == ["generated"]
        assert settings.debounce_ms == 100

    def test_overrides_beat_file(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text("debounce_ms = 100\n")
        settings = load_settings(tmp_path, debounce_ms=900)
        assert settings.debounce_ms == 900

    def test_none_overrides_are_ignored(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text("debounce_ms = 100\n")
        settings = load_settings(tmp_path, debounce_ms=None)
        assert settings.debounce_ms == 100

    def test_file_beats_environment(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TODO_DELTA_DEBOUNCE_MS", "300")
        (tmp_path / CONFIG_FILE_NAME).write_text("debounce_ms = 100\n")
        assert load_settings(tmp_path).debounce_ms == 100

    def test_invalid_file_value_raises(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text('tags = ["NOPE"]\n')
        with pytest.raises(ValidationError):
            load_settings(tmp_path)
