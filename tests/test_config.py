"""Tests for environment-driven settings."""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from subvocab.config import Settings, cefr_label


class TestEnvironment:
    def test_unprefixed_aliases(self, monkeypatch):
        monkeypatch.setenv("API_KEY", "sk-test")
        monkeypatch.setenv("API_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("USER_LEVEL_MIN", "4")
        monkeypatch.setenv("MAX_FILE_SIZE", "1024")

        config = Settings()

        assert config.api_key == "sk-test"
        assert config.api_model == "gpt-4o-mini"
        assert config.user_level_min == 4
        assert config.max_file_size == 1024

    def test_prefixed_fields(self, monkeypatch):
        monkeypatch.setenv("SUBVOCAB_YTDLP_TIMEOUT_SECONDS", "15")
        monkeypatch.setenv("SUBVOCAB_RATE_LIMIT_ENABLED", "false")

        config = Settings()

        assert config.ytdlp_timeout_seconds == 15
        assert config.rate_limit_enabled is False

    def test_comma_separated_lists(self, monkeypatch):
        monkeypatch.setenv("IGNORED_WORDS", "foo, bar,,baz ")
        monkeypatch.setenv("SUPPORTED_FORMATS", ".srt,.ass")

        config = Settings()

        assert config.ignored_words == ["foo", "bar", "baz"]
        assert config.supported_formats == [".srt", ".ass"]

    def test_level_out_of_range(self):
        with pytest.raises(ValidationError):
            Settings(user_level_max=7)


class TestLevels:
    def test_default_band(self):
        assert Settings().level_band == "B1-B2"

    @pytest.mark.parametrize(
        "difficulty, band",
        [(1, "easy"), (3, "easy"), (4, "medium"), (5, "medium"), (6, "hard")],
    )
    def test_band_for(self, difficulty, band):
        assert Settings().band_for(difficulty) == band

    def test_cefr_label_clamps(self):
        assert cefr_label(0) == "A1"
        assert cefr_label(3) == "B1"
        assert cefr_label(9) == "C2"


class TestTempRoot:
    def test_default_under_system_temp(self):
        assert Settings(temp_dir=None).temp_root == Path(tempfile.gettempdir()) / "subvocab"

    def test_explicit(self, tmp_path):
        assert Settings(temp_dir=str(tmp_path)).temp_root == tmp_path
