"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from chat_relay.config import DEFAULT_GEMINI_MODEL, Settings, get_settings

SETTING_VARS = (
    "RELAY_HOST",
    "RELAY_PORT",
    "LOG_LEVEL",
    "GEMINI_MODEL",
    "EVICTION_DELAY_SECONDS",
    "EVICTION_INTERVAL_SECONDS",
    "MAX_HISTORY_TURNS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in SETTING_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    """Tests for Settings loaded from the environment."""

    def test_defaults(self, clean_env):
        settings = Settings()

        assert settings.host == "0.0.0.0"
        assert settings.port == 3000
        assert settings.log_level == "INFO"
        assert settings.gemini_api_key is None
        assert settings.gemini_model == DEFAULT_GEMINI_MODEL
        assert settings.eviction_delay_seconds == 3600
        assert settings.eviction_interval_seconds == 60
        assert settings.history_cap == 100

    def test_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("RELAY_PORT", "8080")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("GEMINI_API_KEY", "key")
        monkeypatch.setenv("EVICTION_DELAY_SECONDS", "5")
        monkeypatch.setenv("MAX_HISTORY_TURNS", "0")

        settings = Settings()

        assert settings.port == 8080
        assert settings.log_level == "DEBUG"
        assert settings.gemini_api_key == "key"
        assert settings.eviction_delay_seconds == 5
        assert settings.history_cap is None

    def test_google_api_key_fallback(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "google-key")

        assert Settings().gemini_api_key == "google-key"

    def test_blank_value_uses_default(self, clean_env, monkeypatch):
        monkeypatch.setenv("RELAY_PORT", "")
        assert Settings().port == 3000

    def test_negative_cap_rejected(self, clean_env, monkeypatch):
        monkeypatch.setenv("MAX_HISTORY_TURNS", "-1")
        with pytest.raises(ValidationError):
            Settings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestDotenv:
    """Tests for settings read from a .env file."""

    def test_reads_dotenv_in_working_directory(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("GEMINI_API_KEY=from-file\nRELAY_PORT=4000\n")

        settings = Settings()

        assert settings.gemini_api_key == "from-file"
        assert settings.port == 4000

    def test_environment_wins_over_dotenv(self, clean_env, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text("RELAY_PORT=4000\n")
        monkeypatch.setenv("RELAY_PORT", "5000")

        assert Settings().port == 5000

    def test_explicit_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "relay.env"
        env_file.write_text("GEMINI_MODEL=gemini-test\n")

        assert Settings(_env_file=env_file).gemini_model == "gemini-test"
