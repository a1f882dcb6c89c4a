"""Runtime settings for the chat relay, read from the environment and `.env`."""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"


class Settings(BaseSettings):
    """Relay configuration.

    Everything has a default except the provider API key, which the Gemini
    client checks for itself when it is first constructed. Blank variables
    count as unset.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    host: str = Field(default="0.0.0.0", validation_alias="RELAY_HOST")
    port: int = Field(default=3000, validation_alias="RELAY_PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model: str = Field(default=DEFAULT_GEMINI_MODEL, validation_alias="GEMINI_MODEL")
    eviction_delay_seconds: int = Field(
        default=3600, ge=0, validation_alias="EVICTION_DELAY_SECONDS"
    )
    eviction_interval_seconds: int = Field(
        default=60, gt=0, validation_alias="EVICTION_INTERVAL_SECONDS"
    )
    # 0 disables the sliding window
    max_history_turns: int = Field(default=100, ge=0, validation_alias="MAX_HISTORY_TURNS")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def history_cap(self) -> int | None:
        """Turn cap for the conversation store, None when disabled."""
        return self.max_history_turns or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings (read once)."""
    return Settings()
