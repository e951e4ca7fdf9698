"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two sources, highest priority first:

  1. Environment variables, e.g. ``ANTHROPIC_API_KEY=sk-ant-...``
  2. A ``.env`` file in the working directory (local development only)

Field ``anthropic_api_key`` maps to env var ``ANTHROPIC_API_KEY``; defaults
apply when neither source sets a value.  Election-specific data (dates,
parties, counties, source tiers) lives in ``config/config.yaml`` and is
loaded by :func:`election_updater.config.loader.load_config`.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Election updater settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Research service ===
    # Empty string = "not configured"; the CLI refuses to start a live run.
    anthropic_api_key: str = ""
    research_model: str = "claude-sonnet-4-20250514"
    research_timeout_seconds: float = 180.0

    # === Storage ===
    # "sqlite" persists to store_db_path; "memory" is for dry runs and tests.
    store_backend: str = "sqlite"
    store_db_path: str = "data/election_store.db"

    # === Election configuration file ===
    config_path: str = "config/config.yaml"

    # === Run behaviour ===
    skip_county_refresh: bool = False

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def has_research_credentials(self) -> bool:
        return bool(self.anthropic_api_key)
