"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- election-cycle data checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set by the scheduler at deploy time

``load_config`` returns the merged dictionary; ``load_election_config``
validates its ``election`` section into an :class:`ElectionConfig`.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from election_updater.config.election import ElectionConfig
from election_updater.config.settings import Settings
from election_updater.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file yields
              an empty base, so every value falls back to its default.
        settings: Pre-built settings; constructed from the environment if omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(message=f"{path} must contain a mapping at the top level")

    settings = settings or Settings()
    env_overrides = {
        "research": {
            "model": settings.research_model,
            "timeout_seconds": settings.research_timeout_seconds,
        },
        "store": {
            "backend": settings.store_backend,
            "db_path": settings.store_db_path,
        },
        "run": {
            "skip_county_refresh": settings.skip_county_refresh,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_election_config(
    path: str = "config/config.yaml", settings: Settings | None = None
) -> ElectionConfig:
    """Load and validate the ``election`` section of the config file.

    Raises:
        ConfigurationError: If the section does not match :class:`ElectionConfig`.
    """
    config = load_config(path, settings)
    try:
        return ElectionConfig.model_validate(config.get("election") or {})
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid election config in {path}: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
