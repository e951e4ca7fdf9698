"""Configuration: environment settings, YAML loading and the election config model."""

from election_updater.config.election import County, ElectionConfig, SourceTierRule
from election_updater.config.loader import load_config, load_election_config
from election_updater.config.settings import Settings

__all__ = [
    "County",
    "ElectionConfig",
    "Settings",
    "SourceTierRule",
    "load_config",
    "load_election_config",
]
