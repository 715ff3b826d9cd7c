"""Configuration module for trade-council."""

from pathlib import Path

from trade_council.config.defaults import DEFAULT_PROVIDERS, DEFAULT_TEAMS, default_config
from trade_council.config.models import (
    EngineConfig,
    ProviderSpec,
    TeamSpec,
    resolve_credential,
    resolve_credentials,
    schedule_problems,
)


def load_config(path: Path | None = None) -> EngineConfig:
    """Load a YAML config file, or the default catalogue when *path* is None."""
    if path is None:
        return default_config()
    return EngineConfig.from_yaml(path)


__all__ = [
    "DEFAULT_PROVIDERS",
    "DEFAULT_TEAMS",
    "EngineConfig",
    "ProviderSpec",
    "TeamSpec",
    "default_config",
    "load_config",
    "resolve_credential",
    "resolve_credentials",
    "schedule_problems",
]
