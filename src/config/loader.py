"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  -- artist -> collection mapping, schedule
#   2. .env file           -- local overrides (not committed)
#   3. Environment vars    -- set at deploy time
#
# Example config.yaml:
#
#   artists:
#     Grateful Dead: GratefulDead
#     Phish: phish
#   schedule:
#     import_limit: 50
#     incremental: true
#
# The _deep_merge helper does recursive dict merging:
#   base = {"archive": {"timeout": 10}}
#   overrides = {"archive": {"retry_attempts": 3}}
#   result = {"archive": {"timeout": 10, "retry_attempts": 3}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to merge; a fresh one is built when omitted.

    Returns:
        Fully resolved configuration dictionary.  ``artists`` is always
        present (possibly empty).
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(f"Top level of {config_path} must be a mapping")

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "archive": {
            "base_url": settings.archive_base_url,
            "timeout": settings.archive_timeout,
            "retry_attempts": settings.retry_attempts,
            "rate_limit_ms": settings.rate_limit_ms,
        },
        "circuit": {
            "threshold": settings.circuit_threshold,
            "reset_seconds": settings.circuit_reset_seconds,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    yaml_config.setdefault("artists", {})
    yaml_config.setdefault("schedule", {})
    return yaml_config


def artist_collection_mapping(config: dict) -> dict[str, str]:
    """Return the ``artist name -> collection id`` mapping from a loaded config.

    Raises:
        ConfigurationError: When an entry has no collection id.
    """
    artists = config.get("artists") or {}
    if not isinstance(artists, dict):
        raise ConfigurationError("'artists' must map artist names to collection ids")

    mapping: dict[str, str] = {}
    for artist_name, collection_id in artists.items():
        if not collection_id:
            raise ConfigurationError(
                f"No archive collection configured for artist '{artist_name}'"
            )
        mapping[str(artist_name)] = str(collection_id)
    return mapping


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
