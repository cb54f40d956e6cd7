"""Configuration module -- exports Settings, load_config, the artist loader, and a module-level singleton."""

from src.config.artist_config import ArtistConfigLoader, ArtistConfigValidator
from src.config.loader import artist_collection_mapping, load_config
from src.config.settings import Settings

settings = Settings()

__all__ = [
    "ArtistConfigLoader",
    "ArtistConfigValidator",
    "Settings",
    "artist_collection_mapping",
    "load_config",
    "settings",
]
