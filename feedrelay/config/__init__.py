"""Configuration package."""

from .settings import FeedRelaySettings, load_settings, read_config_file

__all__ = ["FeedRelaySettings", "load_settings", "read_config_file"]
