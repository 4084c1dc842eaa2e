# strikegrid/config/__init__.py
"""Configuration package for strikegrid."""

from .settings import settings, Settings, ConfigError
from .sources import parse_sources

__all__ = ["settings", "Settings", "ConfigError", "parse_sources"]
