"""
Configuration module for VectorCache.

This module provides configuration management including
loading settings from YAML files and environment variables.

Example:
    >>> from config import Settings, load_config
    >>>
    >>> # Load default config
    >>> settings = load_config()
    >>>
    >>> # Build a cache from it
    >>> cache = VectorCache(settings.to_cache_config())
"""

from .settings import (
    Settings,
    ShardingConfig,
    EvictionConfig,
    FilterConfig,
    RebuildConfig,
    load_config,
    get_default_config_path,
)

__all__ = [
    "Settings",
    "ShardingConfig",
    "EvictionConfig",
    "FilterConfig",
    "RebuildConfig",
    "load_config",
    "get_default_config_path",
]
