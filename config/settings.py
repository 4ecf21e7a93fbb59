"""
Configuration management for VectorCache.

Provides dataclasses for configuration and utilities
for loading settings from YAML files.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Literal, Optional
import yaml

from vectorcache.core.config import CacheConfig
from vectorcache.utils.logging import set_level


@dataclass
class ShardingConfig:
    """Shard layout and capacity."""
    shard_count: int = 4
    default_nprobe: int = 2
    shard_capacity: Optional[int] = 1000
    max_entries: Optional[int] = None
    capacity_mode: Literal["per_shard", "global"] = "per_shard"
    spill_on_full: bool = False


@dataclass
class EvictionConfig:
    """Eviction policy settings."""
    policy: Optional[Literal["lru", "lfu", "ttl", "random", "score"]] = "lru"
    ttl_seconds: float = 3600.0
    score_recency_weight: float = 0.5


@dataclass
class FilterConfig:
    """Membership filter sizing."""
    false_positive_rate: float = 0.01
    expected_items: int = 10000


@dataclass
class RebuildConfig:
    """k-means rebuild settings."""
    max_iterations: int = 25
    tolerance: float = 1e-4
    interval: Optional[int] = None


@dataclass
class Settings:
    """
    Main settings container for VectorCache.

    Attributes:
        dimension: Embedding dimension
        metric: Distance metric (euclidean, cosine, dot)
        cache_id: Cache identifier used in logs and metrics
        sharding: Shard layout and capacity
        eviction: Eviction policy settings
        filter: Membership filter sizing
        rebuild: k-means rebuild settings
        num_workers: Number of shard worker threads
        shard_timeout: Per-query shard deadline in seconds
        allow_custom_ids: Accept caller-chosen ids
        hit_threshold: Best score a query needs to count as a hit
        seed: Random seed
        log_level: Logging level
    """
    dimension: int = 128
    metric: Literal["euclidean", "cosine", "dot"] = "cosine"
    cache_id: str = "default_cache"

    sharding: ShardingConfig = field(default_factory=ShardingConfig)
    eviction: EvictionConfig = field(default_factory=EvictionConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    rebuild: RebuildConfig = field(default_factory=RebuildConfig)

    num_workers: int = 4
    shard_timeout: Optional[float] = None
    allow_custom_ids: bool = False
    hit_threshold: Optional[float] = None
    seed: Optional[int] = None
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        """Create Settings from dictionary."""
        data = dict(data)

        # Extract nested configs
        sharding_data = data.pop("sharding", None) or {}
        eviction_data = data.pop("eviction", None) or {}
        filter_data = data.pop("filter", None) or {}
        rebuild_data = data.pop("rebuild", None) or {}

        return cls(
            sharding=ShardingConfig(**sharding_data),
            eviction=EvictionConfig(**eviction_data),
            filter=FilterConfig(**filter_data),
            rebuild=RebuildConfig(**rebuild_data),
            **data
        )

    def to_dict(self) -> dict:
        """Convert Settings to dictionary."""
        return asdict(self)

    def to_cache_config(self) -> CacheConfig:
        """
        Build the CacheConfig these settings describe.

        Raises:
            ValueError: If the settings are invalid
        """
        return CacheConfig(
            dimension=self.dimension,
            shard_count=self.sharding.shard_count,
            distance_metric=self.metric,
            eviction_policy=self.eviction.policy,
            filter_false_positive_rate=self.filter.false_positive_rate,
            default_nprobe=self.sharding.default_nprobe,
            shard_capacity=self.sharding.shard_capacity,
            max_entries=self.sharding.max_entries,
            capacity_mode=self.sharding.capacity_mode,
            ttl_seconds=self.eviction.ttl_seconds,
            score_recency_weight=self.eviction.score_recency_weight,
            kmeans_max_iterations=self.rebuild.max_iterations,
            kmeans_tolerance=self.rebuild.tolerance,
            rebuild_interval=self.rebuild.interval,
            num_workers=self.num_workers,
            shard_timeout=self.shard_timeout,
            allow_custom_ids=self.allow_custom_ids,
            spill_on_full=self.sharding.spill_on_full,
            hit_threshold=self.hit_threshold,
            filter_expected_items=self.filter.expected_items,
            seed=self.seed,
            cache_id=self.cache_id,
            debug=self.log_level.upper() == "DEBUG",
        )

    def apply_logging(self) -> None:
        """Set the package log level from ``log_level``."""
        set_level(self.log_level)


def get_default_config_path() -> Path:
    """Get path to default configuration file."""
    # Environment variable wins
    env_config = os.environ.get("VECTORCACHE_CONFIG")
    if env_config:
        return Path(env_config)

    # Check for config in current directory
    local_config = Path("./config/default_config.yaml")
    if local_config.exists():
        return local_config

    # Fall back to the file shipped next to this module
    return Path(__file__).parent / "default_config.yaml"


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default.

    Returns:
        Settings object with loaded configuration

    Example:
        >>> settings = load_config()
        >>> settings = load_config("./my_config.yaml")
        >>> cache = VectorCache(settings.to_cache_config())
    """
    if config_path is None:
        path = get_default_config_path()
    else:
        path = Path(config_path)

    if not path.exists():
        # Return default settings if no config file
        return Settings()

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return Settings()

    return Settings.from_dict(data)
