"""Pipeline configuration.

All durations are in seconds. The core never reads the environment; the
embedding program (see ``dispatchinator.cli``) builds a PipelineConfig from
flags and environment variables.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet

DEFAULT_CACHEABLE_PREFIXES = frozenset({"/weather", "/repo", "/user"})


def _default_prefix_ttls() -> Dict[str, float]:
    # Weather changes more often than GitHub data
    return {
        "/weather": 15 * 60.0,
        "/repo": 30 * 60.0,
        "/user": 30 * 60.0,
    }


@dataclass
class CacheConfig:
    """Response cache settings.

    Attributes:
        default_ttl_seconds: TTL for cacheable prefixes without an override
        per_prefix_ttl: Prefix -> TTL overrides
        sweep_interval_seconds: How often expired entries are reclaimed
        mark_hits: Prepend HIT_MARKER to responses served from cache
    """
    default_ttl_seconds: float = 10 * 60.0
    per_prefix_ttl: Dict[str, float] = field(default_factory=_default_prefix_ttls)
    sweep_interval_seconds: float = 5 * 60.0
    mark_hits: bool = True

    def ttl_for(self, prefix: str) -> float:
        return self.per_prefix_ttl.get(prefix, self.default_ttl_seconds)


@dataclass
class RateLimitConfig:
    """Sliding-window rate limit settings."""
    max_requests: int = 10
    window_seconds: float = 60.0
    cleanup_interval_seconds: float = 10 * 60.0


@dataclass
class ValidationConfig:
    """Input validation settings."""
    max_length: int = 500


@dataclass
class MetricsConfig:
    """Metrics collection settings."""
    slow_threshold_seconds: float = 2.0


@dataclass
class PipelineConfig:
    """Top-level configuration for a CommandPipeline.

    Attributes:
        cache: Response cache settings
        cacheable_prefixes: The only prefixes subject to response caching
        ratelimit: Per-user rate limit settings
        validation: Input validation settings
        metrics: Metrics settings
        request_timeout_seconds: Deadline adapters give each dispatch
        activity_workers: Worker threads for background activity logging
    """
    cache: CacheConfig = field(default_factory=CacheConfig)
    cacheable_prefixes: FrozenSet[str] = DEFAULT_CACHEABLE_PREFIXES
    ratelimit: RateLimitConfig = field(default_factory=RateLimitConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    request_timeout_seconds: float = 30.0
    activity_workers: int = 2

    def __post_init__(self):
        self.cacheable_prefixes = frozenset(self.cacheable_prefixes)
        if self.ratelimit.max_requests < 1:
            raise ValueError("ratelimit.max_requests must be at least 1")
        if self.ratelimit.window_seconds <= 0:
            raise ValueError("ratelimit.window_seconds must be positive")
        if self.cache.default_ttl_seconds <= 0:
            raise ValueError("cache.default_ttl_seconds must be positive")
        if self.validation.max_length < 1:
            raise ValueError("validation.max_length must be at least 1")
