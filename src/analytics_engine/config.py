"""
Configuration for the analytics aggregation engine.
"""
import logging
from dataclasses import dataclass
from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# Cache defaults
DEFAULT_MAX_CACHE_ENTRIES = 500
DEFAULT_EVICTION_TARGET_RATIO = 0.9
DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000  # 5 minutes
DEFAULT_SWEEP_INTERVAL_SECONDS = 10 * 60  # 10 minutes

# Aggregate result lifetimes
DAILY_STATS_TTL_MS = 60 * 60 * 1000  # 1 hour
WEEKLY_STATS_TTL_MS = 2 * 60 * 60 * 1000  # 2 hours

TOP_PAGES_LIMIT = 10
COHORT_PERIODS = 12


class InvalidConfigError(ValueError):
    """Raised when an engine setting is missing or out of range."""
    pass


@dataclass
class EngineConfig:
    """Configuration for a single engine instance.

    Usage:
        config = EngineConfig(
            max_cache_entries=1000,
            timezone="America/New_York",
        )
        engine = setup_engine(config)
    """

    # Cache sizing
    max_cache_entries: int = DEFAULT_MAX_CACHE_ENTRIES
    eviction_target_ratio: float = DEFAULT_EVICTION_TARGET_RATIO
    default_cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS

    # Result lifetimes
    daily_stats_ttl_ms: int = DAILY_STATS_TTL_MS
    weekly_stats_ttl_ms: int = WEEKLY_STATS_TTL_MS

    # Report shape
    top_pages_limit: int = TOP_PAGES_LIMIT
    cohort_periods: int = COHORT_PERIODS

    # Calendar used for bucketing aware timestamps (None = as given)
    timezone: str | None = None

    # Feature flags
    enable_cache: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._require_positive("max_cache_entries")
        self._require_positive("default_cache_ttl_ms")
        self._require_positive("sweep_interval_seconds")
        self._require_positive("daily_stats_ttl_ms")
        self._require_positive("weekly_stats_ttl_ms")
        self._require_positive("top_pages_limit")
        self._require_positive("cohort_periods")

        if not 0 < self.eviction_target_ratio <= 1:
            self._fail(
                f"eviction_target_ratio must be in (0, 1], got {self.eviction_target_ratio}"
            )

        if self.timezone is not None:
            self._tzinfo = self._resolve_timezone(self.timezone)
        else:
            self._tzinfo = None

    def _require_positive(self, name: str) -> None:
        value = getattr(self, name)
        if value is None or value <= 0:
            self._fail(f"{name} must be a positive number, got {value!r}")

    def _resolve_timezone(self, name: str) -> tzinfo:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            self._fail(f"Unknown timezone: {name!r}")

    @staticmethod
    def _fail(message: str) -> None:
        logger.error(f"Invalid engine configuration: {message}")
        raise InvalidConfigError(message)

    @property
    def tzinfo(self) -> tzinfo | None:
        """Resolved timezone, or None to use timestamps as given."""
        return self._tzinfo

    @property
    def eviction_target_size(self) -> int:
        """Entry count the cache shrinks to once it overflows."""
        return int(self.max_cache_entries * self.eviction_target_ratio)
