"""
In-process analytics aggregation with a bounded result cache.

Usage:
    from analytics_engine import setup_engine

    engine = setup_engine()

    daily = engine.service.process_daily_stats(page_views)
    weekly = engine.service.process_weekly_stats(daily)
    funnel = engine.service.calculate_funnel(interactions, ["cta", "signup", "confirm"])
    csv_text = engine.service.export_aggregated_data("csv", daily)

    # On process shutdown
    engine.shutdown()
"""
import logging

from .config import EngineConfig, InvalidConfigError
from .core import (
    AnalyticsAggregationService,
    BoundedTTLCache,
    CohortResult,
    DailyStats,
    FunnelStepResult,
    InteractionRecord,
    PageViewRecord,
    WeeklyStats,
)

__version__ = "0.1.0"
__all__ = [
    "setup_engine", "AnalyticsEngine", "EngineConfig", "InvalidConfigError",
    "AnalyticsAggregationService", "BoundedTTLCache",
    "PageViewRecord", "InteractionRecord",
    "DailyStats", "WeeklyStats", "FunnelStepResult", "CohortResult",
]

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    """Owns the cache and the service built from one config."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.cache = BoundedTTLCache(
            max_entries=config.max_cache_entries,
            eviction_target_ratio=config.eviction_target_ratio,
            default_ttl_ms=config.default_cache_ttl_ms,
            sweep_interval_seconds=config.sweep_interval_seconds,
        )
        self.service = AnalyticsAggregationService(cache=self.cache, config=config)

    def shutdown(self) -> None:
        """Stop the cache sweeper and release cached results."""
        self.cache.destroy()
        logger.info("Analytics engine shut down")


def setup_engine(
    config: EngineConfig | None = None,
    start_sweeper: bool = True,
) -> AnalyticsEngine:
    """
    Build the engine once at process start.

    Args:
        config: Engine settings. Defaults to EngineConfig().
        start_sweeper: Start the background sweep of expired cache entries.
                       Tests usually pass False and call cache.sweep() directly.

    Returns:
        AnalyticsEngine with `service` ready to hand to request handlers
    """
    engine = AnalyticsEngine(config or EngineConfig())
    if start_sweeper and engine.config.enable_cache:
        engine.cache.start()
    return engine
