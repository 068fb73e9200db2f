"""
Core analytics module.

Contains the data models, time bucketing, the bounded cache and the
aggregation service.
"""

from .cache import BoundedTTLCache, CacheEntry
from .export import export_aggregated_data
from .models import (
    CacheStats,
    ClickPayload,
    CohortResult,
    CustomPayload,
    DailyStats,
    DownloadPayload,
    FormSubmitPayload,
    FunnelStepResult,
    HoverPayload,
    InteractionRecord,
    InteractionType,
    PageViewRecord,
    ScrollPayload,
    TopPage,
    WeeklyStats,
)
from .service import AnalyticsAggregationService
from .time_aggregator import (
    calculate_rolling_average,
    get_time_key,
    group_by_period,
    iso_week_number,
    safe_divide,
    week_start,
)

__all__ = [
    "PageViewRecord", "InteractionRecord", "InteractionType",
    "ClickPayload", "ScrollPayload", "HoverPayload", "FormSubmitPayload",
    "DownloadPayload", "CustomPayload",
    "DailyStats", "WeeklyStats", "TopPage",
    "FunnelStepResult", "CohortResult", "CacheStats",
    "BoundedTTLCache", "CacheEntry",
    "AnalyticsAggregationService",
    "group_by_period", "get_time_key", "week_start", "iso_week_number",
    "calculate_rolling_average", "safe_divide",
    "export_aggregated_data",
]
