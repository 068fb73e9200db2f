"""
Aggregation pipelines over raw page views and interactions.

Daily stats come only from page views grouped by day; weekly stats come
only from daily stats. Funnel and cohort reports are computed directly
from raw records and are not cached.
"""
import hashlib
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date
from typing import Literal

from pydantic import BaseModel

from ..config import EngineConfig
from .cache import BoundedTTLCache
from .export import ExportFormat, export_aggregated_data
from .models import (
    CacheStats,
    CohortResult,
    DailyStats,
    FunnelStepResult,
    InteractionRecord,
    PageViewRecord,
    TopPage,
    WeeklyStats,
)
from .time_aggregator import group_by_period, local_time, safe_divide, week_start

logger = logging.getLogger(__name__)

Timeframe = Literal["daily", "weekly", "monthly"]


def _digest(records: Iterable[BaseModel]) -> str:
    """Stable fingerprint of a record list for cache keys."""
    h = hashlib.sha256()
    for record in records:
        h.update(record.model_dump_json().encode())
        h.update(b"\n")
    return h.hexdigest()[:32]


class AnalyticsAggregationService:
    """Turns raw analytics records into statistics and reports.

    The cache is injected so one instance can be shared across request
    handlers. The aggregation methods only read their arguments, so they
    are safe to call from multiple threads.
    """

    def __init__(
        self,
        cache: BoundedTTLCache | None = None,
        config: EngineConfig | None = None,
    ):
        self.config = config or EngineConfig()
        self.cache = cache if cache is not None else BoundedTTLCache(
            max_entries=self.config.max_cache_entries,
            eviction_target_ratio=self.config.eviction_target_ratio,
            default_ttl_ms=self.config.default_cache_ttl_ms,
            sweep_interval_seconds=self.config.sweep_interval_seconds,
        )

    # =========================================================================
    # CACHE HELPERS
    # =========================================================================

    def _cache_key(self, prefix: str, records: Sequence[BaseModel]) -> str:
        """Key on the inputs and on the settings that shape the output.

        The cache may be shared by services with different configs.
        """
        tz_name = self.config.timezone or "local"
        return f"{prefix}:{tz_name}:top{self.config.top_pages_limit}:{_digest(records)}"

    def _cached(self, key: str) -> list | None:
        if not self.config.enable_cache:
            return None
        cached = self.cache.get(key)
        if cached is None:
            return None
        # Callers may mutate what they get back
        return [item.model_copy(deep=True) for item in cached]

    def _store(self, key: str, results: list, ttl_ms: int) -> None:
        if self.config.enable_cache:
            self.cache.set(key, [item.model_copy(deep=True) for item in results], ttl_ms)

    def clear_cache(self) -> None:
        """Drop every cached aggregate."""
        self.cache.clear()

    def get_cache_stats(self) -> CacheStats:
        """Cache occupancy and hit rate."""
        return self.cache.stats()

    # =========================================================================
    # DAILY / WEEKLY STATS
    # =========================================================================

    def process_daily_stats(self, page_views: Sequence[PageViewRecord]) -> list[DailyStats]:
        """Process page views into one DailyStats per day bucket.

        Buckets are returned in first-seen order. Sort by `date` when
        chronological order matters.
        """
        cache_key = self._cache_key("daily-stats", page_views)
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        daily_groups = group_by_period(page_views, "day", self.config.tzinfo)
        daily_stats = [self._day_stats(day, views) for day, views in daily_groups.items()]

        logger.debug(f"Processed {len(page_views)} page views into {len(daily_stats)} days")
        self._store(cache_key, daily_stats, self.config.daily_stats_ttl_ms)
        return daily_stats

    def _day_stats(self, day: str, views: list[PageViewRecord]) -> DailyStats:
        unique_visitors = len({view.visitor_id for view in views})

        # Bounce rate (sessions with exactly one page view)
        views_per_session = Counter(view.session_id for view in views)
        sessions = len(views_per_session)
        bounced = sum(1 for count in views_per_session.values() if count == 1)
        bounce_rate = safe_divide(bounced, sessions) * 100

        # Average session duration over sessions that recorded any duration
        durations: dict[str, float] = {}
        for view in views:
            if view.duration_ms is not None:
                durations[view.session_id] = durations.get(view.session_id, 0.0) + view.duration_ms
        avg_duration = safe_divide(sum(durations.values()), len(durations))

        # Counter keeps first-seen order and sorted() is stable, so ties keep it too
        page_counts = Counter(view.page for view in views)
        top_pages = [
            TopPage(page=page, count=count)
            for page, count in sorted(page_counts.items(), key=lambda item: item[1], reverse=True)
        ][: self.config.top_pages_limit]

        return DailyStats(
            date=day,
            page_views=len(views),
            unique_visitors=unique_visitors,
            sessions=sessions,
            bounce_rate=bounce_rate,
            avg_session_duration_ms=avg_duration,
            top_pages=top_pages,
        )

    def process_weekly_stats(self, daily_stats: Sequence[DailyStats]) -> list[WeeklyStats]:
        """Roll daily stats up into Sunday-aligned weeks.

        Counts are summed. Bounce rate and session duration are plain means
        across the days in the week, not weighted by session count.
        """
        cache_key = self._cache_key("weekly-stats", daily_stats)
        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        weekly_groups: dict[str, list[DailyStats]] = {}
        for stat in daily_stats:
            week_key = week_start(date.fromisoformat(stat.date)).isoformat()
            weekly_groups.setdefault(week_key, []).append(stat)

        weekly_stats = []
        for week_starting, days in weekly_groups.items():
            day_count = len(days)
            weekly_stats.append(WeeklyStats(
                week_starting=week_starting,
                total_page_views=sum(day.page_views for day in days),
                total_unique_visitors=sum(day.unique_visitors for day in days),
                total_sessions=sum(day.sessions for day in days),
                avg_bounce_rate=safe_divide(sum(day.bounce_rate for day in days), day_count),
                avg_session_duration_ms=safe_divide(
                    sum(day.avg_session_duration_ms for day in days), day_count
                ),
                daily_breakdown=sorted(days, key=lambda day: day.date),
            ))

        self._store(cache_key, weekly_stats, self.config.weekly_stats_ttl_ms)
        return weekly_stats

    # =========================================================================
    # FUNNELS
    # =========================================================================

    def calculate_funnel(
        self,
        events: Sequence[InteractionRecord],
        steps: Sequence[str],
    ) -> list[FunnelStepResult]:
        """Conversion through an ordered list of element identifiers.

        A session counts as reaching a step if it interacted with that
        element at any point. Order within the session is not checked, so a
        session can reach step 3 without step 1.

        Step 0 converts from the total number of sessions; every later step
        converts from the population of the step before it.
        """
        journeys: dict[str, set[str]] = {}
        for event in events:
            journeys.setdefault(event.session_id, set()).add(event.element)

        results = []
        previous_users = len(journeys)
        for step in steps:
            users = sum(1 for elements in journeys.values() if step in elements)
            conversion_rate = safe_divide(users, previous_users) * 100
            results.append(FunnelStepResult(
                step=step,
                users=users,
                conversion_rate=conversion_rate,
                drop_off_rate=100 - conversion_rate,
            ))
            previous_users = users

        return results

    # =========================================================================
    # COHORTS
    # =========================================================================

    def calculate_cohort_analysis(
        self,
        page_views: Sequence[PageViewRecord],
        timeframe: Timeframe = "weekly",
    ) -> list[CohortResult]:
        """Retention of users grouped by the bucket of their first visit.

        For each cohort, period p covers [anchor + p, anchor + p + 1) in
        days, weeks or calendar months from the cohort's anchor date.
        retention[p] is the share of the cohort with a page view in it.
        """
        tz = self.config.tzinfo
        periods = self.config.cohort_periods

        first_visit: dict[str, date] = {}
        for view in page_views:
            visited = local_time(view.timestamp, tz).date()
            user = view.visitor_id
            if user not in first_visit or visited < first_visit[user]:
                first_visit[user] = visited

        cohort_users: dict[date, set[str]] = {}
        for user, visited in first_visit.items():
            cohort_users.setdefault(self._cohort_anchor(visited, timeframe), set()).add(user)

        # (anchor, period) -> users active in that period
        active: dict[tuple[date, int], set[str]] = {}
        for view in page_views:
            user = view.visitor_id
            anchor = self._cohort_anchor(first_visit[user], timeframe)
            period = self._period_index(anchor, local_time(view.timestamp, tz).date(), timeframe)
            if 0 <= period < periods:
                active.setdefault((anchor, period), set()).add(user)

        results = []
        for anchor, users in cohort_users.items():
            retention = {
                period: safe_divide(len(active.get((anchor, period), ())), len(users)) * 100
                for period in range(periods)
            }
            results.append(CohortResult(
                cohort=self._cohort_key(anchor, timeframe),
                users=len(users),
                retention=retention,
            ))

        return sorted(results, key=lambda result: result.cohort)

    @staticmethod
    def _cohort_anchor(visited: date, timeframe: str) -> date:
        if timeframe == "daily":
            return visited
        if timeframe == "weekly":
            return week_start(visited)
        return visited.replace(day=1)

    @staticmethod
    def _cohort_key(anchor: date, timeframe: str) -> str:
        if timeframe == "monthly":
            return f"{anchor:%Y-%m}"
        return anchor.isoformat()

    @staticmethod
    def _period_index(anchor: date, day: date, timeframe: str) -> int:
        if timeframe == "daily":
            return (day - anchor).days
        if timeframe == "weekly":
            return (day - anchor).days // 7
        return (day.year - anchor.year) * 12 + day.month - anchor.month

    # =========================================================================
    # EXPORT
    # =========================================================================

    def export_aggregated_data(
        self,
        format: ExportFormat,
        data: Sequence[DailyStats] | Sequence[WeeklyStats],
    ) -> str:
        """Export daily or weekly stats as JSON or CSV."""
        return export_aggregated_data(format, data)
