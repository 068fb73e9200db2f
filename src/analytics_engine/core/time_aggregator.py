"""
Time bucketing for timestamped records.

Every function here is pure: bucket keys depend only on the timestamp,
the period and (optionally) the timezone used to read calendar fields.

Bucket keys are zero padded so that sorting keys as strings gives
chronological order:

- hour:  2024-01-05-09
- day:   2024-01-05
- week:  2024-W01  (ISO-8601 year and week of the Sunday week start)
- month: 2024-01
"""
import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta, tzinfo
from typing import Literal, Protocol, TypeVar

logger = logging.getLogger(__name__)

Period = Literal["hour", "day", "week", "month"]


class Timestamped(Protocol):
    timestamp: datetime


T = TypeVar("T", bound=Timestamped)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning `default` instead of failing on a zero denominator."""
    if denominator == 0:
        return default
    return numerator / denominator


def local_time(timestamp: datetime, tz: tzinfo | None = None) -> datetime:
    """Read a timestamp in the calendar used for bucketing.

    Aware timestamps are converted to `tz` when one is given. Naive
    timestamps are taken to already be local.
    """
    if tz is not None and timestamp.tzinfo is not None:
        return timestamp.astimezone(tz)
    return timestamp


def week_start(day: date) -> date:
    """Return the Sunday on or before `day`."""
    # weekday(): Monday=0 ... Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def iso_week_number(day: date) -> int:
    """ISO-8601 week number (week 1 holds the year's first Thursday)."""
    return day.isocalendar()[1]


def get_time_key(timestamp: datetime, period: str, tz: tzinfo | None = None) -> str:
    """Generate the bucket key for a timestamp."""
    local = local_time(timestamp, tz)

    if period == "hour":
        return f"{local:%Y-%m-%d-%H}"
    if period == "day":
        return f"{local:%Y-%m-%d}"
    if period == "week":
        # Year and week both come from the ISO calendar so keys never collide
        iso_year, iso_week, _ = week_start(local.date()).isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "month":
        return f"{local:%Y-%m}"

    logger.debug(f"Unknown period {period!r}, bucketing by day")
    return f"{local:%Y-%m-%d}"


def group_by_period(
    records: Iterable[T],
    period: Period,
    tz: tzinfo | None = None,
) -> dict[str, list[T]]:
    """Group records into time buckets.

    Args:
        records: Anything with a `timestamp` datetime attribute
        period: hour, day, week or month
        tz: Optional timezone to convert aware timestamps into

    Returns:
        Dict of bucket key -> records in that bucket. Buckets appear in the
        order they were first seen; records keep their input order.
    """
    grouped: dict[str, list[T]] = {}
    for record in records:
        key = get_time_key(record.timestamp, period, tz)
        grouped.setdefault(key, []).append(record)
    return grouped


def calculate_rolling_average(series: Sequence[float], window_size: int) -> list[float]:
    """Trailing moving average.

    Index i averages series[max(0, i - window_size + 1) .. i], so the first
    few points average over a shorter window. The result has the same
    length as the input.

    Raises:
        ValueError: If window_size is less than 1
    """
    if window_size < 1:
        raise ValueError(f"window_size must be at least 1, got {window_size}")

    result: list[float] = []
    for i in range(len(series)):
        window = series[max(0, i - window_size + 1) : i + 1]
        result.append(safe_divide(sum(window), len(window)))
    return result
