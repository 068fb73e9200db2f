"""Tests for funnel and cohort reports."""

from datetime import datetime, timedelta

import pytest

from analytics_engine.core.models import InteractionRecord, InteractionType, PageViewRecord
from analytics_engine.core.service import AnalyticsAggregationService


def click(element, session_id, timestamp=datetime(2024, 1, 1, 12)):
    return InteractionRecord(
        type=InteractionType.CLICK,
        element=element,
        page="/",
        timestamp=timestamp,
        session_id=session_id,
    )


def visit(timestamp, session_id, user_id=None, page="/"):
    return PageViewRecord(page=page, timestamp=timestamp, session_id=session_id, user_id=user_id)


@pytest.fixture
def service():
    return AnalyticsAggregationService()


class TestFunnel:
    """Test calculate_funnel."""

    def test_step_populations_100_40_10(self, service):
        """Populations [100, 40, 10] convert at [100, 40, 25]."""
        events = []
        for i in range(100):
            events.append(click("landing", f"S{i}"))
            if i < 40:
                events.append(click("signup", f"S{i}"))
            if i < 10:
                events.append(click("confirm", f"S{i}"))

        results = service.calculate_funnel(events, ["landing", "signup", "confirm"])

        assert [r.step for r in results] == ["landing", "signup", "confirm"]
        assert [r.users for r in results] == [100, 40, 10]
        assert [r.conversion_rate for r in results] == pytest.approx([100, 40, 25])
        assert [r.drop_off_rate for r in results] == pytest.approx([0, 60, 75])

    def test_conversion_plus_drop_off_is_100(self, service):
        events = [click(el, f"S{i}") for i in range(7) for el in ("a", "b")[: i % 2 + 1]]
        events += [click("c", f"S{i}") for i in range(0, 7, 3)]

        for result in service.calculate_funnel(events, ["a", "b", "c"]):
            assert result.conversion_rate + result.drop_off_rate == pytest.approx(100)

    def test_first_step_converts_from_all_sessions(self, service):
        events = [click("landing", "S1"), click("other", "S2"), click("other", "S3"), click("other", "S4")]

        first = service.calculate_funnel(events, ["landing"])[0]

        assert first.users == 1
        assert first.conversion_rate == 25.0

    def test_set_membership_not_path_order(self, service):
        """A session counts at a step even if it never hit the earlier steps.

        Reaching a step means the element appears anywhere in the session's
        history; the funnel does not enforce step order.
        """
        events = [
            click("landing", "S1"),
            click("signup", "S1"),
            click("confirm", "S2"),  # skipped landing and signup
            click("signup", "S3", datetime(2024, 1, 1, 9)),
            click("landing", "S3", datetime(2024, 1, 1, 10)),  # out of order
        ]

        results = service.calculate_funnel(events, ["landing", "signup", "confirm"])

        assert [r.users for r in results] == [2, 2, 1]
        assert results[2].conversion_rate == 50.0

    def test_later_step_can_exceed_previous(self, service):
        """Without path ordering a later step may be larger than the one before it.

        Conversion then goes above 100 and drop-off below 0; both still sum to 100.
        """
        events = [
            click("landing", "S1"),
            click("signup", "S1"),
            click("signup", "S2"),
            click("signup", "S3"),
        ]

        results = service.calculate_funnel(events, ["landing", "signup"])

        assert [r.users for r in results] == [1, 3]
        assert results[1].conversion_rate == 300.0
        assert results[1].drop_off_rate == -200.0

    def test_repeated_element_counts_session_once(self, service):
        events = [click("landing", "S1")] * 5

        assert service.calculate_funnel(events, ["landing"])[0].users == 1

    def test_no_events(self, service):
        results = service.calculate_funnel([], ["landing", "signup"])

        assert [r.users for r in results] == [0, 0]
        assert [r.conversion_rate for r in results] == [0, 0]
        assert [r.drop_off_rate for r in results] == [100, 100]

    def test_zero_previous_step_gives_zero_conversion(self, service):
        events = [click("confirm", "S1")]

        results = service.calculate_funnel(events, ["landing", "confirm"])

        assert results[1].users == 1
        assert results[1].conversion_rate == 0

    def test_no_steps(self, service):
        assert service.calculate_funnel([click("a", "S1")], []) == []


class TestCohortAnalysis:
    """Test calculate_cohort_analysis."""

    def test_daily_retention(self, service):
        views = [
            visit(datetime(2024, 1, 1, 9), "A1", user_id="A"),
            visit(datetime(2024, 1, 2, 9), "A2", user_id="A"),
            visit(datetime(2024, 1, 4, 9), "A3", user_id="A"),
            visit(datetime(2024, 1, 1, 15), "B1", user_id="B"),
        ]

        cohorts = service.calculate_cohort_analysis(views, "daily")

        assert len(cohorts) == 1
        cohort = cohorts[0]
        assert cohort.cohort == "2024-01-01"
        assert cohort.users == 2
        assert cohort.retention[0] == 100.0
        assert cohort.retention[1] == 50.0
        assert cohort.retention[2] == 0.0
        assert cohort.retention[3] == 50.0
        assert sorted(cohort.retention) == list(range(12))

    def test_weekly_cohort_key_is_sunday(self, service):
        views = [
            visit(datetime(2024, 1, 3, 9), "S1", user_id="A"),  # Wednesday
            visit(datetime(2024, 1, 8, 9), "S2", user_id="A"),  # next week
        ]

        cohort = service.calculate_cohort_analysis(views, "weekly")[0]

        assert cohort.cohort == "2023-12-31"
        assert cohort.retention[0] == 100.0
        assert cohort.retention[1] == 100.0
        assert cohort.retention[2] == 0.0

    def test_weekly_is_default_timeframe(self, service):
        views = [visit(datetime(2024, 1, 3), "S1")]
        assert service.calculate_cohort_analysis(views)[0].cohort == "2023-12-31"

    def test_monthly_retention(self, service):
        views = [
            visit(datetime(2024, 1, 15), "S1", user_id="A"),
            visit(datetime(2024, 3, 2), "S2", user_id="A"),
            visit(datetime(2024, 1, 20), "S3", user_id="B"),
        ]

        cohort = service.calculate_cohort_analysis(views, "monthly")[0]

        assert cohort.cohort == "2024-01"
        assert cohort.users == 2
        assert cohort.retention[0] == 100.0
        assert cohort.retention[1] == 0.0
        assert cohort.retention[2] == 50.0

    def test_monthly_window_crosses_year(self, service):
        views = [
            visit(datetime(2023, 11, 5), "S1", user_id="A"),
            visit(datetime(2024, 2, 10), "S2", user_id="A"),
        ]

        cohort = service.calculate_cohort_analysis(views, "monthly")[0]

        assert cohort.retention[3] == 100.0

    def test_activity_past_last_period_ignored(self, service):
        views = [
            visit(datetime(2024, 1, 1), "S1", user_id="A"),
            visit(datetime(2024, 1, 1) + timedelta(days=30), "S2", user_id="A"),
        ]

        cohort = service.calculate_cohort_analysis(views, "daily")[0]

        assert cohort.retention[0] == 100.0
        assert all(cohort.retention[p] == 0.0 for p in range(1, 12))

    def test_cohorts_sorted_ascending(self, service):
        views = [
            visit(datetime(2024, 3, 1), "S1", user_id="C"),
            visit(datetime(2024, 1, 1), "S2", user_id="A"),
            visit(datetime(2024, 2, 1), "S3", user_id="B"),
        ]

        cohorts = service.calculate_cohort_analysis(views, "monthly")

        assert [c.cohort for c in cohorts] == ["2024-01", "2024-02", "2024-03"]

    def test_first_visit_found_regardless_of_order(self, service):
        views = [
            visit(datetime(2024, 1, 5), "S2", user_id="A"),
            visit(datetime(2024, 1, 1), "S1", user_id="A"),
        ]

        cohort = service.calculate_cohort_analysis(views, "daily")[0]

        assert cohort.cohort == "2024-01-01"
        assert cohort.retention[4] == 100.0

    def test_session_used_when_no_user_id(self, service):
        views = [
            visit(datetime(2024, 1, 1), "S1"),
            visit(datetime(2024, 1, 1), "S2"),
            visit(datetime(2024, 1, 2), "S1"),
        ]

        cohort = service.calculate_cohort_analysis(views, "daily")[0]

        assert cohort.users == 2
        assert cohort.retention[1] == 50.0

    def test_retention_bounds(self, service):
        start = datetime(2024, 1, 1)
        views = [
            visit(start + timedelta(days=i * 3), f"S{i}", user_id=f"U{i % 4}")
            for i in range(40)
        ]

        for cohort in service.calculate_cohort_analysis(views, "weekly"):
            assert cohort.users > 0
            assert all(0 <= pct <= 100 for pct in cohort.retention.values())

    def test_empty_input(self, service):
        assert service.calculate_cohort_analysis([], "daily") == []
