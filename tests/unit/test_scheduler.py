"""
Unit tests for SM-2 scheduler.

Tests the SuperMemo 2 spaced repetition algorithm as applied to content log
histories.
"""

from dataclasses import dataclass

import pytest

from remember.core.errors import FormatError
from remember.study.scheduler import (
    SM2Config,
    SM2Scheduler,
    add_days,
    format_day,
    parse_day,
    round_half_up,
)


@dataclass
class Event:
    date: str
    easiness: float
    days: int


class TestDays:
    """Tests for YYYYMMDD helpers."""

    def test_format_and_parse(self):
        day = parse_day("20210107")
        assert format_day(day) == "20210107"

    def test_add_days_crosses_months(self):
        assert add_days("20210130", 6) == "20210205"

    def test_add_days_leap_year(self):
        assert add_days("20200228", 1) == "20200229"

    @pytest.mark.parametrize("value", ["2021-01-07", "2021017", "20211307", "abcdefgh", 20210107])
    def test_parse_rejects_bad_days(self, value):
        with pytest.raises(FormatError):
            parse_day(value)


class TestSM2Score:
    """Tests for the interval and easiness formula."""

    def setup_method(self):
        self.scheduler = SM2Scheduler()

    def test_perfect_after_first_interval(self):
        result = self.scheduler.score(1.3, 1, 5)

        assert result.days == 6
        assert result.easiness == pytest.approx(1.4)

    def test_blackout_resets_interval(self):
        result = self.scheduler.score(1.3, 6, 0)

        assert result.days == 1
        assert result.easiness == pytest.approx(1.3)

    def test_failed_recall_below_three(self):
        assert self.scheduler.score(2.5, 15, 2).days == 1

    def test_growth_uses_new_easiness(self):
        # ef 2.5 + 0.0 for q=4; 6 * 2.5 = 15
        result = self.scheduler.score(2.5, 6, 4)
        assert result.easiness == pytest.approx(2.5)
        assert result.days == 15

    def test_rounds_half_up(self):
        # 5 * 1.3 = 6.5 -> 7
        result = SM2Scheduler(SM2Config()).score(1.3, 5, 3)
        assert result.easiness == pytest.approx(1.3)
        assert result.days == 7

    def test_easiness_never_below_minimum(self):
        result = self.scheduler.score(1.3, 6, 3)
        assert result.easiness == pytest.approx(1.3)

    def test_easiness_is_rounded_to_two_places(self):
        result = self.scheduler.score(1.3, 6, 5)
        assert result.easiness == 1.4

    @pytest.mark.parametrize("rating", [-1, 6, True, 3.0, "4"])
    def test_invalid_ratings_raise(self, rating):
        with pytest.raises(ValueError):
            self.scheduler.score(1.3, 1, rating)

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4999) == 2


class TestSM2History:
    """Tests for history-based helpers."""

    def setup_method(self):
        self.scheduler = SM2Scheduler()

    def test_first_rating_uses_defaults(self):
        assert self.scheduler.score_after([], 5) == self.scheduler.score(1.3, 1, 5)

    def test_score_after_uses_most_recent_event(self):
        history = [Event("20210107", 2.5, 6), Event("20210101", 1.3, 1)]
        assert self.scheduler.score_after(history, 4).days == 15

    def test_never_reviewed_is_due(self):
        assert self.scheduler.is_due([], "20210101")
        assert self.scheduler.next_review_day([]) is None

    def test_due_boundary(self):
        history = [Event("20210101", 1.3, 6)]

        assert self.scheduler.next_review_day(history) == "20210107"
        assert not self.scheduler.is_due(history, "20210106")
        assert self.scheduler.is_due(history, "20210107")
        assert self.scheduler.is_due(history, "20210110")
