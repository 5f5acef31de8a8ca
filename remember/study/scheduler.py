"""
SM-2 Spaced Repetition Scheduler.

Implements the SuperMemo 2 interval formula over the review history stored
in content logs.

SM-2 Grade Scale:
0 - Complete blackout
1 - Incorrect response; the correct one remembered
2 - Incorrect response; where the correct one seemed easy to recall
3 - Correct response recalled with serious difficulty
4 - Correct response after a hesitation
5 - Perfect response
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Protocol

from remember.core.errors import FormatError

DAY_FORMAT = "%Y%m%d"

# =============================================================================
# Dates
# =============================================================================


def format_day(value: date | datetime) -> str:
    """Format a date as ``YYYYMMDD``."""
    return value.strftime(DAY_FORMAT)


def parse_day(value: str) -> date:
    """Parse a ``YYYYMMDD`` string."""
    if not isinstance(value, str) or len(value) != 8 or not value.isdigit():
        raise FormatError(f"Expected a YYYYMMDD date, got {value!r}")
    try:
        return datetime.strptime(value, DAY_FORMAT).date()
    except ValueError as e:
        raise FormatError(f"Invalid date {value!r}: {e}") from e


def add_days(day: str, days: int) -> str:
    """Calendar arithmetic on ``YYYYMMDD`` strings."""
    return format_day(parse_day(day) + timedelta(days=days))


# =============================================================================
# SM-2 Algorithm
# =============================================================================


class ReviewEventLike(Protocol):
    date: str
    easiness: float
    days: int


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 1.3
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days after a failed recall
    second_interval: int = 6  # Days after the first successful recall


@dataclass(frozen=True)
class SM2Result:
    """Outcome of scoring one rating."""

    easiness: float
    days: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each block has:
    - Easiness Factor (EF): How easy the block is (1.3 default and minimum)
    - Interval: Days until next review
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def score(self, easiness: float, days_to_next: int, rating: int) -> SM2Result:
        """
        Calculate the next interval for a rating.

        Args:
            easiness: Previous easiness factor
            days_to_next: Previous interval in days
            rating: User grade (0-5)

        Returns:
            SM2Result with the new easiness factor (rounded to two decimals,
            which the textbook formula does not do) and interval
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 0 <= rating <= 5:
            raise ValueError(f"Rating must be an integer between 0 and 5, got {rating!r}")

        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        miss = 5 - rating
        ef_delta = 0.1 - miss * (0.08 + miss * 0.02)
        # Two decimals drop float noise; every step is a multiple of 0.02
        new_ef = round(max(self.config.minimum_easiness, easiness + ef_delta), 2)

        if rating < 3:
            new_days = self.config.first_interval
        elif days_to_next == self.config.first_interval:
            new_days = self.config.second_interval
        else:
            new_days = max(1, round_half_up(days_to_next * new_ef))

        return SM2Result(easiness=new_ef, days=new_days)

    def score_after(self, history: Sequence[ReviewEventLike], rating: int) -> SM2Result:
        """Score a rating against the most recent event of ``history`` (newest first)."""
        if history:
            return self.score(history[0].easiness, history[0].days, rating)
        return self.score(self.config.initial_easiness, self.config.first_interval, rating)

    @staticmethod
    def next_review_day(history: Sequence[ReviewEventLike]) -> str | None:
        if not history:
            return None
        return add_days(history[0].date, history[0].days)

    def is_due(self, history: Sequence[ReviewEventLike], today: str) -> bool:
        """
        Check whether a block should be quizzed on ``today``.

        Never-reviewed blocks are always due.
        """
        next_day = self.next_review_day(history)
        if next_day is None:
            return True
        return parse_day(today) >= parse_day(next_day)
