"""Review scheduling."""

from remember.study.scheduler import (
    SM2Config,
    SM2Result,
    SM2Scheduler,
    add_days,
    format_day,
    parse_day,
)

__all__ = [
    "SM2Config",
    "SM2Result",
    "SM2Scheduler",
    "add_days",
    "format_day",
    "parse_day",
]
