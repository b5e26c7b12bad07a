"""
glowroutine/services/schedule.py
────────────────────────────────
Decides whether a routine step is due on a calendar date.

Dates are naive local calendar days. Day differences use proleptic
ordinals, so they count whole days and are immune to DST shifts.

The predicate fails closed: an incomplete or inconsistent schedule is
simply never active, it does not raise.
"""

from datetime import date
from typing import Union

from glowroutine.schemas import (
    WEEKDAYS,
    CycleSchedule,
    IntervalSchedule,
    RoutineStep,
    WeeklySchedule,
)


def as_date(value: Union[date, str]) -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def days_between(start: date, end: date) -> int:
    """Whole calendar days from ``start`` to ``end`` (negative if end is earlier)."""
    return end.toordinal() - start.toordinal()


def _weekly(schedule: WeeklySchedule, day: date) -> bool:
    return WEEKDAYS[day.weekday()] in schedule.days


def _cycle(schedule: CycleSchedule, day: date) -> bool:
    length = schedule.cycle_length
    if not length or length < 1 or not schedule.cycle_days or schedule.cycle_start_date is None:
        return False
    elapsed = days_between(schedule.cycle_start_date, day)
    if elapsed < 0:
        return False
    return (elapsed % length) + 1 in schedule.cycle_days


def _interval(schedule: IntervalSchedule, day: date) -> bool:
    every = schedule.interval_days
    if not every or every < 1 or schedule.interval_start_date is None:
        return False
    elapsed = days_between(schedule.interval_start_date, day)
    return elapsed >= 0 and elapsed % every == 0


def is_active_on_date(step: RoutineStep, on_date: Union[date, str]) -> bool:
    """Return True when ``step`` is scheduled on ``on_date``."""
    try:
        day = as_date(on_date)
    except (TypeError, ValueError):
        return False

    schedule = step.schedule
    if isinstance(schedule, CycleSchedule):
        return _cycle(schedule, day)
    if isinstance(schedule, IntervalSchedule):
        return _interval(schedule, day)
    return _weekly(schedule, day)
