# tests/test_schedule.py

from datetime import date, timedelta

import pytest

from glowroutine.schemas import (
    WEEKDAYS,
    CycleSchedule,
    DayOfWeek,
    IntervalSchedule,
    RoutineStep,
    WeeklySchedule,
)
from glowroutine.services.schedule import days_between, is_active_on_date


def _step(schedule) -> RoutineStep:
    return RoutineStep(id="s1", user_id="local", name="Serum", schedule=schedule)


def test_weekly_matches_named_days_every_week():
    days = {DayOfWeek.MONDAY, DayOfWeek.THURSDAY}
    step = _step(WeeklySchedule(days=days))
    start = date(2024, 1, 1)
    for offset in range(28):
        day = start + timedelta(days=offset)
        assert is_active_on_date(step, day) == (WEEKDAYS[day.weekday()] in days)
        assert is_active_on_date(step, day) == is_active_on_date(step, day + timedelta(days=7))


def test_weekly_with_no_days_is_never_active():
    step = _step(WeeklySchedule(days=frozenset()))
    assert not any(is_active_on_date(step, date(2024, 1, d)) for d in range(1, 8))


def test_weekly_accepts_iso_strings():
    step = _step(WeeklySchedule(days={DayOfWeek.SUNDAY}))
    assert is_active_on_date(step, "2024-01-07")
    assert not is_active_on_date(step, "2024-01-08")


@pytest.mark.parametrize(
    "day, expected",
    [
        ("2024-01-01", True),
        ("2024-01-02", True),
        ("2024-01-03", False),
        ("2024-01-04", False),
        ("2024-01-05", True),
        ("2024-01-06", True),
        ("2024-01-07", False),
        ("2024-01-08", False),
        ("2024-01-09", True),
        ("2024-01-10", True),
    ],
)
def test_cycle_example(day, expected):
    step = _step(CycleSchedule(cycle_length=4, cycle_days={1, 2}, cycle_start_date=date(2024, 1, 1)))
    assert is_active_on_date(step, day) is expected


def test_cycle_repeats_across_leap_day():
    start = date(2024, 2, 27)
    schedule = CycleSchedule(cycle_length=5, cycle_days={2, 5}, cycle_start_date=start)
    step = _step(schedule)
    active = {start + timedelta(days=k * 5 + d - 1) for k in range(4) for d in (2, 5)}
    for offset in range(20):
        day = start + timedelta(days=offset)
        assert is_active_on_date(step, day) == (day in active)


def test_cycle_before_anchor_is_inactive():
    step = _step(CycleSchedule(cycle_length=2, cycle_days={1, 2}, cycle_start_date=date(2024, 1, 10)))
    assert not is_active_on_date(step, date(2024, 1, 9))
    assert is_active_on_date(step, date(2024, 1, 10))


@pytest.mark.parametrize(
    "schedule",
    [
        CycleSchedule(),
        CycleSchedule(cycle_length=4, cycle_start_date=date(2024, 1, 1)),
        CycleSchedule(cycle_length=4, cycle_days={1}),
        CycleSchedule(cycle_length=0, cycle_days={1}, cycle_start_date=date(2024, 1, 1)),
        IntervalSchedule(),
        IntervalSchedule(interval_days=3),
        IntervalSchedule(interval_days=0, interval_start_date=date(2024, 1, 1)),
    ],
)
def test_incomplete_schedules_fail_closed(schedule):
    step = _step(schedule)
    assert not any(is_active_on_date(step, date(2024, 1, d)) for d in range(1, 15))


@pytest.mark.parametrize(
    "day, expected",
    [
        ("2024-01-01", True),
        ("2024-01-02", False),
        ("2024-01-03", False),
        ("2024-01-04", True),
        ("2024-01-05", False),
        ("2024-01-06", False),
        ("2024-01-07", True),
        ("2023-12-29", False),
    ],
)
def test_interval_example(day, expected):
    step = _step(IntervalSchedule(interval_days=3, interval_start_date=date(2024, 1, 1)))
    assert is_active_on_date(step, day) is expected


def test_interval_of_one_is_daily_from_anchor():
    step = _step(IntervalSchedule(interval_days=1, interval_start_date=date(2024, 3, 30)))
    assert not is_active_on_date(step, date(2024, 3, 29))
    assert all(is_active_on_date(step, date(2024, 3, 30) + timedelta(days=n)) for n in range(10))


def test_days_between_counts_calendar_days_over_dst_change():
    # Europe and the US both switch clocks in late March
    assert days_between(date(2024, 3, 30), date(2024, 4, 1)) == 2
    assert days_between(date(2024, 3, 9), date(2024, 3, 11)) == 2
    assert days_between(date(2024, 1, 2), date(2024, 1, 1)) == -1


def test_unparseable_date_is_inactive():
    step = _step(WeeklySchedule(days=set(DayOfWeek)))
    assert not is_active_on_date(step, "not-a-date")


def test_record_without_schedule_type_reads_as_weekly():
    step = RoutineStep.from_record(
        {"id": "legacy", "user_id": "local", "name": "Toner", "days": ["tuesday"]}
    )
    assert isinstance(step.schedule, WeeklySchedule)
    assert is_active_on_date(step, "2024-01-02")
    assert not is_active_on_date(step, "2024-01-03")


def test_record_with_unknown_schedule_type_reads_as_weekly():
    step = RoutineStep.from_record(
        {"id": "odd", "user_id": "local", "name": "Mask", "schedule_type": "monthly", "days": None}
    )
    assert isinstance(step.schedule, WeeklySchedule)
    assert not is_active_on_date(step, "2024-01-02")
