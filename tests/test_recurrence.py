# tests/test_recurrence.py

from __future__ import annotations

import datetime as dt

import pytest

from qc_scheduler.errors import InvalidFrequency, InvalidStartDate, SchedulingError
from qc_scheduler.models.schedule_models import Frequency, Worksheet
from qc_scheduler.services.recurrence import (
    coerce_date,
    generate,
    generate_for_worksheet,
    next_occurrence,
    period_bounds,
)

D = dt.date


def test_monthly_start_mid_month_first_due_next_first() -> None:
    dates = generate("monthly", "2025-07-19", "2025-10-01")
    assert dates == [D(2025, 8, 1), D(2025, 9, 1), D(2025, 10, 1)]


def test_monthly_rolls_over_year_end() -> None:
    assert generate(Frequency.MONTHLY, D(2025, 12, 15), D(2026, 2, 1)) == [
        D(2026, 1, 1),
        D(2026, 2, 1),
    ]


def test_weekly_wednesday_start_anchors_to_monday() -> None:
    # 2025-08-06 is a Wednesday
    dates = generate("weekly", "2025-08-06", "2025-08-25")
    assert dates == [D(2025, 8, 11), D(2025, 8, 18), D(2025, 8, 25)]
    assert all(d.weekday() == 0 for d in dates)


def test_weekly_monday_start_is_first_occurrence() -> None:
    assert generate("weekly", "2025-08-04", "2025-08-10") == [D(2025, 8, 4)]


def test_daily_skips_weekends_by_default() -> None:
    # Friday through Tuesday
    assert generate("daily", "2025-08-08", "2025-08-12") == [
        D(2025, 8, 8),
        D(2025, 8, 11),
        D(2025, 8, 12),
    ]


def test_daily_with_weekends() -> None:
    dates = generate("daily", "2025-08-08", "2025-08-12", skip_weekends=False)
    assert len(dates) == 5
    assert dates[1] == D(2025, 8, 9)


def test_daily_weekend_start_moves_to_monday() -> None:
    assert generate("daily", "2025-08-09", "2025-08-11") == [D(2025, 8, 11)]


def test_quarterly_boundaries() -> None:
    assert generate("quarterly", "2025-02-15", "2025-12-31") == [
        D(2025, 4, 1),
        D(2025, 7, 1),
        D(2025, 10, 1),
    ]
    assert generate("quarterly", "2025-04-01", "2025-04-01") == [D(2025, 4, 1)]


def test_annual_is_january_first() -> None:
    assert generate("annual", "2024-03-01", "2026-06-01") == [D(2025, 1, 1), D(2026, 1, 1)]
    assert generate("annually", "2025-01-01", "2025-12-31") == [D(2025, 1, 1)]


def test_horizon_before_start_is_empty() -> None:
    assert generate("monthly", "2025-07-19", "2025-07-01") == []
    assert generate("monthly", "2025-07-19", "2025-07-31") == []


@pytest.mark.parametrize("frequency", list(Frequency))
def test_output_strictly_ascending(frequency: Frequency) -> None:
    dates = generate(frequency, "2023-05-17", "2025-09-30")
    assert dates == sorted(set(dates))
    assert all(d >= D(2023, 5, 17) for d in dates)


@pytest.mark.parametrize("frequency", list(Frequency))
def test_extending_horizon_only_appends(frequency: Frequency) -> None:
    shorter = generate(frequency, "2024-02-29", "2025-03-15")
    longer = generate(frequency, "2024-02-29", "2025-11-20")
    assert longer[: len(shorter)] == shorter
    assert all(d > D(2025, 3, 15) for d in longer[len(shorter):])


def test_horizon_defaults_to_today() -> None:
    dates = generate("daily", dt.date.today() - dt.timedelta(days=10))
    assert dates
    assert dates[-1] <= dt.date.today()


@pytest.mark.parametrize("value", ["biweekly", "", None, 7])
def test_invalid_frequency(value) -> None:
    with pytest.raises(InvalidFrequency):
        generate(value, "2025-01-01", "2025-02-01")


def test_invalid_frequency_is_a_scheduling_error() -> None:
    with pytest.raises(SchedulingError):
        Frequency.parse("hourly")


@pytest.mark.parametrize("value", [None, "", "   ", "not-a-date", "2025-02-30", 20250101])
def test_invalid_start_date(value) -> None:
    with pytest.raises(InvalidStartDate):
        generate("monthly", value, "2025-12-31")


def test_frequency_parse_is_case_insensitive() -> None:
    assert Frequency.parse("MONTHLY") is Frequency.MONTHLY
    assert Frequency.parse(" Weekly ") is Frequency.WEEKLY
    assert Frequency.parse("yearly") is Frequency.ANNUAL


def test_coerce_date_drops_time_component() -> None:
    assert coerce_date("2025-07-19T23:59:59Z") == D(2025, 7, 19)
    assert coerce_date(dt.datetime(2025, 7, 19, 8, 30)) == D(2025, 7, 19)


def test_next_occurrence_on_boundary_returns_same_day() -> None:
    assert next_occurrence("monthly", D(2025, 9, 1)) == D(2025, 9, 1)
    assert next_occurrence("quarterly", D(2025, 10, 2)) == D(2026, 1, 1)
    assert next_occurrence("annual", D(2025, 1, 2)) == D(2026, 1, 1)


def test_period_bounds() -> None:
    assert period_bounds("daily", D(2025, 8, 6)) == (D(2025, 8, 6), D(2025, 8, 6))
    assert period_bounds("weekly", D(2025, 8, 6)) == (D(2025, 8, 4), D(2025, 8, 10))
    assert period_bounds("monthly", D(2024, 2, 10)) == (D(2024, 2, 1), D(2024, 2, 29))
    assert period_bounds("quarterly", D(2025, 5, 20)) == (D(2025, 4, 1), D(2025, 6, 30))
    assert period_bounds("annual", D(2025, 5, 20)) == (D(2025, 1, 1), D(2025, 12, 31))


def test_worksheet_end_date_caps_horizon() -> None:
    worksheet = Worksheet(
        id="ws-1",
        frequency="monthly",
        start_date="2025-01-15",
        end_date="2025-04-30",
    )
    due = generate_for_worksheet(worksheet, "M1", D(2025, 12, 31))
    assert [d.date for d in due] == [D(2025, 2, 1), D(2025, 3, 1), D(2025, 4, 1)]
    assert {(d.machine_id, d.worksheet_id) for d in due} == {("M1", "ws-1")}


def test_daily_across_month_end_and_weekend() -> None:
    assert generate("daily", "2025-07-31", "2025-08-04") == [
        D(2025, 7, 31),
        D(2025, 8, 1),
        D(2025, 8, 4),
    ]
