"""Unit tests for the schedule window and date helpers."""
from datetime import date

import pytest

from schedule import (
    date_key,
    normalize_day_name,
    parse_date_key,
    plan_schedule,
    remaining_week_dates,
    today_in_timezone,
    workout_indices,
)


@pytest.mark.priority_high
@pytest.mark.unit
class TestScheduleWindow:
    """Which dates get a plan and which of them get a workout."""

    def test_midweek_window(self, window):
        """A Wednesday start covers Wednesday through Sunday."""
        assert window.date_keys == [
            "2026-10-14",
            "2026-10-15",
            "2026-10-16",
            "2026-10-17",
            "2026-10-18",
        ]
        assert window.workout_keys == ["2026-10-14", "2026-10-15", "2026-10-17"]
        assert window.week_start == date(2026, 10, 12)
        assert window.week_end == date(2026, 10, 18)

    def test_sunday_yields_only_itself(self):
        assert remaining_week_dates(date(2026, 10, 18)) == [date(2026, 10, 18)]

    def test_monday_yields_full_week(self):
        dates = remaining_week_dates(date(2026, 10, 12))
        assert len(dates) == 7
        assert dates[-1] == date(2026, 10, 18)

    @pytest.mark.parametrize(
        "days_left,frequency,expected",
        [(5, 3, [0, 1, 3]), (7, 3, [0, 2, 4]), (2, 5, [0, 1]), (3, 0, []), (1, 1, [0])],
    )
    def test_workout_indices_spread_evenly(self, days_left, frequency, expected):
        assert workout_indices(days_left, frequency) == expected

    def test_workouts_never_exceed_remaining_days(self):
        window = plan_schedule(date(2026, 10, 17), 5)
        assert window.workout_keys == ["2026-10-17", "2026-10-18"]

    def test_in_week_and_day_lookup(self, window):
        assert window.in_week(date(2026, 10, 12)), "Monday of the same week counts"
        assert not window.in_week(date(2026, 10, 19))
        assert window.day_for_name("Friday").key == "2026-10-16"
        assert window.day_for_name("monday") is None, "Monday already passed"


@pytest.mark.priority_medium
@pytest.mark.unit
class TestDateHelpers:
    """Parsing and formatting of day names and date keys."""

    def test_date_key_is_local_calendar_date(self):
        assert date_key(date(2026, 10, 18)) == "2026-10-18"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Tuesday", "tuesday"),
            ("TUESDAY ", "tuesday"),
            ("tue", "tuesday"),
            ("Thu", "thursday"),
            ("t", None),
            ("funday", None),
            (None, None),
        ],
    )
    def test_normalize_day_name(self, raw, expected):
        assert normalize_day_name(raw) == expected

    def test_parse_date_key(self):
        assert parse_date_key("2026-10-14") == date(2026, 10, 14)
        assert parse_date_key("2026-10-14T08:00:00Z") == date(2026, 10, 14)
        assert parse_date_key("14/10/2026") is None
        assert parse_date_key("") is None
        assert parse_date_key("2026-02-30") is None

    def test_unknown_timezone_falls_back_to_utc(self):
        assert isinstance(today_in_timezone("Not/AZone"), date)
