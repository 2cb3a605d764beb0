"""Schedule planning: which dates need a plan and which get a workout."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

import pytz

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class ScheduleDay:
    date: date
    is_workout: bool
    is_active: bool = True

    @property
    def key(self) -> str:
        return date_key(self.date)

    @property
    def day_name(self) -> str:
        return day_name_for(self.date)


@dataclass(frozen=True)
class ScheduleWindow:
    """Dates from today through the upcoming Sunday, with workout flags."""

    today: date
    days: Tuple[ScheduleDay, ...]

    @property
    def week_start(self) -> date:
        return self.today - timedelta(days=self.today.weekday())

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=6)

    @property
    def date_keys(self) -> List[str]:
        return [day.key for day in self.days]

    @property
    def workout_days(self) -> List[ScheduleDay]:
        return [day for day in self.days if day.is_workout]

    @property
    def workout_keys(self) -> List[str]:
        return [day.key for day in self.workout_days]

    def in_week(self, value: date) -> bool:
        """True when value lies in the Monday-Sunday week containing today."""
        return self.week_start <= value <= self.week_end

    def day_for_name(self, name: str) -> Optional[ScheduleDay]:
        name = (name or "").strip().lower()
        for day in self.days:
            if day.day_name == name:
                return day
        return None


def date_key(value: date) -> str:
    """Local calendar date as YYYY-MM-DD (never shifted through UTC)."""
    return value.strftime("%Y-%m-%d")


def day_name_for(value: date) -> str:
    return DAY_NAMES[value.weekday()]


def parse_date_key(value: object) -> Optional[date]:
    """Parse 'YYYY-MM-DD' (optionally followed by a time part); None when invalid."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if len(text) < 10:
        return None
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def normalize_day_name(value: object) -> Optional[str]:
    """Map 'Tuesday', 'tue', 'TUESDAY ' onto a canonical weekday name."""
    text = str(value or "").strip().lower()
    if not text:
        return None
    for name in DAY_NAMES:
        if text == name or (len(text) >= 3 and name.startswith(text)):
            return name
    return None


def today_in_timezone(timezone_name: str = "UTC") -> date:
    """Current calendar date in the given pytz timezone (unknown -> UTC)."""
    try:
        tz = pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.utc
    return datetime.now(tz).date()


def remaining_week_dates(today: date) -> List[date]:
    """Today through the upcoming Sunday; a Sunday yields only itself."""
    days_until_sunday = 6 - today.weekday()
    return [today + timedelta(days=offset) for offset in range(days_until_sunday + 1)]


def workout_indices(days_left: int, workouts_per_week: int) -> List[int]:
    """Spread min(frequency, days_left) workouts evenly over the window."""
    workouts = max(0, min(workouts_per_week, days_left))
    if workouts == 0:
        return []
    return [(i * days_left) // workouts for i in range(workouts)]


def plan_schedule(today: date, workouts_per_week: int) -> ScheduleWindow:
    """Build the schedule window for a run starting on `today`."""
    dates = remaining_week_dates(today)
    workout_set = set(workout_indices(len(dates), workouts_per_week))
    days = tuple(
        ScheduleDay(date=value, is_workout=index in workout_set)
        for index, value in enumerate(dates)
    )
    return ScheduleWindow(today=today, days=days)
