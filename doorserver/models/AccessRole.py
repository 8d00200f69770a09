from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ANYTIME = "anytime"

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


# ==========================================
# Schedule (decoded once at config load)
# ==========================================
@dataclass(frozen=True)
class AnyTime:
    """Open every day, every hour."""


@dataclass(frozen=True)
class Bounded:
    # None means "any day" / "any hour"
    weekdays: Optional[frozenset[str]] = None
    hour_range: Optional[tuple[int, int]] = None


Schedule = AnyTime | Bounded


def parse_hour_range(time_range: str) -> tuple[int, int]:
    """
    Parses "9-17" into (9, 17). Both ends are inclusive.
    """
    try:
        start_str, end_str = time_range.split("-")
        start, end = int(start_str), int(end_str)
    except ValueError:
        raise ValueError(f"Invalid timeRange {time_range!r}, expected 'anytime' or '<start>-<end>'")
    if not 0 <= start <= end <= 23:
        raise ValueError(f"Invalid timeRange {time_range!r}, hours must satisfy 0 <= start <= end <= 23")
    return start, end


def parse_schedule(days_of_week: Any, time_range: str) -> Schedule:
    any_day = days_of_week == ANYTIME
    any_time = time_range == ANYTIME
    if any_day and any_time:
        return AnyTime()

    weekdays = None
    if not any_day:
        weekdays = frozenset(day.strip().capitalize() for day in days_of_week)
        unknown = weekdays - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday(s) {sorted(unknown)}")

    hour_range = None if any_time else parse_hour_range(time_range)
    return Bounded(weekdays=weekdays, hour_range=hour_range)


# ==========================================
# Role definition (access_roles.json entry)
# ==========================================
class AccessRole(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role_id: str = Field(alias="roleId")
    name: str
    description: str = ""
    days_of_week: str | list[str] = Field(default=ANYTIME, alias="daysOfWeek")
    time_range: str = Field(default=ANYTIME, alias="timeRange")

    # Refreshed from the chat platform, not authoritative between refreshes
    member_ids: set[str] = Field(default_factory=set, exclude=True)
    schedule: Schedule = Field(default_factory=AnyTime, exclude=True)

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, value):
        if isinstance(value, str) and value != ANYTIME:
            raise ValueError("daysOfWeek must be 'anytime' or a list of weekday names")
        return value

    @model_validator(mode="after")
    def build_schedule(self):
        self.refresh_schedule()
        return self

    def refresh_schedule(self) -> None:
        self.schedule = parse_schedule(self.days_of_week, self.time_range)

    @property
    def hour_range(self) -> Optional[tuple[int, int]]:
        if isinstance(self.schedule, Bounded):
            return self.schedule.hour_range
        return None
