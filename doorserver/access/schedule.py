from datetime import datetime

from ..models.AccessRole import WEEKDAYS, AccessRole, AnyTime

# Schedules are evaluated on the server's configured local clock only. A role
# configured as "9-17" means 9:00 to 17:59 in that timezone, whatever the
# timezone of the person at the door.


def weekday_name(now: datetime) -> str:
    return WEEKDAYS[now.weekday()]


def is_schedule_open(role: AccessRole, now: datetime) -> bool:
    schedule = role.schedule
    if isinstance(schedule, AnyTime):
        return True

    if schedule.weekdays is not None and weekday_name(now) not in schedule.weekdays:
        return False

    if schedule.hour_range is not None:
        start, end = schedule.hour_range
        return start <= now.hour <= end

    return True


def open_roles(roles: list[AccessRole], now: datetime) -> list[AccessRole]:
    return [role for role in roles if is_schedule_open(role, now)]


def describe_opening_hours(role: AccessRole | None) -> str:
    """
    Human readable schedule, e.g. "on Monday, Friday between 9 and 17".
    """
    if role is None:
        return "never"
    schedule = role.schedule
    if isinstance(schedule, AnyTime):
        return "anytime"

    if schedule.weekdays is None:
        days = "any day"
    else:
        days = "on " + ", ".join(day for day in WEEKDAYS if day in schedule.weekdays)

    if schedule.hour_range is None:
        hours = "anytime"
    else:
        hours = f"between {schedule.hour_range[0]} and {schedule.hour_range[1]}"
    return f"{days} {hours}"
