from __future__ import annotations

from datetime import date


LEAP_DAY_RULES = {"feb28", "mar1"}


class InvalidBirthdayError(ValueError):
    pass


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def occurrence_for_year(birthday: date, year: int, leap_day_rule: str = "mar1") -> date:
    if birthday.month == 2 and birthday.day == 29 and not is_leap_year(year):
        if leap_day_rule == "feb28":
            return date(year, 2, 28)
        if leap_day_rule == "mar1":
            return date(year, 3, 1)
        raise InvalidBirthdayError(f"Unsupported leap day rule: {leap_day_rule}")
    return date(year, birthday.month, birthday.day)


def upcoming_occurrence(birthday: date, today: date, leap_day_rule: str = "mar1") -> date:
    """Nearest occurrence on or after today."""
    this_year = occurrence_for_year(birthday, today.year, leap_day_rule)
    if this_year >= today:
        return this_year
    return occurrence_for_year(birthday, today.year + 1, leap_day_rule)


def days_until_next_occurrence(birthday: date, today: date, leap_day_rule: str = "mar1") -> int:
    nxt = upcoming_occurrence(birthday, today, leap_day_rule)
    return (nxt - today).days


def next_occurrence_date(birthday: date, today: date, leap_day_rule: str = "mar1") -> date:
    """Occurrence strictly after today, used when scheduling new tasks.

    Unlike upcoming_occurrence, a birthday falling today rolls over to next
    year so a freshly scheduled task never lands on the current day.
    """
    this_year = occurrence_for_year(birthday, today.year, leap_day_rule)
    if this_year > today:
        return this_year
    return occurrence_for_year(birthday, today.year + 1, leap_day_rule)


def days_since(value: date, today: date) -> int:
    return (today - value).days


def age(birth_date: date, today: date) -> int:
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def turning_age(birth_date: date, occurrence: date) -> int:
    return occurrence.year - birth_date.year
