from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


DEFAULT_BIRTHDAY_WINDOW_DAYS = 30
DEFAULT_CHECK_WINDOW_DAYS = 7


@dataclass(frozen=True)
class Person:
    person_id: str
    name: str
    birthday: date | None = None
    last_contact: date | None = None
    contact_frequency_days: int | None = None
    relationship: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class BirthdayReminder:
    person: Person
    days_until: int
    age: int | None
    next_date: date


@dataclass(frozen=True)
class ContactReminder:
    person: Person
    days_since_contact: int | None
    days_overdue: int

    @property
    def never_contacted(self) -> bool:
        return self.days_since_contact is None


@dataclass(frozen=True)
class ReminderOverview:
    birthdays: list[BirthdayReminder]
    contacts: list[ContactReminder]


@dataclass(frozen=True)
class NewPersonData:
    name: str
    birthday: date | None = None
    relationship: str | None = None
    contact_frequency_days: int | None = None
    email: str | None = None


@dataclass(frozen=True)
class CreationResult:
    success: bool
    message: str | None = None


class View(Enum):
    LIST = "list"
    ADD = "add"


@dataclass(frozen=True)
class AppConfig:
    timezone: str
    daily_check_time: str
    leap_day_rule: str
    birthday_window_days: int = DEFAULT_BIRTHDAY_WINDOW_DAYS
    check_window_days: int = DEFAULT_CHECK_WINDOW_DAYS
    completion_delay_seconds: float = 0.5
    people_tag: str = "people"
    task_tag: str = "Task"
    deduplicate_tasks: bool = True
