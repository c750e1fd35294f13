from __future__ import annotations

import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from people_reminders.date_logic import days_since, days_until_next_occurrence, turning_age, upcoming_occurrence
from people_reminders.host import HostOperationError, HostStore
from people_reminders.models import (
    AppConfig,
    BirthdayReminder,
    ContactReminder,
    CreationResult,
    NewPersonData,
    Person,
    ReminderOverview,
)
from people_reminders.property_resolver import PERSON_PROPERTY_KEYS, PropertyResolver
from people_reminders.reminder_state import KIND_BIRTHDAY_NOTICE, KIND_CONTACT, TaskLedger, dedupe_key
from people_reminders.task_lifecycle import BirthdayTaskScheduler, TaskWriter

LOGGER = logging.getLogger(__name__)


def derive_birthday_reminders(
    people: list[Person],
    window_days: int,
    today: date,
    leap_day_rule: str = "mar1",
) -> list[BirthdayReminder]:
    reminders: list[BirthdayReminder] = []

    for person in people:
        if person.birthday is None:
            continue

        days_until = days_until_next_occurrence(person.birthday, today, leap_day_rule)
        if days_until > window_days:
            continue

        occurrence = upcoming_occurrence(person.birthday, today, leap_day_rule)
        reminders.append(
            BirthdayReminder(
                person=person,
                days_until=days_until,
                age=turning_age(person.birthday, occurrence),
                next_date=occurrence,
            )
        )

    # list.sort is stable, so equal days keep input order.
    reminders.sort(key=lambda item: item.days_until)
    return reminders


def derive_people_to_contact(people: list[Person], today: date) -> list[ContactReminder]:
    reminders: list[ContactReminder] = []

    for person in people:
        frequency = person.contact_frequency_days
        if not frequency:
            continue

        if person.last_contact is None:
            # Never contacted counts as exactly one cadence overdue.
            reminders.append(ContactReminder(person=person, days_since_contact=None, days_overdue=frequency))
            continue

        since = days_since(person.last_contact, today)
        overdue = since - frequency
        if overdue >= 0:
            reminders.append(ContactReminder(person=person, days_since_contact=since, days_overdue=overdue))

    reminders.sort(key=lambda item: item.days_overdue, reverse=True)
    return reminders


def birthday_notice_text(reminder: BirthdayReminder) -> str:
    if reminder.days_until == 0:
        return f"[[{reminder.person.name}]]'s Birthday is TODAY!"
    return f"[[{reminder.person.name}]]'s Birthday in {reminder.days_until} days"


def contact_task_text(reminder: ContactReminder) -> str:
    if reminder.days_overdue > 0:
        return f"Reach out to [[{reminder.person.name}]] ({reminder.days_overdue} days overdue)"
    return f"Time to contact [[{reminder.person.name}]]"


class ReminderService:
    def __init__(
        self,
        *,
        store: HostStore,
        config: AppConfig,
        resolver: PropertyResolver,
        writer: TaskWriter,
        scheduler: BirthdayTaskScheduler,
        ledger: TaskLedger,
    ) -> None:
        self._store = store
        self._config = config
        self._resolver = resolver
        self._writer = writer
        self._scheduler = scheduler
        self._ledger = ledger

    async def load_people(self) -> list[Person]:
        return await self._resolver.load_people(self._config.people_tag)

    async def build_overview(self, today: date) -> ReminderOverview:
        people = await self.load_people()
        return ReminderOverview(
            birthdays=derive_birthday_reminders(
                people, self._config.birthday_window_days, today, self._config.leap_day_rule
            ),
            contacts=derive_people_to_contact(people, today),
        )

    async def check_and_create_reminders(self, today: date) -> int:
        people = await self.load_people()
        birthdays = derive_birthday_reminders(
            people, self._config.check_window_days, today, self._config.leap_day_rule
        )
        contacts = derive_people_to_contact(people, today)

        try:
            self._ledger.prune(today)
        except (OSError, ValueError):
            LOGGER.exception("Could not prune the task ledger")

        created = 0
        for reminder in birthdays:
            key = dedupe_key(today, reminder.person.name, KIND_BIRTHDAY_NOTICE)
            if await self._writer.append_task(today, birthday_notice_text(reminder), key=key):
                created += 1

        for reminder in contacts:
            if reminder.days_overdue < 0:
                continue
            key = dedupe_key(today, reminder.person.name, KIND_CONTACT)
            if await self._writer.append_task(today, contact_task_text(reminder), key=key):
                created += 1

        LOGGER.info("Created %s reminder tasks for %s", created, today.isoformat())
        return created

    async def create_person(self, data: NewPersonData, today: date) -> CreationResult:
        name = data.name.strip()
        if not name:
            return CreationResult(success=False, message="Name is required")

        try:
            if await self._store.find_record_by_name(name) is not None:
                return CreationResult(success=False, message=f'A page named "{name}" already exists')

            page = await self._store.create_record(name)
            page_id = page["id"]
            await self._store.tag_entry(page_id, self._config.people_tag)

            if data.birthday is not None:
                await self._store.set_property(page_id, PERSON_PROPERTY_KEYS["birthday"], data.birthday)
            if data.relationship:
                await self._store.set_property(page_id, PERSON_PROPERTY_KEYS["relationship"], data.relationship)
            if data.contact_frequency_days and data.contact_frequency_days > 0:
                await self._store.set_property(
                    page_id, PERSON_PROPERTY_KEYS["contact-frequency"], data.contact_frequency_days
                )
            if data.email:
                await self._store.set_property(page_id, PERSON_PROPERTY_KEYS["email"], data.email)
        except HostOperationError as exc:
            LOGGER.exception("Could not create person %s", name)
            return CreationResult(success=False, message=str(exc))

        if data.birthday is not None:
            await self._scheduler.create_birthday_reminder_task(name, data.birthday, today)

        LOGGER.info("Created person %s", name)
        return CreationResult(success=True, message=f'Added "{name}" successfully!')


def parse_time_string(value: str) -> tuple[int, int]:
    hour, minute = value.split(":")
    return int(hour), int(minute)


def now_in_timezone(timezone_name: str) -> datetime:
    tz = ZoneInfo(timezone_name)
    return datetime.now(tz)


def today_in_timezone(timezone_name: str) -> date:
    return now_in_timezone(timezone_name).date()
