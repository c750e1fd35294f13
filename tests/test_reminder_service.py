from __future__ import annotations

import asyncio
from datetime import date, timedelta
from pathlib import Path

from people_reminders.host import HostOperationError
from people_reminders.models import AppConfig, NewPersonData, Person
from people_reminders.notebook_store import NotebookStore
from people_reminders.property_resolver import PERSON_PROPERTY_KEYS, PropertyResolver
from people_reminders.reminder_service import (
    ReminderService,
    derive_birthday_reminders,
    derive_people_to_contact,
)
from people_reminders.reminder_state import TaskLedger
from people_reminders.task_lifecycle import BirthdayTaskScheduler, TaskWriter

TODAY = date(2024, 6, 1)


def _person(name: str, **fields) -> Person:
    return Person(person_id=f"id-{name}", name=name, **fields)


def _service(tmp_path: Path, *, deduplicate: bool = True) -> tuple[NotebookStore, ReminderService]:
    config = AppConfig(timezone="UTC", daily_check_time="09:00", leap_day_rule="mar1", completion_delay_seconds=0)
    store = NotebookStore(tmp_path / "notebook.json")
    ledger = TaskLedger(tmp_path / "reminder_state.json" if deduplicate else None)
    resolver = PropertyResolver(store)
    writer = TaskWriter(store, task_tag=config.task_tag, ledger=ledger)
    scheduler = BirthdayTaskScheduler(
        store=store,
        resolver=resolver,
        writer=writer,
        leap_day_rule=config.leap_day_rule,
        clock=lambda: TODAY,
    )
    service = ReminderService(
        store=store,
        config=config,
        resolver=resolver,
        writer=writer,
        scheduler=scheduler,
        ledger=ledger,
    )
    return store, service


def test_birthday_reminders_are_windowed_and_sorted() -> None:
    people = [
        _person("Later", birthday=date(1990, 6, 20)),
        _person("NoBirthday"),
        _person("Today", birthday=date(1990, 6, 1)),
        _person("Outside", birthday=date(1990, 8, 1)),
        _person("Passed", birthday=date(1990, 5, 31)),
        _person("Tomorrow", birthday=date(1985, 6, 2)),
    ]

    reminders = derive_birthday_reminders(people, 30, TODAY)

    assert [r.person.name for r in reminders] == ["Today", "Tomorrow", "Later"]
    assert [r.days_until for r in reminders] == [0, 1, 19]
    assert all(r.days_until <= 30 and r.person.birthday is not None for r in reminders)


def test_birthday_age_is_the_age_being_turned() -> None:
    people = [
        _person("Today", birthday=date(1990, 6, 1)),
        _person("Tomorrow", birthday=date(1990, 6, 2)),
        _person("NextYear", birthday=date(1990, 5, 31)),
    ]

    reminders = derive_birthday_reminders(people, 365, TODAY)
    ages = {r.person.name: r.age for r in reminders}

    assert ages == {"Today": 34, "Tomorrow": 34, "NextYear": 35}


def test_birthday_ties_keep_input_order() -> None:
    people = [_person(name, birthday=date(1990, 6, 5)) for name in ("b", "a", "c")]

    reminders = derive_birthday_reminders(people, 30, TODAY)

    assert [r.person.name for r in reminders] == ["b", "a", "c"]


def test_people_to_contact_examples() -> None:
    people = [
        _person("Never", contact_frequency_days=14),
        _person("Overdue", contact_frequency_days=14, last_contact=TODAY - timedelta(days=20)),
        _person("Recent", contact_frequency_days=14, last_contact=TODAY - timedelta(days=5)),
        _person("NoCadence", last_contact=TODAY - timedelta(days=500)),
        _person("VeryOverdue", contact_frequency_days=7, last_contact=TODAY - timedelta(days=40)),
    ]

    reminders = derive_people_to_contact(people, TODAY)
    by_name = {r.person.name: r for r in reminders}

    assert [r.person.name for r in reminders] == ["VeryOverdue", "Never", "Overdue"]
    assert by_name["Never"].days_overdue == 14
    assert by_name["Never"].never_contacted is True
    assert by_name["Overdue"].days_overdue == 6
    assert by_name["Overdue"].days_since_contact == 20
    assert "Recent" not in by_name


def test_contact_due_exactly_today_is_included() -> None:
    people = [_person("Due", contact_frequency_days=10, last_contact=TODAY - timedelta(days=10))]

    reminders = derive_people_to_contact(people, TODAY)

    assert [(r.person.name, r.days_overdue) for r in reminders] == [("Due", 0)]


def test_derivation_is_idempotent() -> None:
    people = [
        _person("A", birthday=date(1990, 6, 3), contact_frequency_days=3),
        _person("B", birthday=date(1990, 6, 3), contact_frequency_days=3),
    ]

    assert derive_birthday_reminders(people, 30, TODAY) == derive_birthday_reminders(people, 30, TODAY)
    assert derive_people_to_contact(people, TODAY) == derive_people_to_contact(people, TODAY)


def test_create_person_sets_properties_and_schedules_birthday(tmp_path: Path) -> None:
    store, service = _service(tmp_path)

    result = asyncio.run(
        service.create_person(
            NewPersonData(
                name=" Alice ",
                birthday=date(1990, 6, 1),
                relationship="friend",
                contact_frequency_days=14,
                email="alice@example.com",
            ),
            TODAY,
        )
    )

    assert result.success is True
    assert result.message == 'Added "Alice" successfully!'

    page = asyncio.run(store.find_record_by_name("alice"))
    assert page is not None
    assert "people" in page["tags"]
    assert page[PERSON_PROPERTY_KEYS["relationship"]] == "friend"
    assert page[PERSON_PROPERTY_KEYS["contact-frequency"]] == 14

    # Birthday is today, so the scheduled task lands on next year's occurrence.
    tasks = asyncio.run(store.open_entries("2025-06-01", "Task"))
    assert [task["content"] for task in tasks] == ["[[Alice]]'s Birthday!"]

    people = asyncio.run(service.load_people())
    assert people[0].birthday == date(1990, 6, 1)
    assert people[0].contact_frequency_days == 14


def test_create_person_validation_failures(tmp_path: Path) -> None:
    _store, service = _service(tmp_path)

    missing = asyncio.run(service.create_person(NewPersonData(name="   "), TODAY))
    first = asyncio.run(service.create_person(NewPersonData(name="Bob"), TODAY))
    duplicate = asyncio.run(service.create_person(NewPersonData(name="bob"), TODAY))

    assert (missing.success, missing.message) == (False, "Name is required")
    assert first.success is True
    assert duplicate.success is False
    assert duplicate.message == 'A page named "bob" already exists'


def test_check_and_create_reminders_writes_tasks_to_today(tmp_path: Path) -> None:
    store, service = _service(tmp_path)
    asyncio.run(service.create_person(NewPersonData(name="Soon", birthday=date(1990, 6, 4)), TODAY))
    asyncio.run(service.create_person(NewPersonData(name="Never", contact_frequency_days=14), TODAY))
    asyncio.run(service.create_person(NewPersonData(name="Far", birthday=date(1990, 9, 1)), TODAY))

    created = asyncio.run(service.check_and_create_reminders(TODAY))

    contents = sorted(task["content"] for task in asyncio.run(store.open_entries("2024-06-01", "Task")))
    assert created == 2
    assert contents == [
        "Reach out to [[Never]] (14 days overdue)",
        "[[Soon]]'s Birthday in 3 days",
    ]


def test_check_twice_same_day_does_not_duplicate(tmp_path: Path) -> None:
    store, service = _service(tmp_path)
    asyncio.run(service.create_person(NewPersonData(name="Never", contact_frequency_days=14), TODAY))

    first = asyncio.run(service.check_and_create_reminders(TODAY))
    second = asyncio.run(service.check_and_create_reminders(TODAY))

    assert (first, second) == (1, 0)
    assert len(asyncio.run(store.open_entries("2024-06-01", "Task"))) == 1


def test_check_twice_without_ledger_duplicates(tmp_path: Path) -> None:
    store, service = _service(tmp_path, deduplicate=False)
    asyncio.run(service.create_person(NewPersonData(name="Never", contact_frequency_days=14), TODAY))

    asyncio.run(service.check_and_create_reminders(TODAY))
    asyncio.run(service.check_and_create_reminders(TODAY))

    assert len(asyncio.run(store.open_entries("2024-06-01", "Task"))) == 2


def test_check_skips_failed_task_and_writes_the_rest(tmp_path: Path) -> None:
    store, service = _service(tmp_path)
    asyncio.run(service.create_person(NewPersonData(name="A", contact_frequency_days=14), TODAY))
    asyncio.run(service.create_person(NewPersonData(name="B", contact_frequency_days=14), TODAY))
    original_append = store.append_entry

    async def flaky_append(container_id: str, text: str):
        if "[[A]]" in text:
            raise HostOperationError("write rejected")
        return await original_append(container_id, text)

    store.append_entry = flaky_append

    created = asyncio.run(service.check_and_create_reminders(TODAY))

    contents = [task["content"] for task in asyncio.run(store.open_entries("2024-06-01", "Task"))]
    assert created == 1
    assert contents == ["Reach out to [[B]] (14 days overdue)"]
