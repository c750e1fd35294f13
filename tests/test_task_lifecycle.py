from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from people_reminders.host import HostOperationError
from people_reminders.notebook_store import NotebookStore
from people_reminders.property_resolver import PERSON_PROPERTY_KEYS, PropertyResolver
from people_reminders.reminder_state import TaskLedger
from people_reminders.task_lifecycle import (
    BirthdayTaskScheduler,
    TaskWriter,
    extract_birthday_person_name,
    is_birthday_task,
)


def _scheduler(store, tmp_path: Path, today: date) -> BirthdayTaskScheduler:
    resolver = PropertyResolver(store)
    writer = TaskWriter(store, task_tag="Task", ledger=TaskLedger(tmp_path / "state.json"))
    return BirthdayTaskScheduler(
        store=store,
        resolver=resolver,
        writer=writer,
        leap_day_rule="mar1",
        clock=lambda: today,
    )


async def _add_person(store: NotebookStore, name: str, birthday: date) -> None:
    page = await store.create_record(name)
    await store.tag_entry(page["id"], "people")
    await store.set_property(page["id"], PERSON_PROPERTY_KEYS["birthday"], birthday)


def test_birthday_task_content_matching() -> None:
    assert is_birthday_task("DONE [[Alice]]'s Birthday!")
    assert is_birthday_task("DONE [[Alice]]’s Birthday!")
    assert not is_birthday_task("DONE Alice's Birthday")
    assert extract_birthday_person_name("DONE [[Ada Lovelace]]’s Birthday!") == "Ada Lovelace"
    assert extract_birthday_person_name("DONE [[Alice]] Birthday") is None


def test_create_task_on_next_occurrence(tmp_path: Path) -> None:
    store = NotebookStore(tmp_path / "notebook.json")
    scheduler = _scheduler(store, tmp_path, date(2024, 6, 1))

    created = asyncio.run(scheduler.create_birthday_reminder_task("Alice", date(1990, 6, 2), date(2024, 6, 1)))

    journal = asyncio.run(store.find_record_by_name("2024-06-02"))
    tasks = asyncio.run(store.open_entries("2024-06-02", "Task"))
    assert created is True
    assert journal is not None and journal["journalDay"] == 20240602
    assert [task["content"] for task in tasks] == ["[[Alice]]'s Birthday!"]


def test_creating_the_same_occurrence_twice_is_skipped(tmp_path: Path) -> None:
    store = NotebookStore(tmp_path / "notebook.json")
    scheduler = _scheduler(store, tmp_path, date(2024, 6, 1))

    first = asyncio.run(scheduler.create_birthday_reminder_task("Alice", date(1990, 6, 2), date(2024, 6, 1)))
    second = asyncio.run(scheduler.create_birthday_reminder_task("Alice", date(1990, 6, 2), date(2024, 6, 1)))

    assert (first, second) == (True, False)
    assert len(asyncio.run(store.open_entries("2024-06-02", "Task"))) == 1


def test_completion_schedules_one_year_after_completed_occurrence(tmp_path: Path) -> None:
    store = NotebookStore(tmp_path / "notebook.json")
    asyncio.run(_add_person(store, "Alice", date(1990, 6, 2)))
    # Completion processed long after the occurrence, in a later calendar year.
    scheduler = _scheduler(store, tmp_path, date(2025, 3, 1))
    store.on_change_notification(scheduler.handle_changes)
    asyncio.run(scheduler.create_birthday_reminder_task("Alice", date(1990, 6, 2), date(2024, 6, 1)))

    task = asyncio.run(store.open_entries("2024-06-02", "Task"))[0]
    asyncio.run(store.mark_entry_done(task["id"]))

    next_tasks = asyncio.run(store.open_entries("2025-06-02", "Task"))
    assert [t["content"] for t in next_tasks] == ["[[Alice]]'s Birthday!"]
    assert asyncio.run(store.open_entries("2026-06-02", "Task")) == []


def test_completion_without_container_uses_current_year(tmp_path: Path) -> None:
    store = NotebookStore(tmp_path / "notebook.json")
    asyncio.run(_add_person(store, "Alice", date(1990, 6, 2)))
    scheduler = _scheduler(store, tmp_path, date(2024, 6, 2))

    created = asyncio.run(scheduler.handle_birthday_task_completed("Alice"))

    assert created is True
    assert len(asyncio.run(store.open_entries("2025-06-02", "Task"))) == 1


def test_open_tasks_do_not_trigger_rescheduling(tmp_path: Path) -> None:
    store = NotebookStore(tmp_path / "notebook.json")
    scheduler = _scheduler(store, tmp_path, date(2024, 6, 2))
    calls: list[str] = []

    async def record(name: str, entry=None, today=None) -> bool:
        calls.append(name)
        return True

    scheduler.handle_birthday_task_completed = record
    asyncio.run(
        scheduler.handle_changes(
            [
                {"content": "TODO [[Alice]]'s Birthday!"},
                {"content": "DONE Buy milk"},
                {"content": "DONE [[Bob]]'s Birthday!"},
            ]
        )
    )

    assert calls == ["Bob"]


def test_unknown_person_or_missing_birthday_is_skipped(tmp_path: Path) -> None:
    store = NotebookStore(tmp_path / "notebook.json")
    asyncio.run(store.create_record("Carol"))
    scheduler = _scheduler(store, tmp_path, date(2024, 6, 2))

    assert asyncio.run(scheduler.handle_birthday_task_completed("Nobody")) is False
    assert asyncio.run(scheduler.handle_birthday_task_completed("Carol")) is False


@dataclass
class BrokenStore:
    pages: dict[str, dict[str, Any]] = field(default_factory=dict)

    async def find_record_by_name(self, name: str) -> dict[str, Any] | None:
        return self.pages.get(name)

    async def resolve_reference(self, record_id: str) -> dict[str, Any] | None:
        return None

    async def create_record(self, name: str, *, journal: bool = False) -> dict[str, Any]:
        raise HostOperationError("read-only notebook")


def test_host_failure_is_logged_not_raised(tmp_path: Path) -> None:
    store = BrokenStore(pages={"Alice": {"id": "p", "birthday": "1990-06-02"}})
    scheduler = _scheduler(store, tmp_path, date(2024, 6, 1))

    assert asyncio.run(scheduler.handle_birthday_task_completed("Alice")) is False
    assert not (tmp_path / "state.json").exists()
