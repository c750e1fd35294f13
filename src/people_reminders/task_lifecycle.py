from __future__ import annotations

import asyncio
import logging
import re
from datetime import date
from typing import Callable

from people_reminders.date_logic import next_occurrence_date, occurrence_for_year
from people_reminders.date_parser import format_journal_date
from people_reminders.host import HostOperationError, HostStore, Record
from people_reminders.property_resolver import PropertyResolver, Reference, date_from_record
from people_reminders.reminder_state import KIND_BIRTHDAY_TASK, TaskLedger, dedupe_key

LOGGER = logging.getLogger(__name__)

BIRTHDAY_TASK_RE = re.compile(r"\[\[([^\]]+)\]\]['’]s Birthday")


def birthday_task_text(person_name: str) -> str:
    return f"[[{person_name}]]'s Birthday!"


def is_birthday_task(content: str) -> bool:
    return "[[" in content and ("'s Birthday" in content or "’s Birthday" in content)


def extract_birthday_person_name(content: str) -> str | None:
    match = BIRTHDAY_TASK_RE.search(content)
    return match.group(1) if match else None


class TaskWriter:
    """Appends task entries to the journal container of a given day."""

    def __init__(self, store: HostStore, *, task_tag: str, ledger: TaskLedger) -> None:
        self._store = store
        self._task_tag = task_tag
        self._ledger = ledger

    async def append_task(self, task_date: date, text: str, *, key: str | None = None) -> bool:
        container_name = format_journal_date(task_date)
        try:
            if key is not None and self._ledger.seen(key):
                LOGGER.info("Task %r already exists on %s", text, container_name)
                return False

            container = await self._store.find_record_by_name(container_name)
            if container is None:
                container = await self._store.create_record(container_name, journal=True)
            entry = await self._store.append_entry(container["id"], text)
            await self._store.tag_entry(entry["id"], self._task_tag)

            if key is not None:
                self._ledger.record(key)
        except (HostOperationError, OSError, ValueError):
            LOGGER.exception("Could not create task %r on %s", text, container_name)
            return False

        LOGGER.info("Created task %r on %s", text, container_name)
        return True


class BirthdayTaskScheduler:
    """Keeps one open birthday task per person, a year at a time.

    A task is written for the next occurrence when a person is added. When
    that task is completed the host reports the change, and the task for the
    following year is written.
    """

    def __init__(
        self,
        *,
        store: HostStore,
        resolver: PropertyResolver,
        writer: TaskWriter,
        leap_day_rule: str,
        completion_delay_seconds: float = 0.0,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._writer = writer
        self._leap_day_rule = leap_day_rule
        self._completion_delay_seconds = completion_delay_seconds
        self._clock = clock

    async def create_birthday_reminder_task(self, person_name: str, birthday: date, today: date) -> bool:
        occurrence = next_occurrence_date(birthday, today, self._leap_day_rule)
        return await self._schedule(person_name, occurrence)

    async def _schedule(self, person_name: str, occurrence: date) -> bool:
        LOGGER.info("Scheduling birthday task for %s on %s", person_name, occurrence.isoformat())
        return await self._writer.append_task(
            occurrence,
            birthday_task_text(person_name),
            key=dedupe_key(occurrence, person_name, KIND_BIRTHDAY_TASK),
        )

    async def handle_changes(self, entries: list[Record]) -> None:
        for entry in entries:
            content = str(entry.get("content") or "")
            if not content.startswith("DONE") or not is_birthday_task(content):
                continue
            person_name = extract_birthday_person_name(content)
            if person_name is None:
                continue
            if self._completion_delay_seconds > 0:
                await asyncio.sleep(self._completion_delay_seconds)
            await self.handle_birthday_task_completed(person_name, entry)

    async def _completed_occurrence(self, entry: Record) -> date | None:
        container = entry.get("page")
        if isinstance(container, dict):
            container = container.get("id")
        if not container:
            return None
        resolved = await self._resolver.dereference(Reference(str(container)))
        return date_from_record(resolved.value) if resolved else None

    async def handle_birthday_task_completed(
        self,
        person_name: str,
        entry: Record | None = None,
        today: date | None = None,
    ) -> bool:
        today = today or self._clock()
        LOGGER.info("Birthday task completed for %s", person_name)

        try:
            page = await self._store.find_record_by_name(person_name)
        except HostOperationError:
            LOGGER.exception("Could not look up page for %s", person_name)
            return False
        if page is None:
            LOGGER.warning("Could not find page for %s", person_name)
            return False

        birthday = await self._resolver.resolve_date(page, "birthday")
        if birthday is None:
            LOGGER.warning("No birthday found for %s", person_name)
            return False

        completed = await self._completed_occurrence(entry) if entry is not None else None
        base_year = completed.year if completed is not None else today.year
        occurrence = occurrence_for_year(birthday, base_year + 1, self._leap_day_rule)
        return await self._schedule(person_name, occurrence)
