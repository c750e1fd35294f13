from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable

from people_reminders.date_parser import parse_date, parse_journal_day
from people_reminders.host import HostOperationError, HostStore, Record
from people_reminders.models import Person

LOGGER = logging.getLogger(__name__)

PERSON_PROPERTY_KEYS = {
    "birthday": "birthday-GB6GsLcK",
    "last-contact": "last-contact-zKo0vxkv",
    "contact-frequency": "contact-frequency-rE_86ouV",
    "relationship": "relationship-F2JPblxy",
    "email": "email-EYPFhTdc",
}

JOURNAL_DAY_KEYS = ("journalDay", "journal-day", ":block/journal-day")
NUMBER_VALUE_KEY = ":logseq.property/value"

_SUFFIX = r"[A-Za-z0-9_-]+"
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def _exact(name: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(name)}$")


def _user_namespace(name: str) -> re.Pattern[str]:
    return re.compile(rf"^:user\.property/{re.escape(name)}(-{_SUFFIX})?$")


def _plugin_namespace(name: str) -> re.Pattern[str]:
    return re.compile(rf"^:plugin\.property\.[^/]+/{re.escape(name)}(-{_SUFFIX})?$")


def _suffixed(name: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(name)}-{_SUFFIX}$")


# Tried in order; the first strategy with a matching key wins.
KEY_STRATEGIES: tuple[tuple[str, Callable[[str], re.Pattern[str]]], ...] = (
    ("exact", _exact),
    ("user", _user_namespace),
    ("plugin", _plugin_namespace),
    ("suffixed", _suffixed),
)


@dataclass(frozen=True)
class Direct:
    value: Any


@dataclass(frozen=True)
class Reference:
    record_id: str


def matching_key(record: Record, name: str) -> str | None:
    if not record:
        return None
    for label, build in KEY_STRATEGIES:
        pattern = build(name)
        for key in record:
            if pattern.match(key) and record[key] is not None:
                LOGGER.debug("Matched %s via %s key %s", name, label, key)
                return key
    return None


def find_property(record: Record, name: str) -> Any:
    key = matching_key(record, name)
    return record[key] if key is not None else None


def classify(raw: Any) -> Direct | Reference | None:
    if raw is None:
        return None
    if isinstance(raw, dict) and raw.get("id") is not None:
        return Reference(str(raw["id"]))
    return Direct(raw)


def parse_leading_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else None


def date_from_record(record: Record) -> date | None:
    """Read a calendar date off a resolved date record (usually a journal page)."""
    for key in JOURNAL_DAY_KEYS:
        if record.get(key):
            return parse_journal_day(record[key])
    if record.get("title"):
        return parse_date(record["title"])
    if record.get("name"):
        return parse_date(record["name"])
    return None


def number_from_record(record: Record) -> int | None:
    value = record.get(NUMBER_VALUE_KEY)
    if value is not None:
        return parse_leading_int(value)
    return parse_leading_int(record.get("title") or record.get("content") or "")


def text_from_record(record: Record) -> str | None:
    return record.get("title") or record.get("content") or None


def person_name(record: Record) -> str:
    return record.get("original-name") or record.get("title") or record.get("name") or "Unknown"


class PropertyResolver:
    def __init__(self, store: HostStore) -> None:
        self._store = store

    async def dereference(self, value: Direct | Reference | None) -> Direct | None:
        """Turn a Reference into a Direct holding the referenced record."""
        if value is None or isinstance(value, Direct):
            return value
        try:
            record = await self._store.resolve_reference(value.record_id)
        except HostOperationError as exc:
            LOGGER.warning("Could not resolve reference %s: %s", value.record_id, exc)
            return None
        if record is None:
            LOGGER.debug("Reference %s points at nothing", value.record_id)
            return None
        return Direct(record)

    async def resolve_date(self, record: Record, name: str, *, numeric: str = "journal") -> date | None:
        raw = classify(find_property(record, name))
        if isinstance(raw, Reference):
            resolved = await self.dereference(raw)
            return date_from_record(resolved.value) if resolved else None
        if raw is None:
            return None
        value = raw.value
        if isinstance(value, (int, float)) and not isinstance(value, bool) and numeric == "journal":
            return parse_journal_day(value)
        return parse_date(value)

    async def resolve_number(self, record: Record, name: str) -> int | None:
        raw = classify(find_property(record, name))
        if isinstance(raw, Reference):
            resolved = await self.dereference(raw)
            return number_from_record(resolved.value) if resolved else None
        if raw is None:
            return None
        return parse_leading_int(raw.value)

    async def resolve_text(self, record: Record, name: str) -> str | None:
        raw = classify(find_property(record, name))
        if isinstance(raw, Reference):
            resolved = await self.dereference(raw)
            return text_from_record(resolved.value) if resolved else None
        if raw is None or not isinstance(raw.value, str):
            return None
        return raw.value or None

    async def resolve_person(self, record: Record) -> Person | None:
        person_id = record.get("id") or record.get("uuid")
        if person_id is None:
            LOGGER.warning("Skipping record without an id: %r", person_name(record))
            return None

        birthday = await self.resolve_date(record, "birthday", numeric="journal")
        last_contact = await self.resolve_date(record, "last-contact", numeric="epoch")

        frequency = await self.resolve_number(record, "contact-frequency")
        if frequency is not None and frequency <= 0:
            LOGGER.debug("Ignoring non-positive contact frequency %s", frequency)
            frequency = None

        relationship = await self.resolve_text(record, "relationship")
        email = find_property(record, "email")

        return Person(
            person_id=str(person_id),
            name=person_name(record),
            birthday=birthday,
            last_contact=last_contact,
            contact_frequency_days=frequency,
            relationship=relationship,
            email=email if isinstance(email, str) and email else None,
        )

    async def load_people(self, tag: str) -> list[Person]:
        try:
            records = await self._store.fetch_tagged_records(tag)
        except HostOperationError:
            LOGGER.exception("Could not fetch records tagged %s", tag)
            return []

        people: list[Person] = []
        skipped = 0
        for record in records:
            if not record:
                skipped += 1
                continue
            person = await self.resolve_person(record)
            if person is None:
                skipped += 1
                continue
            people.append(person)

        LOGGER.info("Loaded %s people tagged %s (%s skipped)", len(people), tag, skipped)
        return people
