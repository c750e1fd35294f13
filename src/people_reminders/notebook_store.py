from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
import uuid
from datetime import date
from pathlib import Path
from typing import Any

from people_reminders.date_parser import format_journal_date, parse_date_text
from people_reminders.host import ChangeHandler, HostOperationError, Record

LOGGER = logging.getLogger(__name__)

_TASK_MARKER_RE = re.compile(r"^(TODO|DOING|NOW|LATER|DONE)\s+")


def _normalize_name(name: str) -> str:
    return " ".join(name.strip().lower().split())


def _journal_day(value: date) -> int:
    return value.year * 10000 + value.month * 100 + value.day


class NotebookStore:
    """A small JSON-file notebook implementing the HostStore operations.

    Pages and entries share one id space so that ``resolve_reference``
    works for both, the way the host resolves any block id.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._handlers: list[ChangeHandler] = []

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {"version": 1, "records": {}}
        try:
            with self._path.open("r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError) as exc:
            raise HostOperationError(f"Could not read notebook {self._path}: {exc}") from exc

        records = data.get("records", {})
        if not isinstance(records, dict):
            raise HostOperationError(f"Notebook {self._path} has no records table")
        return {"version": 1, "records": records}

    def _save(self, data: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                delete=False,
            ) as temp_file:
                json.dump(data, temp_file, indent=2, sort_keys=True)
                temp_file.write("\n")
                temp_name = temp_file.name
            os.replace(temp_name, self._path)
        except OSError as exc:
            raise HostOperationError(f"Could not write notebook {self._path}: {exc}") from exc

    @staticmethod
    def _find_page(records: dict[str, Record], name: str) -> Record | None:
        wanted = _normalize_name(name)
        for record in records.values():
            if record.get("kind") == "page" and record.get("name") == wanted:
                return record
        return None

    @staticmethod
    def _new_page(records: dict[str, Record], name: str, *, journal: bool) -> Record:
        page: Record = {
            "id": str(uuid.uuid4()),
            "kind": "page",
            "name": _normalize_name(name),
            "original-name": name.strip(),
            "tags": [],
        }
        if journal:
            day = parse_date_text(name)
            if day is None:
                raise HostOperationError(f"Journal page name is not a date: {name!r}")
            page["journalDay"] = _journal_day(day)
        records[page["id"]] = page
        return page

    @staticmethod
    def _require(records: dict[str, Record], record_id: str) -> Record:
        record = records.get(record_id)
        if record is None:
            raise HostOperationError(f"No record with id {record_id}")
        return record

    async def fetch_tagged_records(self, tag: str) -> list[Record]:
        wanted = tag.lower()
        records = self._load()["records"]
        return [
            copy.deepcopy(record)
            for record in records.values()
            if record.get("kind") == "page" and wanted in {str(t).lower() for t in record.get("tags", [])}
        ]

    async def resolve_reference(self, record_id: str) -> Record | None:
        record = self._load()["records"].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def find_record_by_name(self, name: str) -> Record | None:
        page = self._find_page(self._load()["records"], name)
        return copy.deepcopy(page) if page is not None else None

    async def create_record(self, name: str, *, journal: bool = False) -> Record:
        if not name.strip():
            raise HostOperationError("Record name must not be empty")
        data = self._load()
        if self._find_page(data["records"], name) is not None:
            raise HostOperationError(f"A record named {name!r} already exists")
        page = self._new_page(data["records"], name, journal=journal)
        self._save(data)
        LOGGER.debug("Created %s page %s", "journal" if journal else "plain", name)
        return copy.deepcopy(page)

    async def append_entry(self, container_id: str, text: str) -> Record:
        data = self._load()
        self._require(data["records"], container_id)
        entry: Record = {
            "id": str(uuid.uuid4()),
            "kind": "entry",
            "content": text,
            "page": container_id,
            "tags": [],
        }
        data["records"][entry["id"]] = entry
        self._save(data)
        return copy.deepcopy(entry)

    async def tag_entry(self, entry_id: str, tag: str) -> None:
        data = self._load()
        record = self._require(data["records"], entry_id)
        tags = record.setdefault("tags", [])
        if tag not in tags:
            tags.append(tag)
        self._save(data)

    async def set_property(self, record_id: str, key: str, value: Any) -> None:
        data = self._load()
        records = data["records"]
        record = self._require(records, record_id)
        if isinstance(value, date):
            # Date properties point at the journal page of that day.
            journal_name = format_journal_date(value)
            journal = self._find_page(records, journal_name) or self._new_page(
                records, journal_name, journal=True
            )
            record[key] = {"id": journal["id"]}
        else:
            record[key] = value
        self._save(data)

    def on_change_notification(self, handler: ChangeHandler) -> None:
        self._handlers.append(handler)

    async def open_entries(self, container_name: str, tag: str) -> list[Record]:
        records = self._load()["records"]
        page = self._find_page(records, container_name)
        if page is None:
            return []
        return [
            copy.deepcopy(record)
            for record in records.values()
            if record.get("kind") == "entry"
            and record.get("page") == page["id"]
            and tag in record.get("tags", [])
            and not str(record.get("content", "")).startswith("DONE")
        ]

    async def mark_entry_done(self, entry_id: str) -> Record:
        data = self._load()
        entry = self._require(data["records"], entry_id)
        if entry.get("kind") != "entry":
            raise HostOperationError(f"Record {entry_id} is not an entry")
        body = _TASK_MARKER_RE.sub("", str(entry.get("content", "")), count=1)
        entry["content"] = f"DONE {body}"
        self._save(data)

        changed = copy.deepcopy(entry)
        for handler in self._handlers:
            await handler([changed])
        return changed
