from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path

LOGGER = logging.getLogger(__name__)

KIND_BIRTHDAY_TASK = "birthday"
KIND_BIRTHDAY_NOTICE = "birthday-notice"
KIND_CONTACT = "contact"


@dataclass
class ReminderState:
    created_keys: set[str]
    last_pruned: str | None = None


def load_state(path: Path) -> ReminderState:
    if not path.exists():
        return ReminderState(created_keys=set(), last_pruned=None)

    with path.open("r", encoding="utf-8") as file_obj:
        data = json.load(file_obj)

    created_keys = {str(value) for value in data.get("created_keys", [])}
    last_pruned = data.get("last_pruned")
    return ReminderState(created_keys=created_keys, last_pruned=str(last_pruned) if last_pruned else None)


def save_state_atomic(path: Path, state: ReminderState) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "created_keys": sorted(state.created_keys),
        "last_pruned": state.last_pruned,
    }

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        json.dump(payload, temp_file, indent=2)
        temp_file.write("\n")
        temp_name = temp_file.name

    os.replace(temp_name, path)


def dedupe_key(task_date: date, person_name: str, kind: str) -> str:
    return f"{task_date.isoformat()}|{' '.join(person_name.lower().split())}|{kind}"


def prune_old_keys(state: ReminderState, today: date, *, retention_days: int = 400) -> None:
    cutoff = today - timedelta(days=retention_days)
    retained: set[str] = set()

    for key in state.created_keys:
        parts = key.split("|")
        if len(parts) != 3:
            continue
        try:
            task_date = date.fromisoformat(parts[0])
        except ValueError:
            continue

        if task_date >= cutoff:
            retained.add(key)

    state.created_keys = retained
    state.last_pruned = today.isoformat()


class TaskLedger:
    """Remembers which (date, person, kind) tasks were already written.

    With no path the ledger is disabled and every task is written, which
    reproduces the host's duplicate-creating behaviour.
    """

    def __init__(self, path: Path | None) -> None:
        self._path = path

    def seen(self, key: str) -> bool:
        if self._path is None:
            return False
        return key in load_state(self._path).created_keys

    def record(self, key: str) -> None:
        if self._path is None:
            return
        state = load_state(self._path)
        state.created_keys.add(key)
        save_state_atomic(self._path, state)

    def prune(self, today: date) -> None:
        if self._path is None:
            return
        state = load_state(self._path)
        before = len(state.created_keys)
        prune_old_keys(state, today)
        save_state_atomic(self._path, state)
        LOGGER.debug("Pruned %s ledger keys", before - len(state.created_keys))
