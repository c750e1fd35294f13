from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from people_reminders.date_logic import LEAP_DAY_RULES
from people_reminders.models import DEFAULT_BIRTHDAY_WINDOW_DAYS, DEFAULT_CHECK_WINDOW_DAYS, AppConfig


def _toml_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _parse_daily_check_time(value: str) -> str:
    pieces = value.split(":")
    if len(pieces) != 2:
        raise ValueError("daily_check_time must be in HH:MM format")

    hour, minute = pieces
    if not hour.isdigit() or not minute.isdigit():
        raise ValueError("daily_check_time must contain numeric hour/minute")

    hour_i = int(hour)
    minute_i = int(minute)
    if hour_i < 0 or hour_i > 23 or minute_i < 0 or minute_i > 59:
        raise ValueError("daily_check_time must be a valid 24-hour time")

    return f"{hour_i:02d}:{minute_i:02d}"


def _validate_window(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer")
    return value


def _validate_tag(name: str, value: str) -> str:
    tag = value.strip()
    if not tag:
        raise ValueError(f"{name} must not be empty")
    return tag


def validate_config(config: AppConfig) -> AppConfig:
    timezone = config.timezone.strip()
    if not timezone:
        raise ValueError("timezone must not be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {timezone}") from exc

    daily_check_time = _parse_daily_check_time(config.daily_check_time)

    leap_day_rule = config.leap_day_rule.strip().lower()
    if leap_day_rule not in LEAP_DAY_RULES:
        raise ValueError(f"leap_day_rule must be one of {sorted(LEAP_DAY_RULES)}")

    delay = config.completion_delay_seconds
    if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
        raise ValueError("completion_delay_seconds must be a non-negative number")

    if not isinstance(config.deduplicate_tasks, bool):
        raise ValueError("deduplicate_tasks must be true or false")

    return AppConfig(
        timezone=timezone,
        daily_check_time=daily_check_time,
        leap_day_rule=leap_day_rule,
        birthday_window_days=_validate_window("birthday_window_days", config.birthday_window_days),
        check_window_days=_validate_window("check_window_days", config.check_window_days),
        completion_delay_seconds=float(delay),
        people_tag=_validate_tag("people_tag", config.people_tag),
        task_tag=_validate_tag("task_tag", config.task_tag),
        deduplicate_tasks=config.deduplicate_tasks,
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("rb") as file_obj:
        data = tomllib.load(file_obj)

    config = AppConfig(
        timezone=str(data.get("timezone", "")),
        daily_check_time=str(data.get("daily_check_time", "")),
        leap_day_rule=str(data.get("leap_day_rule", "mar1")),
        birthday_window_days=data.get("birthday_window_days", DEFAULT_BIRTHDAY_WINDOW_DAYS),
        check_window_days=data.get("check_window_days", DEFAULT_CHECK_WINDOW_DAYS),
        completion_delay_seconds=data.get("completion_delay_seconds", 0.5),
        people_tag=str(data.get("people_tag", "people")),
        task_tag=str(data.get("task_tag", "Task")),
        deduplicate_tasks=data.get("deduplicate_tasks", True),
    )
    return validate_config(config)


def render_config(config: AppConfig) -> str:
    validated = validate_config(config)

    lines: list[str] = [
        f'timezone = "{_toml_escape(validated.timezone)}"',
        f'daily_check_time = "{validated.daily_check_time}"',
        f'leap_day_rule = "{validated.leap_day_rule}"',
        "",
        "# Birthdays shown by /people, and the narrower window /check turns into tasks.",
        f"birthday_window_days = {validated.birthday_window_days}",
        f"check_window_days = {validated.check_window_days}",
        "",
        f"completion_delay_seconds = {validated.completion_delay_seconds}",
        f'people_tag = "{_toml_escape(validated.people_tag)}"',
        f'task_tag = "{_toml_escape(validated.task_tag)}"',
        f"deduplicate_tasks = {'true' if validated.deduplicate_tasks else 'false'}",
    ]

    return "\n".join(lines) + "\n"


def save_config_atomic(path: Path, config: AppConfig) -> None:
    rendered = render_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        delete=False,
    ) as temp_file:
        temp_file.write(rendered)
        temp_name = temp_file.name

    os.replace(temp_name, path)


def ensure_default_config(path: Path) -> None:
    if path.exists():
        return

    default_config = AppConfig(
        timezone="America/Los_Angeles",
        daily_check_time="09:00",
        leap_day_rule="mar1",
    )
    save_config_atomic(path, default_config)
