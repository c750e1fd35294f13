from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    """Secrets and file locations taken from the environment.

    The people config holds reminder policy (TOML), the notebook is the JSON
    store of person pages and journal tasks, and the reminder state file is
    the ledger of tasks already written.
    """

    telegram_bot_token: str
    telegram_allowed_user_id: int
    telegram_allowed_chat_id: int
    people_config_path: Path
    notebook_path: Path
    reminder_state_path: Path


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def load_settings() -> Settings:
    root = Path.cwd()

    token = _required_env("TELEGRAM_BOT_TOKEN")
    allowed_user_id = int(_required_env("TELEGRAM_ALLOWED_USER_ID"))
    allowed_chat_id = int(_required_env("TELEGRAM_ALLOWED_CHAT_ID"))

    people_config_path = Path(
        os.getenv("PEOPLE_CONFIG_PATH", root / "config" / "people.toml")
    )
    notebook_path = Path(
        os.getenv("NOTEBOOK_PATH", root / "data" / "notebook.json")
    )
    reminder_state_path = Path(
        os.getenv("REMINDER_STATE_PATH", root / "data" / "reminder_state.json")
    )

    return Settings(
        telegram_bot_token=token,
        telegram_allowed_user_id=allowed_user_id,
        telegram_allowed_chat_id=allowed_chat_id,
        people_config_path=people_config_path,
        notebook_path=notebook_path,
        reminder_state_path=reminder_state_path,
    )
