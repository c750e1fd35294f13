from __future__ import annotations

import logging
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo

from telegram.ext import Application, CallbackContext

from people_reminders.bot_handlers import HandlerDependencies, build_handlers
from people_reminders.config_store import ensure_default_config, load_config
from people_reminders.models import AppConfig
from people_reminders.notebook_store import NotebookStore
from people_reminders.property_resolver import PropertyResolver
from people_reminders.reminder_service import (
    ReminderService,
    now_in_timezone,
    parse_time_string,
    today_in_timezone,
)
from people_reminders.reminder_state import TaskLedger
from people_reminders.settings import Settings, load_settings
from people_reminders.task_lifecycle import BirthdayTaskScheduler, TaskWriter

LOGGER = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def build_service(settings: Settings, config: AppConfig) -> tuple[NotebookStore, ReminderService]:
    store = NotebookStore(settings.notebook_path)
    ledger = TaskLedger(settings.reminder_state_path if config.deduplicate_tasks else None)
    resolver = PropertyResolver(store)
    writer = TaskWriter(store, task_tag=config.task_tag, ledger=ledger)
    scheduler = BirthdayTaskScheduler(
        store=store,
        resolver=resolver,
        writer=writer,
        leap_day_rule=config.leap_day_rule,
        completion_delay_seconds=config.completion_delay_seconds,
        clock=lambda: today_in_timezone(config.timezone),
    )
    store.on_change_notification(scheduler.handle_changes)

    service = ReminderService(
        store=store,
        config=config,
        resolver=resolver,
        writer=writer,
        scheduler=scheduler,
        ledger=ledger,
    )
    return store, service


async def scheduled_check_callback(context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    today = today_in_timezone(deps.config.timezone)
    await deps.service.check_and_create_reminders(today)


async def startup_catchup(application: Application) -> None:
    deps: HandlerDependencies = application.bot_data["handler_deps"]
    now = now_in_timezone(deps.config.timezone)

    hour, minute = parse_time_string(deps.config.daily_check_time)
    scheduled = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if now >= scheduled:
        LOGGER.info("Running missed daily check for %s", now.date().isoformat())
        await deps.service.check_and_create_reminders(now.date())


def main() -> None:
    configure_logging()

    settings = load_settings()
    _ensure_parent(settings.people_config_path)
    _ensure_parent(settings.notebook_path)
    _ensure_parent(settings.reminder_state_path)

    ensure_default_config(settings.people_config_path)
    config = load_config(settings.people_config_path)

    tz = ZoneInfo(config.timezone)
    hour, minute = parse_time_string(config.daily_check_time)

    store, service = build_service(settings, config)

    application = Application.builder().token(settings.telegram_bot_token).build()
    application.bot_data["handler_deps"] = HandlerDependencies(
        settings=settings,
        config=config,
        service=service,
        store=store,
    )

    for handler in build_handlers():
        application.add_handler(handler)

    application.job_queue.run_daily(
        scheduled_check_callback,
        time=time(hour=hour, minute=minute, tzinfo=tz),
        name="daily-people-reminders",
    )

    application.post_init = startup_catchup
    application.run_polling()


if __name__ == "__main__":
    main()
