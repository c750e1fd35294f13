from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from telegram import Update
from telegram.ext import (
    CallbackContext,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters,
)

from people_reminders.date_parser import format_birthday_preview, parse_date_text
from people_reminders.host import HostOperationError
from people_reminders.models import (
    AppConfig,
    BirthdayReminder,
    ContactReminder,
    NewPersonData,
    ReminderOverview,
    View,
)
from people_reminders.notebook_store import NotebookStore
from people_reminders.reminder_service import ReminderService, today_in_timezone
from people_reminders.settings import Settings

LOGGER = logging.getLogger(__name__)

(
    STATE_ADD_NAME,
    STATE_ADD_BIRTHDAY,
    STATE_ADD_RELATIONSHIP,
    STATE_ADD_FREQUENCY,
    STATE_ADD_EMAIL,
    STATE_ADD_CONFIRM,
) = range(6)

PENDING_ADD_KEY = "pending_add_person"
OPEN_TASKS_KEY = "open_task_ids"

RELATIONSHIPS = ("family", "friend", "colleague", "mentor", "acquaintance")


@dataclass(frozen=True)
class HandlerDependencies:
    settings: Settings
    config: AppConfig
    service: ReminderService
    store: NotebookStore


def is_authorized(update: Update, settings: Settings) -> bool:
    effective_user = update.effective_user
    effective_chat = update.effective_chat
    if effective_user is None or effective_chat is None:
        return False
    return (
        effective_user.id == settings.telegram_allowed_user_id
        and effective_chat.id == settings.telegram_allowed_chat_id
    )


async def _deny_unauthorized(update: Update) -> None:
    if update.effective_message:
        await update.effective_message.reply_text("This bot is restricted to its configured owner.")


def _is_skip(value: str) -> bool:
    return value.strip().lower() in {"", "skip", "-", "none"}


def parse_frequency_text(raw_text: str) -> int | None:
    text = raw_text.strip()
    if _is_skip(text):
        return None
    if not text.isdigit() or int(text) < 1:
        raise ValueError("Contact frequency must be a positive number of days")
    return int(text)


def parse_relationship_text(raw_text: str) -> str | None:
    text = raw_text.strip().lower()
    if _is_skip(text):
        return None
    if text not in RELATIONSHIPS:
        raise ValueError(f"Relationship must be one of: {', '.join(RELATIONSHIPS)}")
    return text


def _days_text(days_until: int) -> str:
    if days_until == 0:
        return "Today!"
    if days_until == 1:
        return "Tomorrow"
    return f"{days_until} days"


def _render_birthday_row(index: int, reminder: BirthdayReminder) -> list[str]:
    birthday = reminder.person.birthday
    details = f"{birthday:%b} {birthday.day}" if birthday else ""
    if reminder.age is not None:
        details = f"{details} (turning {reminder.age})"
    return [f"{index}. {reminder.person.name}", f"   {details} | {_days_text(reminder.days_until)}"]


def _render_contact_row(index: int, reminder: ContactReminder) -> list[str]:
    details = reminder.person.relationship or "Contact"
    if reminder.never_contacted:
        status = "Never contacted"
    else:
        details = f"{details} - Last: {reminder.days_since_contact}d ago"
        status = f"{reminder.days_overdue}d overdue"
    return [f"{index}. {reminder.person.name}", f"   {details} | {status}"]


def render_list_view(overview: ReminderOverview, window_days: int) -> str:
    lines = [f"Upcoming Birthdays ({len(overview.birthdays)})"]
    if not overview.birthdays:
        lines.append(f"No upcoming birthdays in the next {window_days} days")
    for index, reminder in enumerate(overview.birthdays, start=1):
        lines.extend(_render_birthday_row(index, reminder))

    lines.append("")
    lines.append(f"People to Contact ({len(overview.contacts)})")
    if not overview.contacts:
        lines.append("All caught up! No overdue contacts.")
    for index, reminder in enumerate(overview.contacts, start=1):
        lines.extend(_render_contact_row(index, reminder))

    return "\n".join(lines)


def render_add_view(success_message: str | None = None) -> str:
    prompt = "Add person wizard started.\nStep 1/6: Send the person's name."
    if success_message:
        return f"✓ {success_message}\n\n{prompt}"
    return prompt


def render_view(
    view: View,
    *,
    overview: ReminderOverview | None = None,
    window_days: int = 30,
    success_message: str | None = None,
) -> str:
    if view is View.ADD:
        return render_add_view(success_message)
    if overview is None:
        raise ValueError("The list view needs an overview to render")
    return render_list_view(overview, window_days)


def _render_help() -> str:
    return (
        "Commands:\n"
        "/people - Show upcoming birthdays and people to contact\n"
        "/add - Start the interactive add-person wizard\n"
        "/check - Create reminder tasks for the coming week\n"
        "/tasks - List today's open tasks\n"
        "/done N - Mark task N from /tasks as done\n"
        "/help - Show this help message\n"
        "/cancel - Cancel the active wizard\n\n"
        "Birthday format examples:\n"
        "- 1988-04-15\n"
        "- 15 Apr 1988\n"
        "- April 15, 1988\n"
        "- 15/04/1988"
    )


def _render_confirm(pending: dict[str, Any]) -> str:
    birthday = pending.get("birthday")
    frequency = pending.get("contact_frequency_days")
    return (
        "Step 6/6: Confirm this person:\n"
        f"Name: {pending.get('name')}\n"
        f"Birthday: {format_birthday_preview(birthday) if birthday else '(not set)'}\n"
        f"Relationship: {pending.get('relationship') or '(not set)'}\n"
        f"Contact every: {f'{frequency} days' if frequency else '(not set)'}\n"
        f"Email: {pending.get('email') or '(not set)'}\n\n"
        "Reply yes to save, more to save and add another, or no to cancel."
    )


async def help_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return
    await update.effective_message.reply_text(_render_help())


async def people_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    today = today_in_timezone(deps.config.timezone)
    overview = await deps.service.build_overview(today)
    message = render_view(View.LIST, overview=overview, window_days=deps.config.birthday_window_days)
    await update.effective_message.reply_text(message)


async def check_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    today = today_in_timezone(deps.config.timezone)
    created = await deps.service.check_and_create_reminders(today)
    if created > 0:
        await update.effective_message.reply_text(f"Created {created} reminder task(s)")
    else:
        await update.effective_message.reply_text("No new reminders needed")


async def tasks_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    today = today_in_timezone(deps.config.timezone)
    entries = await deps.store.open_entries(today.isoformat(), deps.config.task_tag)
    context.user_data[OPEN_TASKS_KEY] = [entry["id"] for entry in entries]
    if not entries:
        await update.effective_message.reply_text("No open tasks today.")
        return

    lines = [f"Open tasks for {today.isoformat()}:"]
    for index, entry in enumerate(entries, start=1):
        lines.append(f"{index}. {entry.get('content', '')}")
    await update.effective_message.reply_text("\n".join(lines))


async def done_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return

    task_ids: list[str] = context.user_data.get(OPEN_TASKS_KEY, [])
    args = context.args or []
    if len(args) != 1 or not args[0].isdigit():
        await update.effective_message.reply_text("Usage: /done N (see /tasks for numbers)")
        return

    selected = int(args[0])
    if selected < 1 or selected > len(task_ids):
        await update.effective_message.reply_text("Unknown task number. Send /tasks to refresh the list.")
        return

    try:
        entry = await deps.store.mark_entry_done(task_ids[selected - 1])
    except HostOperationError as exc:
        LOGGER.warning("Could not complete task: %s", exc)
        await update.effective_message.reply_text("Could not complete that task. Send /tasks and try again.")
        return

    context.user_data.pop(OPEN_TASKS_KEY, None)
    await update.effective_message.reply_text(f"Done: {entry['content']}")


async def add_start(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data[PENDING_ADD_KEY] = {}
    await update.effective_message.reply_text(render_view(View.ADD))
    return STATE_ADD_NAME


async def add_name(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    name = (update.effective_message.text or "").strip()
    if not name:
        await update.effective_message.reply_text("Please enter a name")
        return STATE_ADD_NAME

    context.user_data[PENDING_ADD_KEY] = {"name": name}
    await update.effective_message.reply_text(
        "Step 2/6: Send the birthday (e.g., 15 Apr 1988 or 1988-04-15), or skip."
    )
    return STATE_ADD_BIRTHDAY


async def add_birthday(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    raw_text = update.effective_message.text or ""
    pending = context.user_data.get(PENDING_ADD_KEY, {})

    if _is_skip(raw_text):
        pending["birthday"] = None
        preview = "Birthday skipped."
    else:
        parsed = parse_date_text(raw_text)
        if parsed is None:
            await update.effective_message.reply_text("Could not parse date. Try again, or skip.")
            return STATE_ADD_BIRTHDAY
        pending["birthday"] = parsed
        preview = f"Birthday: {format_birthday_preview(parsed)}"

    context.user_data[PENDING_ADD_KEY] = pending
    await update.effective_message.reply_text(
        f"{preview}\nStep 3/6: Send the relationship ({', '.join(RELATIONSHIPS)}), or skip."
    )
    return STATE_ADD_RELATIONSHIP


async def add_relationship(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    try:
        relationship = parse_relationship_text(update.effective_message.text or "")
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Or send skip.")
        return STATE_ADD_RELATIONSHIP

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    pending["relationship"] = relationship
    context.user_data[PENDING_ADD_KEY] = pending

    await update.effective_message.reply_text(
        "Step 4/6: How often should you be in touch? Send a number of days (e.g., 14), or skip."
    )
    return STATE_ADD_FREQUENCY


async def add_frequency(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    try:
        frequency = parse_frequency_text(update.effective_message.text or "")
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}. Or send skip.")
        return STATE_ADD_FREQUENCY

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    pending["contact_frequency_days"] = frequency
    context.user_data[PENDING_ADD_KEY] = pending

    await update.effective_message.reply_text("Step 5/6: Send an email address, or skip.")
    return STATE_ADD_EMAIL


async def add_email(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    raw_text = (update.effective_message.text or "").strip()
    if not _is_skip(raw_text) and "@" not in raw_text:
        await update.effective_message.reply_text("That does not look like an email address. Try again, or skip.")
        return STATE_ADD_EMAIL

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    pending["email"] = None if _is_skip(raw_text) else raw_text
    context.user_data[PENDING_ADD_KEY] = pending

    await update.effective_message.reply_text(_render_confirm(pending))
    return STATE_ADD_CONFIRM


async def add_confirm(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    decision = (update.effective_message.text or "").strip().lower()
    if decision not in {"yes", "y", "more", "no", "n"}:
        await update.effective_message.reply_text("Please reply with yes, more or no.")
        return STATE_ADD_CONFIRM

    if decision in {"no", "n"}:
        context.user_data.pop(PENDING_ADD_KEY, None)
        await update.effective_message.reply_text("Canceled. No changes were made.")
        return ConversationHandler.END

    pending = context.user_data.get(PENDING_ADD_KEY, {})
    data = NewPersonData(
        name=str(pending.get("name", "")),
        birthday=pending.get("birthday"),
        relationship=pending.get("relationship"),
        contact_frequency_days=pending.get("contact_frequency_days"),
        email=pending.get("email"),
    )
    today = today_in_timezone(deps.config.timezone)
    result = await deps.service.create_person(data, today)
    context.user_data.pop(PENDING_ADD_KEY, None)

    if not result.success:
        await update.effective_message.reply_text(result.message or "Failed to create person")
        return ConversationHandler.END

    if decision == "more":
        context.user_data[PENDING_ADD_KEY] = {}
        await update.effective_message.reply_text(render_view(View.ADD, success_message=result.message))
        return STATE_ADD_NAME

    await update.effective_message.reply_text(result.message or "Saved.")
    return ConversationHandler.END


async def cancel_command(update: Update, context: CallbackContext) -> int:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not is_authorized(update, deps.settings):
        await _deny_unauthorized(update)
        return ConversationHandler.END

    context.user_data.pop(PENDING_ADD_KEY, None)
    await update.effective_message.reply_text("Wizard canceled.")
    return ConversationHandler.END


def build_handlers() -> list:
    text_only = filters.TEXT & ~filters.COMMAND
    add_conversation = ConversationHandler(
        entry_points=[CommandHandler("add", add_start)],
        states={
            STATE_ADD_NAME: [MessageHandler(text_only, add_name)],
            STATE_ADD_BIRTHDAY: [MessageHandler(text_only, add_birthday)],
            STATE_ADD_RELATIONSHIP: [MessageHandler(text_only, add_relationship)],
            STATE_ADD_FREQUENCY: [MessageHandler(text_only, add_frequency)],
            STATE_ADD_EMAIL: [MessageHandler(text_only, add_email)],
            STATE_ADD_CONFIRM: [MessageHandler(text_only, add_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel_command)],
        name="add_person_conversation",
        persistent=False,
    )

    return [
        CommandHandler("help", help_command),
        CommandHandler("people", people_command),
        CommandHandler("check", check_command),
        CommandHandler("tasks", tasks_command),
        CommandHandler("done", done_command),
        CommandHandler("cancel", cancel_command),
        add_conversation,
    ]
