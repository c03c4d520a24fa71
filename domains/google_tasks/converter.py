"""Convert reminders into Google Tasks API payloads."""

from datetime import timezone
from typing import Any
from urllib.parse import quote

from .types import ReminderItem, TaskStatus


def format_due(item: ReminderItem) -> str:
    """RFC 3339 due timestamp.

    Google Tasks only stores the date part, so date-only reminders are sent
    as midnight UTC. Timed reminders are converted to UTC; naive datetimes
    are taken as local time.
    """
    if item.has_time:
        due = item.due.astimezone(timezone.utc)
        return due.strftime("%Y-%m-%dT%H:%M:%S.") + f"{due.microsecond // 1000:03d}Z"
    return f"{item.due.isoformat()}T00:00:00.000Z"


def source_link(item: ReminderItem) -> str:
    """Back-link to the reminder's note, shown in the task's notes."""
    path = quote(item.location.document, safe="")
    return f"Obsidian Reminder: obsidian://open?path={path}&line={item.location.line}"


def to_task_payload(item: ReminderItem) -> dict[str, Any]:
    """Build the JSON body for creating or patching a task."""
    payload: dict[str, Any] = {
        "title": item.title.strip(),
        "notes": source_link(item),
        "status": TaskStatus.COMPLETED.value if item.completed else TaskStatus.NEEDS_ACTION.value,
    }
    # null clears the due date on PATCH
    payload["due"] = format_due(item) if item.due is not None else None
    return payload
