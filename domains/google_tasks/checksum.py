"""Change-detection checksum over a reminder's syncable fields."""

import zlib

from . import config
from .types import ReminderItem


def canonical_form(item: ReminderItem) -> str:
    """Canonical string of the fields that are pushed to Google Tasks."""
    parts = [
        item.title.strip(),
        item.due.isoformat() if item.due is not None else "null",
        "true" if item.completed else "false",
    ]
    return config.CHECKSUM_DELIMITER.join(parts)


def reminder_checksum(item: ReminderItem) -> str:
    """CRC-32 of the canonical form as 8 hex digits.

    Only used to notice that a reminder changed since the last sync.
    """
    return f"{zlib.crc32(canonical_form(item).encode('utf-8')):08x}"
