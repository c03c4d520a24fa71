"""Markdown vault: reminder discovery and line-level document edits.

Reminders are checklist items carrying a date token:

    - [ ] Buy milk (@2024-01-01)
    - [x] Call the bank (@2024-01-02 09:30)
"""

import re
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional, Protocol, Union

from dateutil.parser import parse as parse_datetime

from logger import logger
from .errors import DocumentIOError
from .metadata import strip_metadata
from .types import Location, ReminderItem

_CHECKBOX_PATTERN = re.compile(r"^(\s*[-*+]\s+\[)([ xX])(\])\s+(.*)$")
_DUE_PATTERN = re.compile(r"\(@(\d{4}-\d{2}-\d{2})(?:[ T](\d{1,2}:\d{2}))?\)")


class ReminderSource(Protocol):
    """Ordered collection of reminders."""

    def iter_reminders(self) -> Iterator[ReminderItem]: ...


class DocumentStore(Protocol):
    """Line-level access to reminder documents."""

    def read_line(self, location: Location) -> str: ...

    def replace_line(self, location: Location, new_line: str) -> None: ...


def parse_reminder_line(line: str, location: Location) -> Optional[ReminderItem]:
    """Parse one Markdown line, returning None if it is not a reminder."""
    checkbox = _CHECKBOX_PATTERN.match(line)
    if not checkbox:
        return None

    body = strip_metadata(checkbox.group(4))
    due_match = _DUE_PATTERN.search(body)
    if not due_match:
        return None

    day, clock = due_match.groups()
    try:
        due: Union[date, datetime] = parse_datetime(f"{day} {clock}") if clock else date.fromisoformat(day)
    except ValueError:
        logger.warning(f"Invalid reminder date in {location}: {due_match.group(0)}")
        return None

    title = " ".join((body[:due_match.start()] + body[due_match.end():]).split())
    return ReminderItem(
        title=title,
        location=location,
        due=due,
        completed=checkbox.group(2).lower() == "x",
    )


def mark_line_done(line: str) -> str:
    """Tick the checkbox of a reminder line."""
    return _CHECKBOX_PATTERN.sub(lambda m: f"{m.group(1)}x{m.group(3)} {m.group(4)}", line, count=1)


class MarkdownVault:
    """A folder of Markdown notes, used as both reminder source and document store."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _resolve(self, document: str) -> Path:
        path = (self.root / document).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise DocumentIOError(f"Document outside vault: {document}")
        return path

    def _read_lines(self, location: Location) -> tuple[Path, list[str]]:
        path = self._resolve(location.document)
        try:
            lines = path.read_text(encoding="utf-8").split("\n")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentIOError(f"Cannot read {location.document}: {e}") from e

        if not 0 <= location.line < len(lines):
            raise DocumentIOError(
                f"Line {location.line} out of bounds in {location.document} ({len(lines)} lines)"
            )
        return path, lines

    def iter_reminders(self) -> Iterator[ReminderItem]:
        """Reminders in path order, then line order. Hidden folders are skipped."""
        for path in sorted(self.root.rglob("*.md")):
            relative = path.relative_to(self.root)
            if any(part.startswith(".") for part in relative.parts):
                continue

            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable note {relative}: {e}")
                continue

            for index, line in enumerate(text.split("\n")):
                item = parse_reminder_line(line, Location(relative.as_posix(), index))
                if item is not None:
                    yield item

    def read_line(self, location: Location) -> str:
        _, lines = self._read_lines(location)
        return lines[location.line]

    def replace_line(self, location: Location, new_line: str) -> None:
        """Read the full document, replace one line and write it back."""
        path, lines = self._read_lines(location)
        if lines[location.line] == new_line:
            return

        lines[location.line] = new_line
        try:
            path.write_text("\n".join(lines), encoding="utf-8")
        except OSError as e:
            raise DocumentIOError(f"Cannot write {location.document}: {e}") from e
        logger.debug(f"Updated line {location}")
