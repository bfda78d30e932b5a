"""Task record parsed from, and rendered back to, a single markdown line."""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from pathlib import PurePosixPath
from typing import List, Optional, Tuple

from .recurrence import Recurrence
from .status import Status, StatusRegistry, TODO
from .utils.dates import format_date


logger = logging.getLogger(__name__)


class Priority(Enum):
    """Task priority levels, 1 is the highest."""
    HIGHEST = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 5
    LOWEST = 6

    @property
    def symbol(self) -> str:
        return PRIORITY_SYMBOLS[self]

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_symbol(cls, symbol: str) -> Optional["Priority"]:
        for priority, priority_symbol in PRIORITY_SYMBOLS.items():
            if priority_symbol == symbol:
                return priority
        return None

    @classmethod
    def from_name(cls, name: str) -> Optional["Priority"]:
        try:
            return cls[name.strip().upper()]
        except KeyError:
            return None


PRIORITY_SYMBOLS = {
    Priority.HIGHEST: "🔺",
    Priority.HIGH: "⏫",
    Priority.MEDIUM: "🔼",
    Priority.LOW: "🔽",
    Priority.LOWEST: "⏬",
}

# Tasks without a priority rank between medium and low
NO_PRIORITY_RANK = 4


def priority_rank(priority: Optional[Priority]) -> int:
    """Numeric rank for ordering, lower is more important."""
    return priority.value if priority is not None else NO_PRIORITY_RANK


class TaskMarkers:
    """Marker characters written in front of each inline field."""
    START = "🛫"
    SCHEDULED = "⏳"
    DUE = "📅"
    DONE = "✅"
    RECURRENCE = "🔁"
    ESTIMATE = "⏱"


def format_estimate(minutes: int) -> str:
    """Render a duration in minutes as ``45m``, ``2h`` or ``1h30m``."""
    hours, rest = divmod(minutes, 60)
    if hours and rest:
        return f"{hours}h{rest}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"


@dataclass(frozen=True)
class Task:
    """One task, parsed from or destined for exactly one line of text.

    Tasks are value objects: toggling or editing produces new records and
    never changes an existing one. ``original_markdown`` is excluded from
    equality so that a re-rendered line compares equal to its source.
    """

    # Content
    status: Status = TODO
    description: str = ""
    tags: Tuple[str, ...] = ()
    indentation: str = ""
    list_marker: str = "-"
    block_link: str = ""
    original_markdown: str = field(default="", compare=False)

    # Location
    path: str = ""
    section_start: int = 0
    section_index: int = 0
    preceding_header: Optional[str] = None

    # Scheduling
    start_date: Optional[date] = None
    scheduled_date: Optional[date] = None
    scheduled_date_is_inferred: bool = False
    due_date: Optional[date] = None
    done_date: Optional[date] = None

    priority: Optional[Priority] = None
    recurrence: Optional[Recurrence] = None
    estimated_time_to_complete: Optional[int] = None

    def __post_init__(self):
        if self.scheduled_date is None and self.scheduled_date_is_inferred:
            object.__setattr__(self, "scheduled_date_is_inferred", False)

    @property
    def is_done(self) -> bool:
        return self.status.is_done

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def filename(self) -> str:
        """File name without the ``.md`` extension."""
        if not self.path:
            return ""
        return PurePosixPath(self.path).stem

    @property
    def folder(self) -> str:
        """Folder of the document, with a trailing slash (``/`` for the vault root)."""
        if not self.path:
            return ""
        parent = str(PurePosixPath(self.path).parent)
        if parent in (".", ""):
            return "/"
        return parent + "/"

    @property
    def happens_dates(self) -> List[date]:
        """Start, scheduled and due dates that are set."""
        return [d for d in (self.start_date, self.scheduled_date, self.due_date) if d is not None]

    def description_with_tags(self) -> str:
        return " ".join(part for part in (self.description, *self.tags) if part)

    def to_string(self) -> str:
        """Render the body of the line: everything after the checkbox."""
        parts = [self.description, *self.tags]
        if self.priority is not None:
            parts.append(self.priority.symbol)
        if self.recurrence is not None:
            parts.append(f"{TaskMarkers.RECURRENCE} {self.recurrence.to_text()}")
        if self.estimated_time_to_complete is not None:
            parts.append(f"{TaskMarkers.ESTIMATE} {format_estimate(self.estimated_time_to_complete)}")
        if self.start_date is not None:
            parts.append(f"{TaskMarkers.START} {format_date(self.start_date)}")
        # Inferred dates come from the file name and are not written back
        if self.scheduled_date is not None and not self.scheduled_date_is_inferred:
            parts.append(f"{TaskMarkers.SCHEDULED} {format_date(self.scheduled_date)}")
        if self.due_date is not None:
            parts.append(f"{TaskMarkers.DUE} {format_date(self.due_date)}")
        if self.done_date is not None:
            parts.append(f"{TaskMarkers.DONE} {format_date(self.done_date)}")
        if self.block_link:
            parts.append(self.block_link)
        return " ".join(part for part in parts if part)

    def to_file_line(self) -> str:
        """Render the complete line as it should be written to the document."""
        return f"{self.indentation}{self.list_marker} [{self.status.symbol}] {self.to_string()}"

    def _derive(self, **changes) -> "Task":
        derived = replace(self, **changes)
        return replace(derived, original_markdown=derived.to_file_line())

    def with_changes(self, **changes) -> "Task":
        """Return an edited copy.

        Setting any date explicitly clears the inferred flag, and a recurrence
        is re-anchored to the new dates.
        """
        date_fields = {"start_date", "scheduled_date", "due_date"}
        if date_fields & set(changes) and "scheduled_date_is_inferred" not in changes:
            changes["scheduled_date_is_inferred"] = False

        recurrence = changes.get("recurrence", self.recurrence)
        if recurrence is not None and date_fields & set(changes):
            changes["recurrence"] = replace(
                recurrence,
                start_date=changes.get("start_date", self.start_date),
                scheduled_date=changes.get("scheduled_date", self.scheduled_date),
                due_date=changes.get("due_date", self.due_date),
            )
        return self._derive(**changes)

    def with_path(self, path: str, fallback_date: Optional[date] = None) -> "Task":
        """Move the task to another document, re-evaluating the inferred date."""
        scheduled = self._explicit_scheduled_date()
        inferred = False
        if scheduled is None and self.start_date is None and self.due_date is None and fallback_date is not None:
            scheduled = fallback_date
            inferred = True
        return self.with_changes(path=path, scheduled_date=scheduled, scheduled_date_is_inferred=inferred)

    def _explicit_scheduled_date(self) -> Optional[date]:
        return None if self.scheduled_date_is_inferred else self.scheduled_date

    def toggle(self, *, registry: StatusRegistry, today: date) -> List["Task"]:
        """Advance the status once.

        Returns one task, or two when a recurring task is completed: the next
        occurrence first, then the completed original.
        """
        new_status = registry.next_status(self.status)

        if new_status.is_done and not self.status.is_done:
            completed = self._derive(status=new_status, done_date=today)
            next_occurrence = self._next_occurrence(registry, new_status, today)
            if next_occurrence is None:
                return [completed]
            return [next_occurrence, completed]

        if self.status.is_done and not new_status.is_done:
            return [self._derive(status=new_status, done_date=None)]

        if new_status.is_done and self.done_date is None:
            return [self._derive(status=new_status, done_date=today)]

        return [self._derive(status=new_status)]

    def _next_occurrence(self, registry: StatusRegistry, done_status: Status,
                         today: date) -> Optional["Task"]:
        if self.recurrence is None:
            return None

        dates = self.recurrence.next(today)
        if dates is None:
            logger.debug("No next occurrence for %r", self.description)
            return None

        return self._derive(
            status=registry.next_recurrence_status(done_status),
            start_date=dates.start_date,
            scheduled_date=dates.scheduled_date,
            scheduled_date_is_inferred=False,
            due_date=dates.due_date,
            done_date=None,
            recurrence=replace(
                self.recurrence,
                start_date=dates.start_date,
                scheduled_date=dates.scheduled_date,
                due_date=dates.due_date,
            ),
        )
