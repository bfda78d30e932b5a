"""Group instructions: ``group by <field>``.

Each grouper maps a task to a heading. Tasks are bucketed by the tuple of
all headings and buckets keep the order in which they were first seen.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .task import Task, priority_rank
from .utils.dates import format_date


class GroupError(ValueError):
    """Raised for an unknown group field."""


def _date_heading(value: Optional[date], label: str) -> str:
    if value is None:
        return f"No {label} date"
    return f"{format_date(value)} {value.strftime('%A')}"


def _priority_heading(task: Task) -> str:
    label = task.priority.label if task.priority is not None else "None"
    return f"Priority {priority_rank(task.priority)}: {label}"


def _happens_heading(task: Task) -> str:
    dates = task.happens_dates
    return _date_heading(min(dates) if dates else None, "happens")


def _backlink_heading(task: Task) -> str:
    if not task.path:
        return "Unknown Location"
    if task.preceding_header and task.preceding_header != task.filename:
        return f"{task.filename} > {task.preceding_header}"
    return task.filename


GROUPERS: Dict[str, Callable[[Task], str]] = {
    'status': lambda task: task.status.name,
    'priority': _priority_heading,
    'start': lambda task: _date_heading(task.start_date, "start"),
    'scheduled': lambda task: _date_heading(task.scheduled_date, "scheduled"),
    'due': lambda task: _date_heading(task.due_date, "due"),
    'done': lambda task: _date_heading(task.done_date, "done"),
    'happens': _happens_heading,
    'path': lambda task: re.sub(r"\.md$", "", task.path) or "Unknown Location",
    'folder': lambda task: task.folder or "Unknown Location",
    'filename': lambda task: task.filename or "Unknown Location",
    'heading': lambda task: task.preceding_header or "(No heading)",
    'backlink': _backlink_heading,
    'recurring': lambda task: "Recurring" if task.is_recurring else "Not Recurring",
    'recurrence': lambda task: task.recurrence.to_text() if task.recurrence else "None",
    'tags': lambda task: " ".join(task.tags) if task.tags else "(No tags)",
}


@dataclass(frozen=True)
class Grouper:
    """One ``group by`` line."""
    source: str
    field: str
    heading: Callable[[Task], str]


@dataclass
class TaskGroup:
    """Tasks sharing the same headings."""
    group_names: Tuple[str, ...]
    tasks: List[Task] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.tasks)


@dataclass
class TaskGroups:
    """The result of a query: ordered groups of tasks."""
    groups: List[TaskGroup] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(len(group) for group in self.groups)

    def __iter__(self):
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)


_GROUP_RE = re.compile(r"^group by\s+(?P<field>[a-z]+)(?P<reverse>\s+reverse)?$", re.IGNORECASE)


def parse_grouper(line: str) -> Optional[Grouper]:
    """Compile a ``group by`` line, or return None if it is not one."""
    text = " ".join(line.split())
    match = _GROUP_RE.match(text)
    if not match:
        return None
    field_name = match.group("field").lower()
    if field_name not in GROUPERS or match.group("reverse"):
        raise GroupError(f"Cannot group by '{field_name}', use one of: {', '.join(sorted(GROUPERS))}")
    return Grouper(text, field_name, GROUPERS[field_name])


def group_tasks(tasks: Sequence[Task], groupers: Sequence[Grouper]) -> TaskGroups:
    """Partition ``tasks`` by the headings of every grouper."""
    if not groupers:
        return TaskGroups([TaskGroup((), list(tasks))])

    buckets: Dict[Tuple[str, ...], TaskGroup] = {}
    for task in tasks:
        key = tuple(grouper.heading(task) for grouper in groupers)
        if key not in buckets:
            buckets[key] = TaskGroup(key)
        buckets[key].tasks.append(task)
    return TaskGroups(list(buckets.values()))
