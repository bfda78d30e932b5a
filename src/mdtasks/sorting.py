"""Sort instructions: ``sort by <field> [reverse]``."""

import re
from dataclasses import dataclass
from datetime import date
from functools import cmp_to_key
from typing import Callable, List, Optional, Sequence

from .status import StatusType
from .task import Task, priority_rank


# Comparator over two tasks: negative, zero or positive
Comparator = Callable[[Task, Task], int]


class SortError(ValueError):
    """Raised for an unknown sort field."""


STATUS_TYPE_ORDER = {
    StatusType.IN_PROGRESS: 1,
    StatusType.TODO: 2,
    StatusType.DONE: 3,
    StatusType.CANCELLED: 4,
    StatusType.NON_TASK: 5,
}


def _compare(a, b) -> int:
    return (a > b) - (a < b)


def _compare_dates(a: Optional[date], b: Optional[date]) -> int:
    # Missing dates after present ones
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return _compare(a, b)


def _date_comparator(attribute: str) -> Comparator:
    return lambda a, b: _compare_dates(getattr(a, attribute), getattr(b, attribute))


def _key_comparator(key: Callable[[Task], object]) -> Comparator:
    return lambda a, b: _compare(key(a), key(b))


_MARKUP_RE = re.compile(r"^(?:\*\*|__|\*|_|==|\[\[)+")


def clean_description(description: str) -> str:
    """Description without leading emphasis or link markup, for comparison."""
    return _MARKUP_RE.sub("", description.strip()).casefold()


def _tag_comparator(index: int) -> Comparator:
    def compare(a: Task, b: Task) -> int:
        tag_a = a.tags[index].casefold() if len(a.tags) > index else None
        tag_b = b.tags[index].casefold() if len(b.tags) > index else None
        if tag_a is None and tag_b is None:
            return 0
        if tag_a is None:
            return 1
        if tag_b is None:
            return -1
        return _compare(tag_a, tag_b)
    return compare


COMPARATORS = {
    'status': _key_comparator(lambda task: STATUS_TYPE_ORDER[task.status.type]),
    'priority': _key_comparator(lambda task: priority_rank(task.priority)),
    'start': _date_comparator("start_date"),
    'scheduled': _date_comparator("scheduled_date"),
    'due': _date_comparator("due_date"),
    'done': _date_comparator("done_date"),
    'path': _key_comparator(lambda task: task.path.casefold()),
    'description': _key_comparator(lambda task: clean_description(task.description)),
    'heading': _key_comparator(lambda task: (task.preceding_header or "").casefold()),
}


@dataclass(frozen=True)
class Sorter:
    """One ``sort by`` line."""
    source: str
    field: str
    comparator: Comparator
    reverse: bool = False

    def compare(self, a: Task, b: Task) -> int:
        result = self.comparator(a, b)
        return -result if self.reverse else result


_SORT_RE = re.compile(r"^sort by\s+(?P<field>[a-z.]+)(?:\s+(?P<index>\d+))?(?P<reverse>\s+reverse)?$", re.IGNORECASE)


def parse_sorter(line: str) -> Optional[Sorter]:
    """Compile a ``sort by`` line, or return None if it is not one."""
    text = " ".join(line.split())
    match = _SORT_RE.match(text)
    if not match:
        return None

    field_name = match.group("field").lower()
    reverse = bool(match.group("reverse"))
    index = match.group("index")

    if field_name == 'tag':
        position = int(index) if index else 1
        if position < 1:
            raise SortError(f"Tag positions start at 1: {text}")
        return Sorter(text, field_name, _tag_comparator(position - 1), reverse)

    if index is not None or field_name not in COMPARATORS:
        raise SortError(f"Cannot sort by '{field_name}', use one of: {', '.join(sorted(COMPARATORS))}, tag")

    return Sorter(text, field_name, COMPARATORS[field_name], reverse)


def sort_tasks(tasks: Sequence[Task], sorters: Sequence[Sorter]) -> List[Task]:
    """Stable multi-key sort; ties keep the input order."""
    if not sorters:
        return list(tasks)

    def compare(a: Task, b: Task) -> int:
        for sorter in sorters:
            result = sorter.compare(a, b)
            if result:
                return result
        return 0

    return sorted(tasks, key=cmp_to_key(compare))
