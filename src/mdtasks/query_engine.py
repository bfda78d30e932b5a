"""
Query language for task collections

A query is a block of text with one instruction per line:

    not done
    due before tomorrow
    (priority is high) OR (tags include #urgent)
    sort by due
    group by filename
    limit 10

Lines starting with ``#`` are comments. Compilation is all-or-nothing: the
first bad line raises QueryError and no Query is returned.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import FrozenSet, List, Optional, Sequence, Tuple

from fuzzywuzzy import fuzz, process

from .filters import FilterError, QueryNode, is_boolean_line, parse_boolean, parse_filter
from .grouping import GroupError, Grouper, TaskGroups, group_tasks, parse_grouper
from .sorting import SortError, Sorter, parse_sorter, sort_tasks
from .task import Task


logger = logging.getLogger(__name__)


class QueryError(ValueError):
    """A query line could not be compiled."""

    def __init__(self, message: str, line: str = "", suggestion: Optional[str] = None):
        self.line = line
        self.suggestion = suggestion
        full_message = message
        if suggestion:
            full_message += f" (did you mean '{suggestion}'?)"
        super().__init__(full_message)


# Example instructions used for "did you mean" suggestions
KNOWN_INSTRUCTIONS = [
    "done",
    "not done",
    "due before today",
    "due after today",
    "due on today",
    "scheduled before today",
    "start before today",
    "done on today",
    "happens before today",
    "no due date",
    "has due date",
    "no scheduled date",
    "has scheduled date",
    "no start date",
    "has start date",
    "description includes",
    "description does not include",
    "path includes",
    "path does not include",
    "heading includes",
    "filename includes",
    "tags include",
    "tags do not include",
    "priority is high",
    "priority is above none",
    "is recurring",
    "is not recurring",
    "status.name includes",
    "status.type is TODO",
    "exclude sub-items",
    "limit 10",
    "sort by due",
    "sort by priority",
    "sort by status",
    "sort by description",
    "sort by path",
    "group by due",
    "group by filename",
    "group by folder",
    "group by heading",
    "group by priority",
    "group by status",
    "group by tags",
    "short mode",
    "hide due date",
    "show due date",
    "explain",
]

LAYOUT_COMPONENTS = frozenset({
    "backlink",
    "done date",
    "due date",
    "estimate",
    "priority",
    "recurrence rule",
    "scheduled date",
    "start date",
    "tags",
    "task count",
})


@dataclass(frozen=True)
class LayoutOptions:
    """Presentation switches recorded for renderers."""
    short_mode: bool = False
    explain: bool = False
    hidden: FrozenSet[str] = frozenset()

    def is_shown(self, component: str) -> bool:
        return component not in self.hidden


@dataclass(frozen=True)
class Query:
    """A compiled query"""
    source: str = ""
    filters: Tuple[QueryNode, ...] = ()
    sorters: Tuple[Sorter, ...] = ()
    groupers: Tuple[Grouper, ...] = ()
    limit: Optional[int] = None
    layout: LayoutOptions = LayoutOptions()

    def matches(self, task: Task) -> bool:
        return all(node.evaluate(task) for node in self.filters)

    def apply(self, tasks: Sequence[Task]) -> TaskGroups:
        """Filter, sort, limit and group ``tasks``. Pure and deterministic."""
        selected = [task for task in tasks if self.matches(task)]
        selected = sort_tasks(selected, self.sorters)
        if self.limit is not None:
            selected = selected[:self.limit]
        logger.debug("Query selected %d of %d tasks", len(selected), len(tasks))
        return group_tasks(selected, self.groupers)

    def explain(self) -> str:
        """Describe the compiled query, one instruction per line."""
        if not self.filters:
            lines = ["No filters supplied. All tasks will match the query."]
        else:
            lines = ["All of:" if len(self.filters) > 1 else "Filter:"]
            lines.extend(f"  {node.explain()}" for node in self.filters)
        lines.extend(sorter.source for sorter in self.sorters)
        lines.extend(grouper.source for grouper in self.groupers)
        if self.limit is not None:
            lines.append(f"At most {self.limit} task{'s' if self.limit != 1 else ''}.")
        return "\n".join(lines)


_LIMIT_RE = re.compile(r"^limit(?: to)?\s+(?P<count>\d+)(?: tasks?)?$", re.IGNORECASE)
_LAYOUT_RE = re.compile(r"^(?P<mode>hide|show)\s+(?P<component>.+)$", re.IGNORECASE)


def suggest_instruction(line: str) -> Optional[str]:
    """Closest known instruction to ``line``, if any is close enough."""
    matches = process.extractBests(line.lower(), KNOWN_INSTRUCTIONS,
                                   scorer=fuzz.ratio, score_cutoff=60, limit=1)
    return matches[0][0] if matches else None


class QueryParser:
    """Compiles query text into a Query, one line at a time."""

    def __init__(self, source: str, today: date):
        self.source = source
        self.today = today
        self.filters: List[QueryNode] = []
        self.sorters: List[Sorter] = []
        self.groupers: List[Grouper] = []
        self.limit: Optional[int] = None
        self.short_mode = False
        self.explain = False
        self.hidden = set()

    def parse(self) -> Query:
        for raw_line in self.source.splitlines():
            line = " ".join(raw_line.split())
            if not line or line.startswith("#"):
                continue
            try:
                self._parse_line(line)
            except (FilterError, SortError, GroupError) as e:
                raise QueryError(str(e), line=line) from e

        return Query(
            source=self.source,
            filters=tuple(self.filters),
            sorters=tuple(self.sorters),
            groupers=tuple(self.groupers),
            limit=self.limit,
            layout=LayoutOptions(
                short_mode=self.short_mode,
                explain=self.explain,
                hidden=frozenset(self.hidden),
            ),
        )

    def _parse_line(self, line: str):
        lowered = line.lower()

        if lowered == "explain":
            self.explain = True
            return
        if lowered == "short mode" or lowered == "short":
            self.short_mode = True
            return
        if lowered == "full mode" or lowered == "full":
            self.short_mode = False
            return

        limit = _LIMIT_RE.match(line)
        if limit:
            self.limit = int(limit.group("count"))
            return

        layout = _LAYOUT_RE.match(line)
        if layout:
            self._parse_layout(line, layout.group("mode").lower(), layout.group("component").lower())
            return

        if lowered.startswith("sort by"):
            self.sorters.append(parse_sorter(line) or self._unknown(line))
            return
        if lowered.startswith("group by"):
            self.groupers.append(parse_grouper(line) or self._unknown(line))
            return

        if is_boolean_line(line):
            self.filters.append(parse_boolean(line, self.today))
            return

        compiled = parse_filter(line, self.today)
        if compiled is None:
            self._unknown(line)
        self.filters.append(compiled)

    def _parse_layout(self, line: str, mode: str, component: str):
        if component not in LAYOUT_COMPONENTS:
            raise QueryError(f"Unknown layout component: {line}", line=line,
                             suggestion=_closest_component(mode, component))
        if mode == "hide":
            self.hidden.add(component)
        else:
            self.hidden.discard(component)

    def _unknown(self, line: str):
        suggestion = suggest_instruction(line)
        if suggestion is not None and suggestion.lower() == line.lower():
            raise QueryError(f"Missing value in query: {line}", line=line)
        raise QueryError(f"Do not understand query: {line}", line=line, suggestion=suggestion)


def _closest_component(mode: str, component: str) -> Optional[str]:
    matches = process.extractBests(component, sorted(LAYOUT_COMPONENTS),
                                   scorer=fuzz.ratio, score_cutoff=60, limit=1)
    return f"{mode} {matches[0][0]}" if matches else None


def parse_query(source: str, *, today: date) -> Query:
    """Compile query text.

    Args:
        source: Query text, one instruction per line
        today: Date that relative phrases such as "tomorrow" resolve against

    Raises:
        QueryError: On the first line that cannot be compiled
    """
    return QueryParser(source, today).parse()
