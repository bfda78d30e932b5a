"""Task line grammar: scanning list lines and decomposing task bodies."""

import logging
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import TasksSettings
from .recurrence import Recurrence, RecurrenceParseError, RecurrenceParser
from .status import StatusRegistry
from .task import Priority, Task
from .utils.dates import parse_iso_date


logger = logging.getLogger(__name__)


class LineKind(Enum):
    """How a line is treated by the toggle command."""
    TASK = "task"
    CHECKLIST_ITEM = "checklist_item"
    LIST_ITEM = "list_item"
    PLAIN_TEXT = "plain_text"


@dataclass(frozen=True)
class LineParts:
    """Typed result of scanning one line.

    ``list_marker`` is None for plain text, ``status_symbol`` is None for list
    items without a checkbox. Offsets index into the scanned line.
    """
    line: str
    indentation: str
    list_marker: Optional[str] = None
    status_symbol: Optional[str] = None
    body: str = ""
    marker_end: int = 0
    symbol_index: int = -1

    @property
    def has_checkbox(self) -> bool:
        return self.status_symbol is not None

    @property
    def is_list_item(self) -> bool:
        return self.list_marker is not None


class LineScanner:
    """Scans a line into indentation, list marker, checkbox and body.

    Grammar::

        line        := indentation [marker [' '+ '[' symbol ']' ' '*] body]
        indentation := (whitespace | '>')*
        marker      := '-' | '*' | '+' | digit+ ('.' | ')')
    """

    BULLETS = "-*+"

    def __init__(self, line: str):
        self.line = line
        self.position = 0

    def _peek(self, offset: int = 0) -> str:
        pos = self.position + offset
        return self.line[pos] if pos < len(self.line) else ""

    def _read_indentation(self) -> str:
        start = self.position
        while self.position < len(self.line) and (self.line[self.position].isspace() or self.line[self.position] == ">"):
            self.position += 1
        return self.line[start:self.position]

    def _read_list_marker(self) -> Optional[str]:
        start = self.position
        char = self._peek()
        if char and char in self.BULLETS:
            end = start + 1
        elif char.isdigit():
            end = start
            while end < len(self.line) and self.line[end].isdigit():
                end += 1
            if end >= len(self.line) or self.line[end] not in ".)":
                return None
            end += 1
        else:
            return None

        # A marker must be followed by whitespace or the end of the line
        if end < len(self.line) and not self.line[end].isspace():
            return None
        self.position = end
        return self.line[start:end]

    def _read_checkbox(self) -> Optional[Tuple[str, int]]:
        pos = self.position
        spaces = 0
        while pos < len(self.line) and self.line[pos] == " ":
            pos += 1
            spaces += 1
        if spaces == 0 or pos + 2 >= len(self.line):
            return None
        if self.line[pos] != "[" or self.line[pos + 2] != "]" or self.line[pos + 1] == "\n":
            return None

        symbol_index = pos + 1
        pos += 3
        while pos < len(self.line) and self.line[pos] == " ":
            pos += 1
        self.position = pos
        return self.line[symbol_index], symbol_index

    def scan(self) -> LineParts:
        self.position = 0
        indentation = self._read_indentation()
        marker = self._read_list_marker()
        if marker is None:
            return LineParts(line=self.line, indentation=indentation, body=self.line[len(indentation):])

        marker_end = self.position
        checkbox = self._read_checkbox()
        if checkbox is None:
            return LineParts(
                line=self.line,
                indentation=indentation,
                list_marker=marker,
                body=self.line[marker_end:].lstrip(" "),
                marker_end=marker_end,
            )

        symbol, symbol_index = checkbox
        return LineParts(
            line=self.line,
            indentation=indentation,
            list_marker=marker,
            status_symbol=symbol,
            body=self.line[self.position:],
            marker_end=marker_end,
            symbol_index=symbol_index,
        )


def scan_line(line: str) -> LineParts:
    """Scan a single line (see LineScanner)."""
    return LineScanner(line).scan()


_DATE = r"(?P<date>\d{4}-\d{2}-\d{2})"
_VS = "\ufe0f?"

BODY_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    'priority': re.compile(r"\s*(?P<symbol>[🔺⏫🔼🔽⏬])" + _VS + r"$"),
    'done_date': re.compile(r"\s*✅" + _VS + r" *" + _DATE + r"$"),
    'due_date': re.compile(r"\s*[📅📆🗓]" + _VS + r" *" + _DATE + r"$"),
    'scheduled_date': re.compile(r"\s*[⏳⌛]" + _VS + r" *" + _DATE + r"$"),
    'start_date': re.compile(r"\s*🛫" + _VS + r" *" + _DATE + r"$"),
    'recurrence': re.compile(r"\s*🔁" + _VS + r" ?(?P<rule>[a-zA-Z0-9, !]+)$"),
    'estimate': re.compile(r"\s*⏱" + _VS + r" *(?P<value>\d+h\d+m|\d+h|\d+m|\d+)$"),
    'tag': re.compile(r"(?:^|\s)(?P<tag>#[^\s!@#$%^&*(),.?\":{}|<>]+)$"),
}

BLOCK_LINK_RE = re.compile(r"\s+(?P<link>\^[a-zA-Z0-9-]+)$")
TAG_RE = re.compile(r"(?:^|\s)(?P<tag>#[^\s!@#$%^&*(),.?\":{}|<>]+)")

# Upper bound on trailing tokens stripped from one body
_MAX_BODY_TOKENS = 64


def parse_estimate(value: str) -> int:
    """Convert ``1h30m``, ``2h``, ``45m`` or a bare number of minutes to minutes."""
    match = re.fullmatch(r"(?:(\d+)h)?(?:(\d+)m?)?", value)
    if not match or not value:
        raise ValueError(f"Invalid estimate: {value!r}")
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    return hours * 60 + minutes


@dataclass
class ParsedBody:
    """Fields extracted from the body of a task line."""
    description: str = ""
    tags: Tuple[str, ...] = ()
    block_link: str = ""
    priority: Optional[Priority] = None
    start_date: Optional[date] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    done_date: Optional[date] = None
    recurrence_text: Optional[str] = None
    estimated_time_to_complete: Optional[int] = None


class BodyParser:
    """Strips inline fields from the end of a task body until none match."""

    def __init__(self, body: str):
        self.body = body

    def parse(self) -> ParsedBody:
        parsed = ParsedBody()
        remaining = self.body.rstrip()

        link_match = BLOCK_LINK_RE.search(remaining)
        if link_match:
            parsed.block_link = link_match.group("link")
            remaining = remaining[:link_match.start()].rstrip()

        trailing_tags: List[str] = []
        for _ in range(_MAX_BODY_TOKENS):
            remaining, matched = self._strip_one(remaining, parsed, trailing_tags)
            if not matched:
                break

        description = remaining.strip()
        inner_tags = [m.group("tag") for m in TAG_RE.finditer(description)]
        description = TAG_RE.sub("", description).strip()

        tags: List[str] = []
        for tag in inner_tags + list(reversed(trailing_tags)):
            if tag not in tags:
                tags.append(tag)

        parsed.description = description
        parsed.tags = tuple(tags)
        return parsed

    def _strip_one(self, text: str, parsed: ParsedBody, trailing_tags: List[str]) -> Tuple[str, bool]:
        for name, pattern in BODY_PATTERNS.items():
            if name != 'tag' and getattr(parsed, self._field_for(name)) is not None:
                continue
            match = pattern.search(text)
            if not match:
                continue
            if not self._apply(name, match, parsed, trailing_tags):
                continue
            return text[:match.start()].rstrip(), True
        return text, False

    @staticmethod
    def _field_for(name: str) -> str:
        return {
            'recurrence': 'recurrence_text',
            'estimate': 'estimated_time_to_complete',
        }.get(name, name)

    @staticmethod
    def _apply(name: str, match: "re.Match[str]", parsed: ParsedBody, trailing_tags: List[str]) -> bool:
        if name == 'priority':
            parsed.priority = Priority.from_symbol(match.group("symbol"))
            return parsed.priority is not None
        if name.endswith('_date'):
            value = parse_iso_date(match.group("date"))
            if value is None:
                return False
            setattr(parsed, name, value)
            return True
        if name == 'recurrence':
            rule = " ".join(match.group("rule").split())
            try:
                RecurrenceParser(rule).parse()
            except RecurrenceParseError as e:
                logger.debug("Keeping unparseable recurrence in description: %s", e)
                return False
            parsed.recurrence_text = rule
            return True
        if name == 'estimate':
            parsed.estimated_time_to_complete = parse_estimate(match.group("value"))
            return True
        trailing_tags.append(match.group("tag"))
        return True


def parse_body(body: str) -> ParsedBody:
    return BodyParser(body).parse()


def _passes_global_filter(body: str, settings: Optional[TasksSettings]) -> bool:
    if settings is None or not settings.global_filter:
        return True
    return settings.global_filter in body


def parse_line(line: str, *, registry: StatusRegistry,
               settings: Optional[TasksSettings] = None,
               path: str = "", section_start: int = 0, section_index: int = 0,
               preceding_header: Optional[str] = None,
               fallback_date: Optional[date] = None) -> Optional[Task]:
    """Parse a line into a Task, or return None if it is not a task line.

    Never raises for arbitrary text. Unknown status symbols resolve to an
    "Unknown" status. ``fallback_date`` becomes an inferred scheduled date
    when the line states no start, scheduled or due date.
    """
    parts = scan_line(line)
    if not parts.has_checkbox:
        return None
    if not _passes_global_filter(parts.body, settings):
        logger.debug("Line lacks global filter %r", settings.global_filter)
        return None

    body = parse_body(parts.body)

    scheduled_date = body.scheduled_date
    inferred = False
    if fallback_date is not None and not (body.start_date or body.scheduled_date or body.due_date):
        scheduled_date = fallback_date
        inferred = True

    # An inferred scheduled date also anchors the recurrence
    recurrence = None
    if body.recurrence_text is not None:
        try:
            recurrence = Recurrence.from_text(
                body.recurrence_text,
                start_date=body.start_date,
                scheduled_date=scheduled_date,
                due_date=body.due_date,
            )
        except RecurrenceParseError as e:
            logger.debug("Recurrence rejected: %s", e)

    return Task(
        status=registry.by_symbol(parts.status_symbol),
        description=body.description,
        tags=body.tags,
        indentation=parts.indentation,
        list_marker=parts.list_marker,
        block_link=body.block_link,
        original_markdown=line,
        path=path,
        section_start=section_start,
        section_index=section_index,
        preceding_header=preceding_header,
        start_date=body.start_date,
        scheduled_date=scheduled_date,
        scheduled_date_is_inferred=inferred,
        due_date=body.due_date,
        done_date=body.done_date,
        priority=body.priority,
        recurrence=recurrence,
        estimated_time_to_complete=body.estimated_time_to_complete,
    )


def classify_line(line: str, settings: Optional[TasksSettings] = None) -> LineKind:
    """Classify a line as task, checklist item, list item or plain text."""
    parts = scan_line(line)
    if parts.has_checkbox:
        if _passes_global_filter(parts.body, settings):
            return LineKind.TASK
        return LineKind.CHECKLIST_ITEM
    if parts.is_list_item:
        return LineKind.LIST_ITEM
    return LineKind.PLAIN_TEXT
