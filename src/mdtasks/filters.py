"""
Filter instructions for the task query language

Each filter line of a query compiles to a QueryNode whose ``evaluate`` method
is a predicate over a Task. Boolean lines such as
``(due before today) OR (priority is high)`` build a small AST out of the
same nodes.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

import parsedatetime

from .status import StatusType
from .task import Priority, Task, priority_rank
from .utils.dates import parse_iso_date


class FilterError(ValueError):
    """Raised when a filter line is recognised but its value is invalid."""


class QueryNode(ABC):
    """Abstract base class for filter AST nodes"""

    @abstractmethod
    def evaluate(self, task: Task) -> bool:
        """Evaluate this node against a task"""

    @abstractmethod
    def explain(self) -> str:
        """Human readable form of the node"""


@dataclass(frozen=True)
class Filter(QueryNode):
    """A compiled filter line."""
    source: str
    predicate: Callable[[Task], bool]

    def evaluate(self, task: Task) -> bool:
        return self.predicate(task)

    def explain(self) -> str:
        return self.source


@dataclass(frozen=True)
class BinaryOp(QueryNode):
    """Binary operation (AND, OR)"""
    left: QueryNode
    operator: str
    right: QueryNode

    def evaluate(self, task: Task) -> bool:
        if self.operator == 'AND':
            return self.left.evaluate(task) and self.right.evaluate(task)
        if self.operator == 'OR':
            return self.left.evaluate(task) or self.right.evaluate(task)
        if self.operator == 'XOR':
            return self.left.evaluate(task) != self.right.evaluate(task)
        return False

    def explain(self) -> str:
        return f"({self.left.explain()}) {self.operator} ({self.right.explain()})"


@dataclass(frozen=True)
class UnaryOp(QueryNode):
    """Unary operation (NOT)"""
    operator: str
    operand: QueryNode

    def evaluate(self, task: Task) -> bool:
        if self.operator == 'NOT':
            return not self.operand.evaluate(task)
        return False

    def explain(self) -> str:
        return f"NOT ({self.operand.explain()})"


# ---------------------------------------------------------------------------
# Date phrases
# ---------------------------------------------------------------------------

_calendar = parsedatetime.Calendar()

_FILLER_WORDS = {"in", "on", "at", "the", "of", "from", "now"}


def parse_date_phrase(text: str, today: date) -> Optional[date]:
    """Resolve a date phrase relative to ``today``.

    Accepts ``YYYY-MM-DD``, ``today``, ``tomorrow``, ``yesterday`` and any
    phrase parsedatetime understands ("next monday", "in 3 days").
    """
    phrase = text.strip().lower()
    if not phrase:
        return None

    fixed = {
        'today': today,
        'tomorrow': today + timedelta(days=1),
        'yesterday': today - timedelta(days=1),
    }
    if phrase in fixed:
        return fixed[phrase]

    iso = parse_iso_date(phrase)
    if iso is not None:
        return iso

    source_time = datetime(today.year, today.month, today.day, 12, 0, 0)
    matches = _calendar.nlp(phrase, sourceTime=source_time)
    if not matches or len(matches) != 1:
        return None

    found, _flag, start, end, _matched = matches[0]
    # Everything parsedatetime skipped must be connecting words
    leftover = (phrase[:start] + " " + phrase[end:]).split()
    if any(word not in _FILLER_WORDS for word in leftover):
        return None
    return found.date()


class DateField(Enum):
    START = "start"
    SCHEDULED = "scheduled"
    DUE = "due"
    DONE = "done"
    HAPPENS = "happens"


def task_dates(task: Task, field_name: DateField) -> List[date]:
    """Dates of a task for a date field (several for ``happens``)."""
    if field_name == DateField.HAPPENS:
        return task.happens_dates
    value = getattr(task, f"{field_name.value}_date")
    return [value] if value is not None else []


_DATE_COMPARATORS = {
    'before': lambda value, target: value < target,
    'after': lambda value, target: value > target,
    'on': lambda value, target: value == target,
    'on or before': lambda value, target: value <= target,
    'on or after': lambda value, target: value >= target,
}

_DATE_FILTER_RE = re.compile(
    r"^(?P<field>due|scheduled|start|done|happens)"
    r"(?:\s+(?P<op>on or before|on or after|before|after|on))?\s+(?P<value>.+)$",
    re.IGNORECASE,
)
_DATE_PRESENCE_RE = re.compile(r"^(?P<mode>no|has)\s+(?P<field>due|scheduled|start|done|happens)\s+date$", re.IGNORECASE)


def _date_filter(line: str, today: date) -> Optional[Filter]:
    presence = _DATE_PRESENCE_RE.match(line)
    if presence:
        field_name = DateField(presence.group("field").lower())
        wanted = presence.group("mode").lower() == "has"
        return Filter(line, lambda task: bool(task_dates(task, field_name)) == wanted)

    match = _DATE_FILTER_RE.match(line)
    if not match:
        return None

    field_name = DateField(match.group("field").lower())
    operator = (match.group("op") or "on").lower()
    target = parse_date_phrase(match.group("value"), today)
    if target is None:
        raise FilterError(f"Do not understand the date in: {line}")

    compare = _DATE_COMPARATORS[operator]
    return Filter(line, lambda task: any(compare(value, target) for value in task_dates(task, field_name)))


# ---------------------------------------------------------------------------
# Text fields
# ---------------------------------------------------------------------------

_TEXT_FIELDS = {
    'description': lambda task: task.description,
    'path': lambda task: task.path,
    'heading': lambda task: task.preceding_header or "",
    'filename': lambda task: task.filename,
    'status.name': lambda task: task.status.name,
}

_TEXT_FILTER_RE = re.compile(
    r"^(?P<field>description|path|heading|filename|status\.name)\s+"
    r"(?P<op>includes|does not include|regex matches|regex does not match)\s+(?P<value>.*)$",
    re.IGNORECASE,
)

_REGEX_VALUE_RE = re.compile(r"^/(?P<pattern>.*)/(?P<flags>[imsu]*)$")


def compile_regex(value: str, line: str) -> "re.Pattern[str]":
    """Compile a ``/pattern/flags`` query value."""
    match = _REGEX_VALUE_RE.match(value.strip())
    if not match:
        raise FilterError(f"Regular expressions must look like /pattern/: {line}")
    flags = 0
    for flag in match.group("flags"):
        flags |= {'i': re.IGNORECASE, 'm': re.MULTILINE, 's': re.DOTALL, 'u': 0}[flag]
    try:
        return re.compile(match.group("pattern"), flags)
    except re.error as e:
        raise FilterError(f"Invalid regular expression in '{line}': {e}")


def _text_filter(line: str) -> Optional[Filter]:
    match = _TEXT_FILTER_RE.match(line)
    if not match:
        return None

    getter = _TEXT_FIELDS[match.group("field").lower()]
    operator = match.group("op").lower()
    value = match.group("value")

    if operator.startswith("regex"):
        pattern = compile_regex(value, line)
        wanted = operator == "regex matches"
        return Filter(line, lambda task: (pattern.search(getter(task)) is not None) == wanted)

    needle = value.strip().lower()
    wanted = operator == "includes"
    return Filter(line, lambda task: (needle in getter(task).lower()) == wanted)


# ---------------------------------------------------------------------------
# Tags, priority, status, recurrence, structure
# ---------------------------------------------------------------------------

_TAG_FILTER_RE = re.compile(
    r"^tags?\s+(?P<op>includes?|do not include|does not include)\s+(?P<value>\S.*)$",
    re.IGNORECASE,
)


def _tag_filter(line: str) -> Optional[Filter]:
    match = _TAG_FILTER_RE.match(line)
    if not match:
        return None
    needle = match.group("value").strip().lower()
    if not needle.startswith("#"):
        needle = "#" + needle
    wanted = match.group("op").lower().startswith("include")
    return Filter(line, lambda task: any(needle in tag.lower() for tag in task.tags) == wanted)


_PRIORITY_FILTER_RE = re.compile(
    r"^priority is\s+(?:(?P<op>above|below|not)\s+)?(?P<value>highest|high|medium|none|low|lowest)$",
    re.IGNORECASE,
)


def _priority_filter(line: str) -> Optional[Filter]:
    match = _PRIORITY_FILTER_RE.match(line)
    if not match:
        return None
    value = match.group("value").lower()
    target = priority_rank(None if value == "none" else Priority.from_name(value))
    operator = (match.group("op") or "").lower()

    if operator == "above":
        return Filter(line, lambda task: priority_rank(task.priority) < target)
    if operator == "below":
        return Filter(line, lambda task: priority_rank(task.priority) > target)
    if operator == "not":
        return Filter(line, lambda task: priority_rank(task.priority) != target)
    return Filter(line, lambda task: priority_rank(task.priority) == target)


_STATUS_TYPE_RE = re.compile(r"^status\.type is\s+(?P<not>not\s+)?(?P<value>\S+)$", re.IGNORECASE)


def _status_type_filter(line: str) -> Optional[Filter]:
    match = _STATUS_TYPE_RE.match(line)
    if not match:
        return None
    try:
        status_type = StatusType(match.group("value").upper())
    except ValueError:
        names = ", ".join(t.value for t in StatusType)
        raise FilterError(f"Unknown status type in '{line}', use one of: {names}")
    wanted = not match.group("not")
    return Filter(line, lambda task: (task.status.type == status_type) == wanted)


_SUB_ITEM_PREFIX_RE = re.compile(r"^(?:\s*>\s?)*")


def is_sub_item(task: Task) -> bool:
    """True for indented tasks (blockquote markers do not count)."""
    return bool(_SUB_ITEM_PREFIX_RE.sub("", task.indentation, count=1))


_SIMPLE_FILTERS: List[Tuple[str, Callable[[Task], bool]]] = [
    ("done", lambda task: task.status.is_completed),
    ("not done", lambda task: not task.status.is_completed),
    ("is recurring", lambda task: task.is_recurring),
    ("is not recurring", lambda task: not task.is_recurring),
    ("exclude sub-items", lambda task: not is_sub_item(task)),
]


def parse_filter(line: str, today: date) -> Optional[Filter]:
    """Compile one filter line.

    Returns None if the line is not a filter at all; raises FilterError if it
    is one but its value is invalid.
    """
    text = " ".join(line.split())
    lowered = text.lower()
    for keyword, predicate in _SIMPLE_FILTERS:
        if lowered == keyword:
            return Filter(text, predicate)

    for factory in (_text_filter, _tag_filter, _priority_filter, _status_type_filter):
        compiled = factory(text)
        if compiled is not None:
            return compiled

    return _date_filter(text, today)


# ---------------------------------------------------------------------------
# Boolean combinations
# ---------------------------------------------------------------------------

class TokenType(Enum):
    """Token types for boolean filter lines"""
    GROUP = "GROUP"      # ( ... )
    AND = "AND"
    OR = "OR"
    XOR = "XOR"
    NOT = "NOT"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int


class BooleanLexer:
    """Tokenizes ``(filter) AND (filter)`` lines.

    Parenthesised groups are returned whole (nesting respected) so the parser
    can decide whether a group is itself boolean or a single filter.
    """

    OPERATORS = {'AND': TokenType.AND, 'OR': TokenType.OR, 'XOR': TokenType.XOR, 'NOT': TokenType.NOT}

    def __init__(self, text: str):
        self.text = text
        self.position = 0

    def tokenize(self) -> List[Token]:
        tokens = []
        while True:
            self._skip_whitespace()
            if self.position >= len(self.text):
                break
            char = self.text[self.position]
            if char == '(':
                start = self.position
                tokens.append(Token(TokenType.GROUP, self._read_group(), start))
            else:
                start = self.position
                word = self._read_word()
                token_type = self.OPERATORS.get(word.upper())
                if token_type is None:
                    raise FilterError(f"Expected AND, OR, XOR, NOT or '(' at column {start + 1}: {self.text}")
                tokens.append(Token(token_type, word, start))
        tokens.append(Token(TokenType.EOF, '', self.position))
        return tokens

    def _skip_whitespace(self):
        while self.position < len(self.text) and self.text[self.position].isspace():
            self.position += 1

    def _read_group(self) -> str:
        depth = 0
        start = self.position
        while self.position < len(self.text):
            char = self.text[self.position]
            if char == '(':
                depth += 1
            elif char == ')':
                depth -= 1
                if depth == 0:
                    self.position += 1
                    return self.text[start + 1:self.position - 1]
            self.position += 1
        raise FilterError(f"Unbalanced parentheses: {self.text}")

    def _read_word(self) -> str:
        start = self.position
        while (self.position < len(self.text) and
               not self.text[self.position].isspace() and
               self.text[self.position] not in '()'):
            self.position += 1
        return self.text[start:self.position]


_BOOLEAN_START_RE = re.compile(r"^\s*(?:\(|NOT\s*\()", re.IGNORECASE)


def is_boolean_line(line: str) -> bool:
    return bool(_BOOLEAN_START_RE.match(line))


class BooleanParser:
    """Parses boolean tokens into a filter AST

    Precedence from loosest to tightest: OR / XOR, AND, NOT.
    """

    def __init__(self, tokens: List[Token], today: date):
        self.tokens = tokens
        self.position = 0
        self.today = today

    def parse(self) -> QueryNode:
        node = self._parse_or()
        if self._current_token().type != TokenType.EOF:
            raise FilterError(f"Unexpected '{self._current_token().value}'")
        return node

    def _current_token(self) -> Token:
        return self.tokens[self.position] if self.position < len(self.tokens) else self.tokens[-1]

    def _consume(self) -> Token:
        token = self._current_token()
        if self.position < len(self.tokens) - 1:
            self.position += 1
        return token

    def _parse_or(self) -> QueryNode:
        left = self._parse_and()
        while self._current_token().type in (TokenType.OR, TokenType.XOR):
            operator = self._consume().type.value
            right = self._parse_and()
            left = BinaryOp(left, operator, right)
        return left

    def _parse_and(self) -> QueryNode:
        left = self._parse_not()
        while self._current_token().type == TokenType.AND:
            self._consume()
            right = self._parse_not()
            left = BinaryOp(left, 'AND', right)
        return left

    def _parse_not(self) -> QueryNode:
        if self._current_token().type == TokenType.NOT:
            self._consume()
            return UnaryOp('NOT', self._parse_not())
        return self._parse_primary()

    def _parse_primary(self) -> QueryNode:
        token = self._current_token()
        if token.type != TokenType.GROUP:
            raise FilterError(f"Expected '(' but found '{token.value or 'end of line'}'")
        self._consume()
        return parse_boolean_or_filter(token.value, self.today)


def parse_boolean_or_filter(text: str, today: date) -> QueryNode:
    """Compile the inside of a parenthesised group."""
    inner = text.strip()
    if is_boolean_line(inner):
        return BooleanParser(BooleanLexer(inner).tokenize(), today).parse()
    compiled = parse_filter(inner, today)
    if compiled is None:
        raise FilterError(f"Do not understand filter: {inner}")
    return compiled


def parse_boolean(line: str, today: date) -> QueryNode:
    """Compile a whole boolean filter line."""
    return BooleanParser(BooleanLexer(line).tokenize(), today).parse()
