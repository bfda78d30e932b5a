"""
Recurrence rules for task lines

This module turns the text after the 🔁 marker ("every 2 weeks on Monday",
"every month on the last Friday when done", ...) into a structured rule and
computes the dates of the next occurrence when a recurring task is completed.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple

from dateutil import rrule
from dateutil.relativedelta import relativedelta


logger = logging.getLogger(__name__)


class RecurrenceParseError(ValueError):
    """Raised when a recurrence phrase cannot be understood."""

    def __init__(self, message: str, text: str = ""):
        super().__init__(message)
        self.text = text


class RecurrenceType(Enum):
    """Types of recurrence patterns"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


_FREQUENCIES = {
    RecurrenceType.DAILY: rrule.DAILY,
    RecurrenceType.WEEKLY: rrule.WEEKLY,
    RecurrenceType.MONTHLY: rrule.MONTHLY,
    RecurrenceType.YEARLY: rrule.YEARLY,
}

_UNITS = {
    "day": RecurrenceType.DAILY,
    "days": RecurrenceType.DAILY,
    "week": RecurrenceType.WEEKLY,
    "weeks": RecurrenceType.WEEKLY,
    "month": RecurrenceType.MONTHLY,
    "months": RecurrenceType.MONTHLY,
    "year": RecurrenceType.YEARLY,
    "years": RecurrenceType.YEARLY,
}

DAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']
MONTH_NAMES = ['january', 'february', 'march', 'april', 'may', 'june', 'july',
               'august', 'september', 'october', 'november', 'december']

_ORDINAL_WORDS = {
    'first': 1, 'second': 2, 'third': 3, 'fourth': 4, 'fifth': 5,
}

_TOKEN_RE = re.compile(r"[a-z]+|\d+(?:st|nd|rd|th)?|,|!")

_MAX_SCAN = 1000


@dataclass(frozen=True)
class RecurrencePattern:
    """Structured form of a recurrence phrase.

    ``weekdays`` holds ``(day, n)`` pairs where ``day`` is 0=Monday and ``n``
    is the nth occurrence in the month (0 = every, -1 = last).
    """
    type: RecurrenceType
    interval: int = 1
    weekdays: Tuple[Tuple[int, int], ...] = ()
    days_of_month: Tuple[int, ...] = ()
    months: Tuple[int, ...] = ()

    @property
    def is_simple(self) -> bool:
        """True when the pattern is a plain "every N units" step."""
        return not (self.weekdays or self.days_of_month or self.months)

    def _step(self, anchor: date, count: int) -> date:
        step = self.interval * count
        if self.type == RecurrenceType.DAILY:
            return anchor + timedelta(days=step)
        if self.type == RecurrenceType.WEEKLY:
            return anchor + timedelta(weeks=step)
        if self.type == RecurrenceType.MONTHLY:
            # relativedelta clamps to the last day of shorter months
            return anchor + relativedelta(months=step)
        return anchor + relativedelta(years=step)

    def _to_rrule(self, anchor: date) -> rrule.rrule:
        kwargs = {
            "dtstart": datetime(anchor.year, anchor.month, anchor.day),
            "interval": self.interval,
        }
        if self.weekdays:
            kwargs["byweekday"] = [
                rrule.weekday(day, n) if n else rrule.weekday(day)
                for day, n in self.weekdays
            ]
        if self.months:
            kwargs["bymonth"] = list(self.months)
        if len(self.days_of_month) == 1 and self.days_of_month[0] >= 29 and len(self.months) <= 1:
            # "on the 31st" means the last day in months that are shorter
            kwargs["bymonthday"] = list(range(28, self.days_of_month[0] + 1))
            kwargs["bysetpos"] = -1
        elif self.days_of_month:
            kwargs["bymonthday"] = list(self.days_of_month)
        return rrule.rrule(_FREQUENCIES[self.type], **kwargs)

    def next_after(self, anchor: date, after: date) -> Optional[date]:
        """First occurrence strictly after ``after`` of the pattern anchored on ``anchor``."""
        if self.is_simple:
            for count in range(1, _MAX_SCAN):
                candidate = self._step(anchor, count)
                if candidate > after:
                    return candidate
            return None

        after_dt = datetime(after.year, after.month, after.day)
        found = self._to_rrule(anchor).after(after_dt, inc=False)
        return found.date() if found is not None else None


class RecurrenceParser:
    """Parses natural language recurrence phrases.

    Hand-written recursive descent over a flat token list::

        rule     := 'every' body ['when' 'done']
        body     := [N] unit [on-part] | 'weekday' | weekdays | month ['on' 'the' day]
        on-part  := 'on' weekdays | 'on' 'the' monthday
        monthday := ordinal {',' ordinal} | 'last' [weekday] | ordinal weekday
    """

    def __init__(self, text: str):
        self.text = text
        self.tokens = self._tokenize(text)
        self.position = 0

    @staticmethod
    def _tokenize(text: str) -> List[str]:
        lowered = text.lower()
        leftover = _TOKEN_RE.sub(" ", lowered)
        if leftover.strip():
            raise RecurrenceParseError(f"Unexpected characters in recurrence rule: {text!r}", text)
        return [token for token in _TOKEN_RE.findall(lowered) if token not in (",", "!", "and")]

    def _peek(self, offset: int = 0) -> str:
        pos = self.position + offset
        return self.tokens[pos] if pos < len(self.tokens) else ""

    def _consume(self, expected: Optional[str] = None) -> str:
        token = self._peek()
        if not token:
            raise RecurrenceParseError(f"Unexpected end of recurrence rule: {self.text!r}", self.text)
        if expected and token != expected:
            raise RecurrenceParseError(f"Expected '{expected}', got '{token}' in {self.text!r}", self.text)
        self.position += 1
        return token

    def parse(self) -> Tuple[RecurrencePattern, bool]:
        """Return the pattern and whether it is based on the completion date."""
        self._consume("every")
        pattern = self._parse_body()

        base_on_today = False
        if self._peek() == "when":
            self._consume("when")
            self._consume("done")
            base_on_today = True

        if self._peek():
            raise RecurrenceParseError(f"Unexpected '{self._peek()}' in recurrence rule: {self.text!r}", self.text)
        return pattern, base_on_today

    def _parse_body(self) -> RecurrencePattern:
        token = self._peek()

        interval = 1
        if token.isdigit():
            interval = int(self._consume())
            if interval < 1:
                raise RecurrenceParseError(f"Interval must be positive in {self.text!r}", self.text)
            token = self._peek()

        if token in _UNITS:
            self._consume()
            return self._parse_unit(_UNITS[token], interval)

        if interval != 1:
            raise RecurrenceParseError(f"Expected a unit after '{interval}' in {self.text!r}", self.text)

        if token in ("weekday", "weekdays"):
            self._consume()
            return RecurrencePattern(RecurrenceType.DAILY, weekdays=tuple((d, 0) for d in range(5)))

        if self._is_day_name(token):
            return RecurrencePattern(RecurrenceType.WEEKLY, weekdays=tuple((d, 0) for d in self._parse_weekdays()))

        if token in MONTH_NAMES:
            months = []
            while self._peek() in MONTH_NAMES:
                months.append(MONTH_NAMES.index(self._consume()) + 1)
            days: Tuple[int, ...] = ()
            if self._peek() == "on":
                self._consume("on")
                self._consume("the")
                days = tuple(self._parse_ordinals())
            return RecurrencePattern(RecurrenceType.YEARLY, months=tuple(months), days_of_month=days)

        raise RecurrenceParseError(f"Cannot understand recurrence rule: {self.text!r}", self.text)

    def _parse_unit(self, rec_type: RecurrenceType, interval: int) -> RecurrencePattern:
        if self._peek() != "on":
            return RecurrencePattern(rec_type, interval=interval)

        self._consume("on")
        if rec_type == RecurrenceType.WEEKLY:
            days = self._parse_weekdays()
            return RecurrencePattern(rec_type, interval=interval, weekdays=tuple((d, 0) for d in days))

        if rec_type == RecurrenceType.MONTHLY:
            self._consume("the")
            if self._peek() == "last":
                self._consume("last")
                if self._is_day_name(self._peek()):
                    day = self._day_number(self._consume())
                    return RecurrencePattern(rec_type, interval=interval, weekdays=((day, -1),))
                return RecurrencePattern(rec_type, interval=interval, days_of_month=(-1,))

            ordinals = self._parse_ordinals()
            if len(ordinals) == 1 and self._is_day_name(self._peek()):
                day = self._day_number(self._consume())
                return RecurrencePattern(rec_type, interval=interval, weekdays=((day, ordinals[0]),))
            return RecurrencePattern(rec_type, interval=interval, days_of_month=tuple(ordinals))

        raise RecurrenceParseError(f"'on' is not supported after this unit in {self.text!r}", self.text)

    def _parse_weekdays(self) -> List[int]:
        days = []
        while self._is_day_name(self._peek()):
            days.append(self._day_number(self._consume()))
        if not days:
            raise RecurrenceParseError(f"Expected a day name in {self.text!r}", self.text)
        return days

    def _parse_ordinals(self) -> List[int]:
        values = []
        while True:
            value = self._ordinal_value(self._peek())
            if value is None:
                break
            self._consume()
            values.append(value)
        if not values:
            raise RecurrenceParseError(f"Expected a day of the month in {self.text!r}", self.text)
        return values

    @staticmethod
    def _ordinal_value(token: str) -> Optional[int]:
        if token in _ORDINAL_WORDS:
            return _ORDINAL_WORDS[token]
        match = re.fullmatch(r"(\d+)(?:st|nd|rd|th)?", token)
        if match:
            value = int(match.group(1))
            if 1 <= value <= 31:
                return value
        return None

    @staticmethod
    def _is_day_name(token: str) -> bool:
        return bool(token) and RecurrenceParser._day_number(token) is not None

    @staticmethod
    def _day_number(token: str) -> Optional[int]:
        """Convert a day name (or its plural/abbreviation) to a number (0=Monday)."""
        name = token.rstrip("s") if token.endswith("days") else token
        for index, day_name in enumerate(DAY_NAMES):
            if name == day_name or (len(name) >= 3 and day_name.startswith(name)):
                return index
        return None


@dataclass(frozen=True)
class NextOccurrence:
    """Dates of the next occurrence of a recurring task."""
    start_date: Optional[date]
    scheduled_date: Optional[date]
    due_date: Optional[date]


@dataclass(frozen=True)
class Recurrence:
    """A recurrence rule attached to a task, with the dates it is anchored to."""
    rule_text: str
    pattern: RecurrencePattern
    base_on_today: bool = False
    start_date: Optional[date] = None
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None

    @classmethod
    def from_text(cls, rule_text: str, *, start_date: Optional[date] = None,
                  scheduled_date: Optional[date] = None,
                  due_date: Optional[date] = None) -> "Recurrence":
        """Parse ``rule_text``; raises RecurrenceParseError if it is malformed."""
        text = " ".join(rule_text.split())
        pattern, base_on_today = RecurrenceParser(text).parse()
        return cls(
            rule_text=text,
            pattern=pattern,
            base_on_today=base_on_today,
            start_date=start_date,
            scheduled_date=scheduled_date,
            due_date=due_date,
        )

    @property
    def reference_date(self) -> Optional[date]:
        """The date the rule is anchored to: due, else scheduled, else start."""
        return self.due_date or self.scheduled_date or self.start_date

    def to_text(self) -> str:
        return self.rule_text

    def next_occurrence_after(self, after: date) -> Optional[date]:
        """Next date produced by the rule strictly after ``after``.

        The rule is anchored on the reference date, or on ``after`` itself for
        "when done" rules. Returns None when there is no reference date.
        """
        if self.reference_date is None:
            return None
        anchor = after if self.base_on_today else self.reference_date
        return self.pattern.next_after(anchor, after)

    def next(self, today: date) -> Optional[NextOccurrence]:
        """Dates for the occurrence following this one.

        Each date field that is set keeps its day offset from the reference
        date; fields that are not set stay unset.
        """
        reference = self.reference_date
        if reference is None:
            logger.debug("Recurrence %r has no reference date", self.rule_text)
            return None

        after = today if self.base_on_today else reference
        try:
            next_reference = self.next_occurrence_after(after)
            if next_reference is None:
                return None

            def shifted(value: Optional[date]) -> Optional[date]:
                if value is None:
                    return None
                return next_reference + (value - reference)

            return NextOccurrence(
                start_date=shifted(self.start_date),
                scheduled_date=shifted(self.scheduled_date),
                due_date=shifted(self.due_date),
            )
        except (ValueError, OverflowError) as e:
            # the next date falls outside the supported calendar range
            logger.debug("Recurrence %r has no representable next date: %s", self.rule_text, e)
            return None
