"""Task statuses and the registry that resolves status symbols.

A status is identified by the single character written between the square
brackets of a checkbox (``- [x]``). The registry maps those symbols to named
statuses and knows which symbol follows each one when a task is toggled.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List


logger = logging.getLogger(__name__)


class StatusType(Enum):
    """Behavioural category of a status."""
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELLED = "CANCELLED"
    NON_TASK = "NON_TASK"


@dataclass(frozen=True, eq=False)
class Status:
    """A single registered status.

    Two statuses are equal when their symbols are equal; the display name and
    next symbol are configuration, not identity.
    """
    symbol: str
    name: str
    next_status_symbol: str
    type: StatusType = StatusType.TODO

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Status):
            return NotImplemented
        return self.symbol == other.symbol

    def __hash__(self) -> int:
        return hash(self.symbol)

    @property
    def is_done(self) -> bool:
        """True for statuses that stamp a done date when entered."""
        return self.type == StatusType.DONE

    @property
    def is_completed(self) -> bool:
        """True for statuses that no longer need action (done, cancelled, non-task)."""
        return self.type in (StatusType.DONE, StatusType.CANCELLED, StatusType.NON_TASK)

    @classmethod
    def unknown(cls, symbol: str) -> "Status":
        """Status used for symbols nobody registered."""
        return cls(symbol=symbol, name="Unknown", next_status_symbol="x", type=StatusType.TODO)


TODO = Status(" ", "Todo", "x", StatusType.TODO)
DONE = Status("x", "Done", " ", StatusType.DONE)
IN_PROGRESS = Status("/", "In Progress", "x", StatusType.IN_PROGRESS)
CANCELLED = Status("-", "Cancelled", " ", StatusType.CANCELLED)


@dataclass
class StatusRegistry:
    """Symbol to status lookup table.

    Build one at startup (usually from settings), pass it to every parse and
    toggle call, and replace it wholesale when the configuration changes.
    """
    _statuses: Dict[str, Status] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "StatusRegistry":
        """Registry holding the four built-in statuses."""
        return cls.from_statuses([TODO, DONE, IN_PROGRESS, CANCELLED])

    @classmethod
    def from_statuses(cls, statuses: Iterable[Status]) -> "StatusRegistry":
        registry = cls()
        registry.register_statuses(statuses)
        return registry

    def add(self, status: Status) -> None:
        """Register a status, replacing any previous status with the same symbol."""
        if len(status.symbol) != 1:
            raise ValueError(f"Status symbol must be a single character: {status.symbol!r}")
        if status.symbol in self._statuses:
            logger.debug("Replacing status for symbol %r", status.symbol)
        self._statuses[status.symbol] = status

    def register_statuses(self, statuses: Iterable[Status]) -> None:
        for status in statuses:
            self.add(status)

    @property
    def registered_statuses(self) -> List[Status]:
        return list(self._statuses.values())

    def has_symbol(self, symbol: str) -> bool:
        return symbol in self._statuses

    def by_symbol(self, symbol: str) -> Status:
        """Resolve a symbol, falling back to an "Unknown" status that keeps the symbol."""
        status = self._statuses.get(symbol)
        if status is None:
            return Status.unknown(symbol)
        return status

    def next_status(self, status: Status) -> Status:
        """Status reached by toggling ``status`` once."""
        return self.by_symbol(status.next_status_symbol)

    def next_recurrence_status(self, done_status: Status) -> Status:
        """Status for the next occurrence of a recurring task completed with ``done_status``.

        Follows the toggle cycle from ``done_status`` and returns the first
        TODO status on it. Falls back to the registered ``' '`` status or the
        built-in Todo when the cycle has none.
        """
        seen = {done_status.symbol}
        current = self.next_status(done_status)
        while current.symbol not in seen:
            if current.type == StatusType.TODO and self.has_symbol(current.symbol):
                return current
            seen.add(current.symbol)
            current = self.next_status(current)
        return self._statuses.get(" ", TODO)

    def __len__(self) -> int:
        return len(self._statuses)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._statuses
