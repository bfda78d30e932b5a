"""
Ports (interfaces) used by the toggle command.

The core never depends on a concrete editor. Hosts adapt their buffer and
cursor objects to EditorPort.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CursorPosition:
    """Zero-based line number and column."""
    line: int
    ch: int


class EditorPort(Protocol):
    """Text buffer with a single cursor.

    The caller must hold exclusive access to the buffer for the duration of a
    toggle_done call.
    """

    def get_line(self, line_number: int) -> str: ...

    def set_line(self, line_number: int, text: str) -> None: ...

    def get_cursor(self) -> CursorPosition: ...

    def set_cursor(self, position: CursorPosition) -> None: ...
