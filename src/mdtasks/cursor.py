"""Cursor position recovery after the toggle command rewrites a line.

The toggle command can only insert a handful of things: a list marker after
the indentation, an empty checkbox after the marker, a done date at the end,
or a whole copy of the line (recurring tasks). It can also remove a done date.
Knowing that, the new cursor offset can be worked out from the two line
lengths without diffing the text.
"""

import re

from .task import TaskMarkers


DONE_DATE_SUFFIX_LENGTH = len(f" {TaskMarkers.DONE} YYYY-MM-DD")

_DONE_DATE_RE = re.compile(TaskMarkers.DONE + "\ufe0f? ?" + r"\d{4}-\d{2}-\d{2}$")
_DUPLICATED_LINE_RE = re.compile(r".+\n.+")
_LIST_MARKER_RE = re.compile(r"[-*+]|\d+[.)]")


def calculate_cursor_offset(original_offset: int, old_line: str, new_line: str) -> int:
    """Where the cursor should land in ``new_line``.

    Args:
        original_offset: Cursor column in ``old_line``
        old_line: Line before the toggle
        new_line: Replacement text, possibly two lines joined by ``\\n``

    Returns:
        Column in ``new_line``, never negative and never past its end
    """
    new_length = len(new_line)
    if new_length <= len(old_line):
        # Shrunk or unchanged: keep the column, capped at the new end
        return max(0, min(original_offset, new_length))

    grown_length = new_length
    if _DONE_DATE_RE.search(new_line) and grown_length - len(old_line) >= DONE_DATE_SUFFIX_LENGTH:
        grown_length -= DONE_DATE_SUFFIX_LENGTH

    delta = grown_length - len(old_line)

    if grown_length >= 2 * len(old_line) and _DUPLICATED_LINE_RE.search(new_line):
        # Recurring task: a full copy of the line was inserted before the cursor
        return _clamp(original_offset + delta, new_length)

    marker = _LIST_MARKER_RE.search(new_line)
    first_marker_index = marker.start() if marker else -1
    if original_offset < first_marker_index:
        # Cursor was in the indentation
        return _clamp(original_offset, new_length)

    return _clamp(original_offset + delta, new_length)


def _clamp(offset: int, length: int) -> int:
    return max(0, min(offset, length))
