"""The toggle command: advance a line one step along the task lifecycle.

Plain text becomes a list item, a list item becomes a checklist item, and a
checklist item or task moves to its next status. Tasks that recur turn into
two lines when completed.
"""

import logging
from datetime import date
from typing import Optional

from .config import TasksSettings
from .cursor import calculate_cursor_offset
from .parser import parse_line, scan_line
from .ports import CursorPosition, EditorPort
from .status import StatusRegistry


logger = logging.getLogger(__name__)


def toggle_line(line: str, *, registry: StatusRegistry, today: date,
                settings: Optional[TasksSettings] = None) -> str:
    """Return the replacement text for ``line`` after one toggle.

    The result is a single line, or two lines joined by ``\\n`` when a
    recurring task is completed. Never raises for arbitrary text.
    """
    task = parse_line(line, registry=registry, settings=settings)
    if task is not None:
        return "\n".join(t.to_file_line() for t in task.toggle(registry=registry, today=today))

    parts = scan_line(line)
    if parts.has_checkbox:
        # Checklist item outside the global filter: only the symbol changes
        status = registry.by_symbol(parts.status_symbol)
        index = parts.symbol_index
        return line[:index] + status.next_status_symbol + line[index + 1:]

    if parts.is_list_item:
        return line[:parts.marker_end] + " [ ]" + line[parts.marker_end:]

    indent_end = len(parts.indentation)
    return line[:indent_end] + "- " + line[indent_end:]


def toggle_done(editor: EditorPort, *, registry: StatusRegistry, today: date,
                settings: Optional[TasksSettings] = None) -> str:
    """Toggle the line under the cursor and restore the cursor sensibly.

    Returns the text written to the editor.
    """
    cursor = editor.get_cursor()
    line = editor.get_line(cursor.line)

    toggled = toggle_line(line, registry=registry, today=today, settings=settings)
    editor.set_line(cursor.line, toggled)

    new_ch = calculate_cursor_offset(cursor.ch, line, toggled)
    editor.set_cursor(CursorPosition(line=cursor.line, ch=new_ch))
    logger.debug("Toggled line %d, cursor %d -> %d", cursor.line, cursor.ch, new_ch)
    return toggled
