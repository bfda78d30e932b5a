"""Whole-document helpers: batch parsing and in-place task replacement.

Documents are plain markdown text. Reading and writing files is the
caller's job; these functions only transform strings.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from .config import TasksSettings
from .parser import LineKind, classify_line, parse_line
from .status import StatusRegistry
from .task import Task
from .utils.dates import date_from_path


logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r"^#{1,6}\s+(?P<title>.*?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")


class TaskNotFoundError(LookupError):
    """Raised when a task can no longer be located in its document."""


@dataclass(frozen=True)
class DocumentLine:
    """A line of a document together with its section bookkeeping."""
    number: int
    text: str
    section_start: int
    heading: Optional[str]
    in_code: bool


def _newline_for(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def iter_document_lines(text: str) -> Iterator[DocumentLine]:
    """Yield every line with the section it belongs to.

    Front matter and fenced code blocks are flagged ``in_code`` so callers can
    skip them.
    """
    lines = text.split(_newline_for(text))
    section_start = 0
    heading: Optional[str] = None
    in_fence = False
    in_front_matter = bool(lines) and lines[0].strip() == "---"

    for number, line in enumerate(lines):
        if in_front_matter:
            if number > 0 and line.strip() in ("---", "..."):
                in_front_matter = False
            yield DocumentLine(number, line, section_start, heading, True)
            continue

        if FENCE_RE.match(line):
            in_fence = not in_fence
            yield DocumentLine(number, line, section_start, heading, True)
            continue

        if not in_fence:
            match = HEADING_RE.match(line)
            if match:
                section_start = number
                heading = match.group("title")

        yield DocumentLine(number, line, section_start, heading, in_fence)


def parse_document(text: str, path: str, *, registry: StatusRegistry,
                   settings: Optional[TasksSettings] = None) -> List[Task]:
    """Parse every task line of a document, in document order.

    Tasks are numbered from 0 within each section; a section starts at a
    heading (or at line 0 before the first heading).
    """
    settings = settings or TasksSettings()
    fallback_date = date_from_path(path) if settings.use_filename_as_scheduled_date else None

    tasks: List[Task] = []
    current_section = -1
    section_index = 0
    for doc_line in iter_document_lines(text):
        if doc_line.in_code:
            continue
        if doc_line.section_start != current_section:
            current_section = doc_line.section_start
            section_index = 0

        task = parse_line(
            doc_line.text,
            registry=registry,
            settings=settings,
            path=path,
            section_start=doc_line.section_start,
            section_index=section_index,
            preceding_header=doc_line.heading,
            fallback_date=fallback_date,
        )
        if task is not None:
            tasks.append(task)
            section_index += 1

    logger.debug("Parsed %d tasks from %s", len(tasks), path)
    return tasks


def _locate(text: str, original: Task, settings: Optional[TasksSettings]) -> int:
    settings = settings or TasksSettings()
    section_index = 0
    current_section = -1
    by_position: Optional[DocumentLine] = None
    exact_matches: List[int] = []

    for doc_line in iter_document_lines(text):
        if doc_line.in_code:
            continue
        if doc_line.text == original.original_markdown:
            exact_matches.append(doc_line.number)
        if doc_line.section_start != current_section:
            current_section = doc_line.section_start
            section_index = 0
        if classify_line(doc_line.text, settings) != LineKind.TASK:
            continue
        if doc_line.section_start == original.section_start and section_index == original.section_index:
            by_position = doc_line
        section_index += 1

    if by_position is not None and by_position.text == original.original_markdown:
        return by_position.number
    if len(exact_matches) == 1:
        logger.debug("Task moved, found it by its text at line %d", exact_matches[0])
        return exact_matches[0]
    raise TaskNotFoundError(f"Could not find task {original.original_markdown!r} in {original.path or 'document'}")


def replace_task_lines(text: str, original: Task, replacements: Sequence[Task],
                       settings: Optional[TasksSettings] = None) -> str:
    """Replace ``original`` in ``text`` with the lines of ``replacements``.

    The task is located by its section and index, and its line must still
    read ``original.original_markdown``. If it moved, a unique line with the
    same text is accepted instead.

    Raises:
        TaskNotFoundError: If the task cannot be located unambiguously
    """
    newline = _newline_for(text)
    line_number = _locate(text, original, settings)
    lines = text.split(newline)
    lines[line_number:line_number + 1] = [task.to_file_line() for task in replacements]
    return newline.join(lines)
