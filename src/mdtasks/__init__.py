"""mdtasks - tasks embedded in markdown documents.

Parse task lines, toggle them through their status cycle (including
recurring tasks) and query collections of tasks.
"""

__version__ = "0.1.0"

from .config import ConfigError, TasksSettings, load_settings, save_settings
from .document import TaskNotFoundError, parse_document, replace_task_lines
from .parser import LineKind, classify_line, parse_line, scan_line
from .query_engine import Query, QueryError, parse_query
from .recurrence import Recurrence, RecurrenceParseError
from .status import Status, StatusRegistry, StatusType
from .task import Priority, Task
from .toggle import toggle_done, toggle_line

__all__ = [
    "ConfigError",
    "LineKind",
    "Priority",
    "Query",
    "QueryError",
    "Recurrence",
    "RecurrenceParseError",
    "Status",
    "StatusRegistry",
    "StatusType",
    "Task",
    "TaskNotFoundError",
    "TasksSettings",
    "classify_line",
    "load_settings",
    "parse_document",
    "parse_line",
    "parse_query",
    "replace_task_lines",
    "save_settings",
    "scan_line",
    "toggle_done",
    "toggle_line",
]
