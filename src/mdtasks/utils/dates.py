"""Date utilities shared by the task grammar and the query engine.

All task dates are calendar dates (``datetime.date``); there is no time of day
and no timezone in the line format. The functions here never read the system
clock, the caller always supplies ``today``.
"""

import re
from datetime import date, datetime
from pathlib import PurePosixPath
from typing import Optional


DATE_FORMAT = "%Y-%m-%d"

_DASHED_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_COMPACT_DATE_RE = re.compile(r"(?<!\d)(\d{4})(\d{2})(\d{2})(?!\d)")


def parse_iso_date(date_str: str) -> Optional[date]:
    """Parse a strict ``YYYY-MM-DD`` string.

    Args:
        date_str: Date text, surrounding whitespace is ignored

    Returns:
        The date, or None if the text is not a valid calendar date
    """
    try:
        return datetime.strptime(date_str.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def format_date(value: Optional[date]) -> str:
    """Format a date the way it is written in task lines (empty for None)."""
    if value is None:
        return ""
    return value.strftime(DATE_FORMAT)


def _date_from_match(match: Optional[re.Match]) -> Optional[date]:
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def date_from_name(name: str) -> Optional[date]:
    """Extract a date from a single path component.

    ``2024-01-15``, ``2024-01-15 Daily`` and ``20240115`` all yield
    2024-01-15. The dashed form wins when both are present.
    """
    found = _date_from_match(_DASHED_DATE_RE.search(name))
    if found is not None:
        return found
    return _date_from_match(_COMPACT_DATE_RE.search(name))


def date_from_path(path: str) -> Optional[date]:
    """Infer a date from a document path.

    The file name is tried first, then the enclosing folders from the
    innermost outwards.

    Args:
        path: Vault-relative document path, ``/`` separated

    Returns:
        The inferred date, or None when no component looks like a date
    """
    if not path:
        return None

    pure = PurePosixPath(path)
    found = date_from_name(pure.stem)
    if found is not None:
        return found

    for folder in reversed(pure.parent.parts):
        found = date_from_name(folder)
        if found is not None:
            return found

    return None
