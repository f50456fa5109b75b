"""
Date parsing shared by the matching, sequencing and anomaly engines.

Recognized documents carry free-form date strings. Only three layouts are
accepted; anything else is treated as unparseable and yields ``None``.
"""

import re
from datetime import date
from typing import Optional

_MONTH_DAY = re.compile(r'^(\d{1,2})/(\d{1,2})$')
_ISO_DASH = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
_ISO_SLASH = re.compile(r'^(\d{4})/(\d{1,2})/(\d{1,2})$')


def parse_document_date(value: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """
    Parse a recognized date string.

    Args:
        value: Date text in ``MM/DD``, ``YYYY-MM-DD`` or ``YYYY/MM/DD`` form
        today: Reference date whose year completes ``MM/DD`` values.
            Defaults to the current date.

    Returns:
        The parsed date, or None if the text is empty, in another layout,
        or names a day that does not exist.
    """
    if not value:
        return None

    text = str(value).strip()

    match = _MONTH_DAY.match(text)
    if match:
        year = (today or date.today()).year
        month, day = int(match.group(1)), int(match.group(2))
    else:
        match = _ISO_DASH.match(text) or _ISO_SLASH.match(text)
        if not match:
            return None
        year, month, day = (int(g) for g in match.groups())

    try:
        return date(year, month, day)
    except ValueError:
        return None


def days_between(first: date, second: date) -> int:
    """Absolute number of days between two dates."""
    return abs((second - first).days)


def format_month_day(value: date) -> str:
    return f"{value.month}/{value.day}"
