"""
Datetime normalizer for converting raw model date/time strings to CanonicalInstant.

Candidate formats are tried in order and the first match wins. The order
matters because some formats are prefixes of others:

1. local date-time with seconds, no offset ("2025-06-01T09:30:00", "2025-06-01 09:30:00")
2. date only ("2025-06-01")
3. ISO-8601 date-time without offset ("2025-06-01T09:30", "2025-06-01T09:30:00.5")
4. ISO-8601 date-time with offset ("2025-06-01T09:30:00Z", "2025-06-01T09:30+02:00")

An optional lenient fallback hands anything else to dateutil's free-form parser.
"""

import re
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from dateutil import parser as dateutil_parser

from kairos.event_models import CanonicalInstant
from kairos.logging_helper import Log

_DATE = r"\d{4}-\d{2}-\d{2}"
_ISO_TIME = r"\d{2}:\d{2}(?::\d{2}(?:[.,]\d+)?)?"
_OFFSET = r"(?:Z|[+-]\d{2}(?::?\d{2})?)"

_LOCAL_DATETIME_RE = re.compile(rf"^({_DATE})([T ])(\d{{2}}:\d{{2}}:\d{{2}})$")
_DATE_ONLY_RE = re.compile(rf"^{_DATE}$")
_ISO_NAIVE_RE = re.compile(rf"^{_DATE}[T ]{_ISO_TIME}$")
_ISO_OFFSET_RE = re.compile(rf"^{_DATE}[T ]{_ISO_TIME}{_OFFSET}$")


def _from_datetime(dt: datetime, with_timezone: bool = False) -> CanonicalInstant:
    return CanonicalInstant(
        year=dt.year,
        month=dt.month,
        day=dt.day,
        hour=dt.hour,
        minute=dt.minute,
        second=dt.second,
        timezone=dt.tzinfo if with_timezone else None,
    )


def _parse_local_datetime(text: str) -> Optional[CanonicalInstant]:
    match = _LOCAL_DATETIME_RE.match(text)
    if not match:
        return None
    fmt = f"%Y-%m-%d{match.group(2)}%H:%M:%S"
    return _from_datetime(datetime.strptime(text, fmt))


def _parse_date_only(text: str) -> Optional[CanonicalInstant]:
    if not _DATE_ONLY_RE.match(text):
        return None
    d = datetime.strptime(text, "%Y-%m-%d")
    return CanonicalInstant(year=d.year, month=d.month, day=d.day)


def _parse_iso_naive(text: str) -> Optional[CanonicalInstant]:
    if not _ISO_NAIVE_RE.match(text):
        return None
    return _from_datetime(dateutil_parser.isoparse(text))


def _parse_iso_offset(text: str) -> Optional[CanonicalInstant]:
    if not _ISO_OFFSET_RE.match(text):
        return None
    return _from_datetime(dateutil_parser.isoparse(text), with_timezone=True)


_CANDIDATES: List[Tuple[str, Callable[[str], Optional[CanonicalInstant]]]] = [
    ("local_datetime", _parse_local_datetime),
    ("date_only", _parse_date_only),
    ("iso_naive", _parse_iso_naive),
    ("iso_offset", _parse_iso_offset),
]


def _parse_lenient(text: str) -> Optional[CanonicalInstant]:
    """
    Free-form fallback using dateutil (e.g. "June 1, 2025 7pm").

    Missing date parts default to today. The text is parsed against two
    defaults that differ only in hour; if the results disagree the text had
    no time token and the value is date-only.
    """
    today = datetime.now()
    default_a = datetime(today.year, today.month, today.day, 0, 0, 0)
    default_b = default_a.replace(hour=1)
    parsed_a = dateutil_parser.parse(text, default=default_a)
    parsed_b = dateutil_parser.parse(text, default=default_b)
    if parsed_a.hour != parsed_b.hour:
        return CanonicalInstant(year=parsed_a.year, month=parsed_a.month, day=parsed_a.day)
    return _from_datetime(parsed_a, with_timezone=parsed_a.tzinfo is not None)


def normalize(text: Optional[str], lenient: bool = False) -> Optional[CanonicalInstant]:
    """
    Normalize a raw date/time string.

    Args:
        text: Raw temporal string from the model
        lenient: Also try dateutil's free-form parser when no strict format matches

    Returns:
        CanonicalInstant, or None if nothing matched (not an error at this layer)
    """
    if text is None:
        return None
    value = text.strip()
    if not value:
        return None

    for name, candidate in _CANDIDATES:
        try:
            instant = candidate(value)
        except (ValueError, OverflowError) as e:
            # Right shape, impossible calendar value (e.g. 2025-02-30)
            Log.warn(f"Date '{value}' matched {name} but is invalid: {e}")
            return None
        if instant is not None:
            return instant

    if lenient:
        try:
            instant = _parse_lenient(value)
        except (ValueError, OverflowError) as e:
            Log.warn(f"Date parsing error: {e}")
            return None
        Log.info(f"Parsed '{value}' with lenient parser")
        return instant

    return None
