"""
Event decoder for turning the extracted JSON payload into EventRecords.

The model has been observed using two naming schemes for the temporal fields:

- start_datetime / end_datetime: full timestamps
- start_date / end_date: dates, optionally paired with start_time / end_time

Both are folded into EventRecord.start / EventRecord.end. The scheme only
matters for the all-day default: an event that only used date fields and
did not say otherwise is an all-day event.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from kairos.event_models import EventRecord
from kairos.exceptions import (
    DecodeError,
    InvalidEventRecord,
    JsonSyntaxError,
    MissingStart,
    MissingTitle,
    NoEventsFound,
)
from kairos.logging_helper import Log

_TIME_OF_DAY_RE = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one element of the payload array."""
    index: int
    record: Optional[EventRecord] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


def _optional_text(item: dict, *keys: str) -> Optional[str]:
    """Return the first non-empty string value among keys, stripped."""
    for key in keys:
        value = item.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidEventRecord(f"Field '{key}' must be a string, got {type(value).__name__}")
        value = value.strip()
        if value:
            return value
    return None


def _combine_date_and_time(date_value: str, time_value: Optional[str]) -> Tuple[str, bool]:
    """
    Join a YYYY-MM-DD date with an HH:MM[:SS] time.

    Returns:
        (temporal string, whether a time of day was attached)
    """
    if time_value and _TIME_OF_DAY_RE.match(time_value):
        hours, rest = time_value.split(":", 1)
        return f"{date_value}T{int(hours):02d}:{rest}", True
    if time_value:
        Log.warn(f"Ignoring unrecognized time of day '{time_value}'")
    return date_value, False


def _resolve_temporal(item: dict, prefix: str) -> Tuple[Optional[str], bool]:
    """
    Look up {prefix}_datetime, then {prefix}_date (+ {prefix}_time).

    Returns:
        (raw temporal string or None, whether it carries timestamp semantics)
    """
    datetime_value = _optional_text(item, f"{prefix}_datetime")
    if datetime_value is not None:
        return datetime_value, True

    date_value = _optional_text(item, f"{prefix}_date")
    if date_value is None:
        return None, False
    return _combine_date_and_time(date_value, _optional_text(item, f"{prefix}_time"))


def decode_item(item: Any) -> EventRecord:
    """
    Decode a single JSON element.

    Raises:
        MissingTitle, MissingStart, InvalidEventRecord
    """
    if not isinstance(item, dict):
        raise InvalidEventRecord(f"Expected a JSON object, got {type(item).__name__}")

    title_value = item.get("title")
    if not isinstance(title_value, str) or not title_value.strip():
        raise MissingTitle("Event is missing a title")

    start, start_timed = _resolve_temporal(item, "start")
    if start is None:
        raise MissingStart(f"Event '{title_value.strip()}' has no start date")
    end, end_timed = _resolve_temporal(item, "end")

    all_day_value = item.get("all_day", item.get("allDay"))
    if isinstance(all_day_value, bool):
        all_day = all_day_value
    else:
        if all_day_value is not None:
            Log.warn(f"Ignoring non-boolean all_day value: {all_day_value!r}")
        all_day = not start_timed and not end_timed

    return EventRecord(
        title=title_value.strip(),
        start=start,
        end=end,
        location=_optional_text(item, "location"),
        notes=_optional_text(item, "notes", "description"),
        all_day=all_day,
    )


def decode(json_array_text: str) -> List[DecodeResult]:
    """
    Decode array-shaped JSON text into per-element results.

    Args:
        json_array_text: Output of payload_extractor.extract

    Returns:
        One DecodeResult per array element, in order

    Raises:
        JsonSyntaxError: if the text is not valid JSON or not a JSON array
    """
    try:
        data = json.loads(json_array_text)
    except (json.JSONDecodeError, RecursionError) as e:
        Log.warn(f"Could not parse JSON payload: {e}")
        Log.kv({"stage": "decode", "result": "failed", "reason": "json_parse_error", "error": str(e)})
        raise JsonSyntaxError(str(e)) from e

    if not isinstance(data, list):
        Log.kv({"stage": "decode", "result": "failed", "reason": "not_an_array"})
        raise JsonSyntaxError(f"Expected a JSON array, got {type(data).__name__}")

    results = []
    for index, item in enumerate(data):
        try:
            results.append(DecodeResult(index=index, record=decode_item(item)))
        except DecodeError as e:
            Log.warn(f"Skipping event {index}: {e}")
            results.append(DecodeResult(index=index, error=e))

    decoded = sum(1 for r in results if r.ok)
    Log.kv({
        "stage": "decode",
        "result": "success" if decoded else "no_events",
        "elements": len(results),
        "decoded": decoded,
    })
    return results


def decode_records(json_array_text: str) -> List[EventRecord]:
    """
    Decode and keep only the valid records.

    Raises:
        JsonSyntaxError: if the payload is not a valid JSON array
        NoEventsFound: if no element decoded successfully
    """
    records = [r.record for r in decode(json_array_text) if r.ok]
    if not records:
        raise NoEventsFound()
    return records
