"""
Event materializer for converting EventRecord to MaterializedEvent.
Resolves raw start/end strings into timezone-aware datetimes and applies the
default-duration and all-day policies.
"""

from dataclasses import replace
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional, Tuple

from dateutil import tz as dateutil_tz

from kairos.datetime_normalizer import normalize
from kairos.event_models import CanonicalInstant, EventRecord, MaterializedEvent
from kairos.exceptions import UnparsableStart
from kairos.logging_helper import Log
from kairos.settings_manager import MaterializationPolicy

DEFAULT_POLICY = MaterializationPolicy()
UTC = dateutil_tz.tzutc()


def _midnight(day: date, reference_tz: tzinfo) -> datetime:
    return dateutil_tz.resolve_imaginary(datetime(day.year, day.month, day.day, tzinfo=reference_tz))


def _add_elapsed(start_dt: datetime, duration: timedelta) -> datetime:
    # Elapsed time, not wall-clock time, across DST transitions
    end_utc = start_dt.astimezone(UTC) + duration
    return end_utc.astimezone(start_dt.tzinfo)


def _all_day_bounds(
    start: CanonicalInstant,
    end: Optional[CanonicalInstant],
    reference_tz: tzinfo,
    policy: MaterializationPolicy,
) -> Tuple[datetime, datetime]:
    start_date = start.to_date()
    if end is not None:
        end_date = end.to_date()
        if policy.all_day_end_exclusive:
            # Calendars store the day after the last inclusive day
            end_date += timedelta(days=1)
    else:
        end_date = start_date + policy.all_day_default_duration

    if end_date <= start_date:
        Log.warn(f"All-day end {end_date} is not after start {start_date}, using default duration")
        end_date = start_date + policy.all_day_default_duration

    return _midnight(start_date, reference_tz), _midnight(end_date, reference_tz)


def _timed_bounds(
    start: CanonicalInstant,
    end: Optional[CanonicalInstant],
    reference_tz: tzinfo,
    policy: MaterializationPolicy,
) -> Tuple[datetime, datetime]:
    # An explicit offset on one side applies to the other side as well
    if end is not None:
        if start.timezone is not None and end.timezone is None:
            end = replace(end, timezone=start.timezone)
        elif end.timezone is not None and start.timezone is None:
            start = replace(start, timezone=end.timezone)

    # Local times skipped by a DST gap move forward to the first valid time
    start_dt = dateutil_tz.resolve_imaginary(start.to_datetime(reference_tz))
    if end is None:
        return start_dt, _add_elapsed(start_dt, policy.timed_default_duration)

    end_dt = dateutil_tz.resolve_imaginary(end.to_datetime(reference_tz))
    if end_dt.astimezone(UTC) <= start_dt.astimezone(UTC):
        Log.warn(f"End {end_dt.isoformat()} is not after start {start_dt.isoformat()}, using default duration")
        end_dt = _add_elapsed(start_dt, policy.timed_default_duration)
    return start_dt, end_dt


def materialize(
    record: EventRecord,
    reference_tz: Optional[tzinfo] = None,
    policy: Optional[MaterializationPolicy] = None,
) -> MaterializedEvent:
    """
    Materialize an EventRecord into concrete start/end instants.

    Args:
        record: Decoded event record
        reference_tz: Timezone for values without an explicit offset (default: system timezone)
        policy: Duration/all-day policy (default: 1 hour timed, 1 day all-day, exclusive end)

    Returns:
        MaterializedEvent with end strictly after start

    Raises:
        UnparsableStart: if record.start matches no supported format
    """
    reference_tz = reference_tz or dateutil_tz.tzlocal()
    policy = policy or DEFAULT_POLICY

    start = normalize(record.start, lenient=policy.lenient_parsing)
    if start is None:
        Log.warn(f"Failed to parse start '{record.start}' for event '{record.title}'")
        Log.kv({"stage": "materialize", "result": "failed", "reason": "unparsable_start", "title": record.title})
        raise UnparsableStart(record.start)

    end = normalize(record.end, lenient=policy.lenient_parsing) if record.end else None
    if record.end and end is None:
        Log.warn(f"Ignoring unparsable end '{record.end}' for event '{record.title}'")

    if record.all_day:
        start_dt, end_dt = _all_day_bounds(start, end, reference_tz, policy)
    else:
        start_dt, end_dt = _timed_bounds(start, end, reference_tz, policy)

    event = MaterializedEvent(
        title=record.title,
        start=start_dt,
        end=end_dt,
        all_day=record.all_day,
        location=record.location,
        notes=record.notes,
    )
    Log.kv({
        "stage": "materialize",
        "result": "success",
        "title": event.title,
        "start": event.start.isoformat(),
        "end": event.end.isoformat(),
        "all_day": event.all_day,
        "duration_min": event.duration_minutes(),
    })
    return event


def materialize_all(
    records: Iterable[EventRecord],
    reference_tz: Optional[tzinfo] = None,
    policy: Optional[MaterializationPolicy] = None,
) -> Tuple[List[MaterializedEvent], List[Tuple[int, UnparsableStart]]]:
    """
    Materialize a sequence of records, dropping those with an unusable start.

    Returns:
        (materialized events in input order, [(index, error)] for dropped records)
    """
    events = []
    dropped = []
    for index, record in enumerate(records):
        try:
            events.append(materialize(record, reference_tz, policy))
        except UnparsableStart as e:
            dropped.append((index, e))
    return events, dropped
