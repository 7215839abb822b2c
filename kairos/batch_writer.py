"""
Batch writer for adding several events to a calendar store.

Writes are attempted one after another and every item is attempted: a failed
write is recorded with its index and the loop moves on.
"""

from typing import Optional, Sequence

from kairos.calendar_connector import CalendarStore
from kairos.event_models import BatchOutcome, BatchStatus, MaterializedEvent
from kairos.exceptions import CalendarAccessDenied, StoreWriteError
from kairos.logging_helper import Log


def write_all(
    events: Sequence[MaterializedEvent],
    store: CalendarStore,
    calendar: Optional[str] = None,
) -> BatchOutcome:
    """
    Write every event to the store, best effort.

    Args:
        events: Events to write, in order
        store: Calendar store handle
        calendar: Target calendar, or None for the default calendar

    Returns:
        BatchOutcome with counts and (index, error) for each failed item
    """
    Log.section("Batch Writer")
    Log.info(f"Writing {len(events)} event(s) to calendar")

    if not store.request_access():
        Log.error("Calendar access denied - no events written")
        failures = tuple((index, CalendarAccessDenied()) for index in range(len(events)))
        outcome = BatchOutcome(success_count=0, failure_count=len(failures), failures=failures)
        Log.kv({"stage": "batch", "result": "access_denied", "failed": outcome.failure_count})
        return outcome

    success_count = 0
    failures = []
    for index, event in enumerate(events):
        try:
            store.write(event, calendar)
            success_count += 1
        except Exception as e:
            error = e if isinstance(e, StoreWriteError) else StoreWriteError(str(e))
            if error is not e:
                error.__cause__ = e
            Log.warn(f"Failed to write event {index} ('{event.title}'): {e}")
            failures.append((index, error))

    outcome = BatchOutcome(
        success_count=success_count,
        failure_count=len(failures),
        failures=tuple(failures),
    )
    Log.kv({
        "stage": "batch",
        "result": outcome.status.value,
        "succeeded": outcome.success_count,
        "failed": outcome.failure_count,
    })
    return outcome


def outcome_message(outcome: BatchOutcome) -> str:
    """User-facing summary of a batch outcome."""
    if outcome.total == 0:
        return "No events to add"
    if outcome.status is BatchStatus.ALL_SUCCEEDED:
        if outcome.success_count == 1:
            return "Event successfully added to your calendar!"
        return f"All {outcome.success_count} events added to your calendar!"
    if outcome.status is BatchStatus.PARTIAL:
        return (f"Added {outcome.success_count} event(s), "
                f"failed to add {outcome.failure_count} event(s)")
    return "Failed to add events to calendar"
