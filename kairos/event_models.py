"""
Event data models for calendar event extraction.
Defines EventRecord (decoded from the model response), CanonicalInstant
(normalized date/time), MaterializedEvent (ready for export or storage)
and BatchOutcome (result of a calendar write batch).
"""

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class EventRecord:
    """
    Event decoded from the model's JSON payload.
    Dates are still raw strings; they are only validated at materialization.
    """
    title: str
    start: str
    end: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    all_day: bool = False


@dataclass(frozen=True)
class CanonicalInstant:
    """
    Decomposed calendar value produced by the datetime normalizer.

    hour/minute/second are either all set or all None (date-only).
    timezone is only set when the source text carried an explicit offset.
    """
    year: int
    month: int
    day: int
    hour: Optional[int] = None
    minute: Optional[int] = None
    second: Optional[int] = None
    timezone: Optional[tzinfo] = None

    def __post_init__(self):
        if self.hour is not None and (self.minute is None or self.second is None):
            raise ValueError("minute and second are required when hour is set")
        if self.hour is None and (self.minute is not None or self.second is not None):
            raise ValueError("minute/second given without hour")

    @property
    def is_date_only(self) -> bool:
        return self.hour is None

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    def to_datetime(self, reference_tz: tzinfo) -> datetime:
        """
        Project to an absolute, timezone-aware instant.

        Args:
            reference_tz: Timezone used when the value carries no offset of its own

        Returns:
            Aware datetime (midnight for date-only values)
        """
        tz = self.timezone if self.timezone is not None else reference_tz
        if self.is_date_only:
            return datetime(self.year, self.month, self.day, tzinfo=tz)
        return datetime(
            self.year, self.month, self.day,
            self.hour, self.minute, self.second,
            tzinfo=tz,
        )


@dataclass(frozen=True)
class MaterializedEvent:
    """
    Fully resolved calendar event. end is always strictly after start.
    For all-day events both instants are midnights and end is exclusive.
    """
    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    location: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        # Compare instants; same-tzinfo datetimes otherwise compare by wall clock
        if self.end.timestamp() <= self.start.timestamp():
            raise ValueError(f"end ({self.end}) must be after start ({self.start})")

    def duration_minutes(self) -> int:
        """Get event duration in minutes."""
        return int((self.end.timestamp() - self.start.timestamp()) / 60)


class BatchStatus(Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL = "partial"
    ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class BatchOutcome:
    """Aggregate result of writing a batch of events to a calendar store."""
    success_count: int
    failure_count: int
    failures: Tuple[Tuple[int, Exception], ...] = ()

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def status(self) -> BatchStatus:
        if self.failure_count == 0:
            return BatchStatus.ALL_SUCCEEDED
        if self.success_count > 0:
            return BatchStatus.PARTIAL
        return BatchStatus.ALL_FAILED
