"""Unit tests for the event materializer."""
from datetime import date, datetime, timedelta

import pytest
from dateutil import tz as dateutil_tz

from kairos.event_materializer import materialize, materialize_all
from kairos.event_models import EventRecord, MaterializedEvent
from kairos.exceptions import UnparsableStart
from kairos.ics_generator import generate_ics
from kairos.settings_manager import MaterializationPolicy


class TestTimedEvents:
    """Test cases for timed (non all-day) records."""

    def test_default_one_hour_duration(self, utc):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00"), utc)
        assert event.start == datetime(2025, 6, 1, 9, 0, 0, tzinfo=utc)
        assert event.end == datetime(2025, 6, 1, 10, 0, 0, tzinfo=utc)
        assert event.all_day is False

    def test_explicit_end_used_directly(self, utc):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00", end="2025-06-01T11:30:00"), utc)
        assert event.end == datetime(2025, 6, 1, 11, 30, tzinfo=utc)
        assert event.duration_minutes() == 150

    def test_unparsable_end_falls_back_to_default(self, utc):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00", end="later"), utc)
        assert event.end - event.start == timedelta(hours=1)

    def test_equal_start_and_end_is_forced_forward(self, utc):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00", end="2025-06-01T09:00:00"), utc)
        assert event.end > event.start
        assert event.end - event.start == timedelta(hours=1)

    def test_inverted_interval_is_forced_forward(self, utc):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00", end="2025-06-01T08:00:00"), utc)
        assert event.end == event.start + timedelta(hours=1)

    def test_naive_values_use_reference_timezone(self, berlin):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00"), berlin)
        assert event.start.utcoffset() == timedelta(hours=2)

    def test_start_offset_is_authoritative_for_naive_end(self, berlin):
        event = materialize(
            EventRecord(title="T", start="2025-06-01T09:00:00Z", end="2025-06-01T10:30:00"),
            berlin,
        )
        assert event.start.utcoffset() == timedelta(0)
        assert event.end.utcoffset() == timedelta(0)
        assert event.end - event.start == timedelta(minutes=90)

    def test_end_offset_is_authoritative_for_naive_start(self, berlin):
        event = materialize(
            EventRecord(title="T", start="2025-06-01T09:00:00", end="2025-06-01T10:00:00-05:00"),
            berlin,
        )
        assert event.start.utcoffset() == timedelta(hours=-5)
        assert event.end - event.start == timedelta(hours=1)

    def test_date_only_start_with_all_day_false_starts_at_midnight(self, utc):
        event = materialize(EventRecord(title="T", start="2025-06-01", all_day=False), utc)
        assert event.start == datetime(2025, 6, 1, tzinfo=utc)
        assert event.end == datetime(2025, 6, 1, 1, tzinfo=utc)

    def test_optional_fields_carried_over(self, utc):
        record = EventRecord(title="T", start="2025-06-01T09:00:00", location="Hall", notes="Bring ticket")
        event = materialize(record, utc)
        assert event.location == "Hall"
        assert event.notes == "Bring ticket"


class TestAllDayEvents:
    """Test cases for all-day records."""

    def test_no_end_is_next_day_exclusive(self, utc):
        event = materialize(EventRecord(title="A", start="2025-06-01", all_day=True), utc)
        assert event.all_day is True
        assert event.start.date() == date(2025, 6, 1)
        assert event.end.date() == date(2025, 6, 2)

    def test_inclusive_end_date_becomes_exclusive(self, utc):
        event = materialize(EventRecord(title="A", start="2025-06-07", end="2025-06-08", all_day=True), utc)
        assert event.start.date() == date(2025, 6, 7)
        assert event.end.date() == date(2025, 6, 9)

    def test_time_of_day_is_dropped(self, utc):
        event = materialize(
            EventRecord(title="A", start="2025-06-01T15:45:00", end="2025-06-02T08:00:00", all_day=True),
            utc,
        )
        assert event.start == datetime(2025, 6, 1, tzinfo=utc)
        assert event.end == datetime(2025, 6, 3, tzinfo=utc)

    def test_end_before_start_uses_one_day(self, utc):
        event = materialize(EventRecord(title="A", start="2025-06-05", end="2025-06-01", all_day=True), utc)
        assert event.end.date() == date(2025, 6, 6)

    def test_unparsable_end_uses_one_day(self, utc):
        event = materialize(EventRecord(title="A", start="2025-06-01", end="sometime", all_day=True), utc)
        assert event.end.date() == date(2025, 6, 2)

    def test_midnights_in_reference_timezone(self, berlin):
        event = materialize(EventRecord(title="A", start="2025-06-01", all_day=True), berlin)
        assert (event.start.hour, event.start.minute) == (0, 0)
        assert event.start.tzinfo is berlin


class TestPolicy:
    """Test cases for configurable durations."""

    def test_custom_timed_duration(self, utc):
        policy = MaterializationPolicy(timed_default_duration=timedelta(minutes=30))
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00"), utc, policy)
        assert event.end == datetime(2025, 6, 1, 9, 30, tzinfo=utc)

    def test_custom_all_day_duration(self, utc):
        policy = MaterializationPolicy(all_day_default_duration=timedelta(days=2))
        event = materialize(EventRecord(title="A", start="2025-06-01", all_day=True), utc, policy)
        assert event.end.date() == date(2025, 6, 3)

    def test_inclusive_end_convention(self, utc):
        policy = MaterializationPolicy(all_day_end_exclusive=False)
        event = materialize(EventRecord(title="A", start="2025-06-01", end="2025-06-03", all_day=True), utc, policy)
        assert event.end.date() == date(2025, 6, 3)

    def test_lenient_parsing(self, utc):
        policy = MaterializationPolicy(lenient_parsing=True)
        event = materialize(EventRecord(title="T", start="June 1, 2025 7:00 PM"), utc, policy)
        assert event.start == datetime(2025, 6, 1, 19, 0, tzinfo=utc)


class TestErrors:
    """Test cases for materialization failures."""

    def test_unparsable_start_raises(self, utc):
        with pytest.raises(UnparsableStart) as exc_info:
            materialize(EventRecord(title="T", start="next Tuesday"), utc)
        assert exc_info.value.raw_value == "next Tuesday"

    def test_materialize_all_drops_unparsable(self, utc):
        records = [
            EventRecord(title="A", start="2025-06-01T09:00:00"),
            EventRecord(title="B", start="soon"),
            EventRecord(title="C", start="2025-06-03", all_day=True),
        ]
        events, dropped = materialize_all(records, utc)
        assert [e.title for e in events] == ["A", "C"]
        assert len(dropped) == 1
        assert dropped[0][0] == 1
        assert isinstance(dropped[0][1], UnparsableStart)

    def test_defaults_to_system_timezone(self):
        event = materialize(EventRecord(title="T", start="2025-06-01T09:00:00"))
        assert event.start.tzinfo is not None


@pytest.fixture
def new_york():
    return dateutil_tz.gettz("America/New_York")


class TestDaylightSavingTransitions:
    """Test cases for events crossing America/New_York DST changes."""

    def test_spring_forward_end_in_gap_is_after_start(self, new_york, utc):
        event = materialize(EventRecord(title="T", start="2025-03-09T01:30:00", end="2025-03-09T02:30:00"), new_york)
        assert event.start.astimezone(utc) == datetime(2025, 3, 9, 6, 30, tzinfo=utc)
        assert event.end.astimezone(utc) == datetime(2025, 3, 9, 7, 30, tzinfo=utc)
        assert event.end.timestamp() > event.start.timestamp()

    def test_spring_forward_start_in_gap_moves_forward(self, new_york, utc):
        event = materialize(EventRecord(title="T", start="2025-03-09T02:30:00"), new_york)
        assert event.start.astimezone(utc) == datetime(2025, 3, 9, 7, 30, tzinfo=utc)
        assert event.end.timestamp() - event.start.timestamp() == 3600

    def test_fall_back_default_duration_is_one_real_hour(self, new_york, utc):
        event = materialize(EventRecord(title="T", start="2025-11-02T01:30:00"), new_york)
        assert event.start.astimezone(utc) == datetime(2025, 11, 2, 5, 30, tzinfo=utc)
        assert event.end.astimezone(utc) == datetime(2025, 11, 2, 6, 30, tzinfo=utc)
        assert event.duration_minutes() == 60

    def test_fall_back_ics_times(self, new_york):
        event = materialize(EventRecord(title="T", start="2025-11-02T01:30:00"), new_york)
        content = generate_ics(event)
        assert "DTSTART:20251102T053000Z" in content
        assert "DTEND:20251102T063000Z" in content

    def test_event_compares_instants_not_wall_clock(self, new_york):
        start = datetime(2025, 11, 2, 1, 30, tzinfo=new_york)
        end = datetime(2025, 11, 2, 1, 30, fold=1, tzinfo=new_york)
        event = MaterializedEvent(title="T", start=start, end=end)
        assert event.duration_minutes() == 60
        with pytest.raises(ValueError):
            MaterializedEvent(title="T", start=end, end=start)
