"""Shared fixtures for Kairos tests."""
import os

import pytest
from dateutil import tz as dateutil_tz

os.environ["KAIROS_LOG_FILE"] = "0"

from kairos.calendar_connector import CalendarStore  # noqa: E402
from kairos.exceptions import StoreWriteError  # noqa: E402


class RecordingStore(CalendarStore):
    """In-memory store that records writes and fails on chosen indexes."""

    def __init__(self, fail_at=(), grant=True):
        self.fail_at = set(fail_at)
        self.grant = grant
        self.access_requests = 0
        self.attempts = []
        self.written = []

    def request_access(self):
        self.access_requests += 1
        return self.grant

    def write(self, event, calendar=None):
        index = len(self.attempts)
        self.attempts.append((event, calendar))
        if index in self.fail_at:
            raise StoreWriteError(f"write {index} failed")
        self.written.append(event)


@pytest.fixture
def utc():
    return dateutil_tz.tzutc()


@pytest.fixture
def berlin():
    return dateutil_tz.gettz("Europe/Berlin")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep tests away from the real settings file."""
    monkeypatch.setenv("KAIROS_SETTINGS_FILE", str(tmp_path / "settings.json"))
    monkeypatch.delenv("USE_STUB", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def fenced_response():
    return (
        "Sure! Here are the events:\n"
        "```json\n"
        "[\n"
        '  {"title": "Jazz Night", "location": "Blue Note", '
        '"start_datetime": "2025-06-01T20:00:00", "end_datetime": "2025-06-01T23:00:00"},\n'
        '  {"title": "Street Fair", "start_date": "2025-06-07", "end_date": "2025-06-08"}\n'
        "]\n"
        "```\n"
        "Let me know if you need anything else."
    )


@pytest.fixture
def make_store():
    """Factory for RecordingStore instances."""
    return RecordingStore
