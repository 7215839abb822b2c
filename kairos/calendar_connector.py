"""
Calendar Connector for writing events to a calendar store.
Supports a directory of ICS files (portable) and Apple Calendar via EventKit (macOS).
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from kairos.event_models import MaterializedEvent
from kairos.exceptions import ConfigurationError, StoreWriteError
from kairos.ics_generator import save_ics
from kairos.logging_helper import Log
from kairos.settings_manager import DEFAULT_SETTINGS, SettingsSchema, get_calendar_store_name

# Try to import EventKit
try:
    from EventKit import EKEventStore, EKEvent  # type: ignore
    from Foundation import NSDate  # type: ignore
    EVENTKIT_AVAILABLE = True
except ImportError:
    EVENTKIT_AVAILABLE = False

EK_ENTITY_TYPE_EVENT = 0
EK_SPAN_THIS_EVENT = 0
ACCESS_TIMEOUT_SECONDS = 30.0


class CalendarStore(ABC):
    """Narrow write contract for a host calendar."""

    @abstractmethod
    def request_access(self) -> bool:
        """Ask for write access. Must return True before write() is called."""

    @abstractmethod
    def write(self, event: MaterializedEvent, calendar: Optional[str] = None) -> None:
        """
        Write one event.

        Args:
            event: Event to store
            calendar: Target calendar name, or None for the default calendar

        Raises:
            StoreWriteError: if the event could not be stored
        """


class IcsDirectoryStore(CalendarStore):
    """
    Writes each event as its own .ics file.
    The calendar argument selects a subdirectory.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()

    def request_access(self) -> bool:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            Log.warn(f"Cannot create ICS output directory {self.directory}: {e}")
            return False
        return True

    def write(self, event: MaterializedEvent, calendar: Optional[str] = None) -> None:
        target = self.directory / calendar if calendar else self.directory
        try:
            save_ics(event, target)
        except OSError as e:
            raise StoreWriteError(f"Failed to write ICS file for '{event.title}': {e}") from e


class EventKitCalendarStore(CalendarStore):
    """
    Apple Calendar store through EventKit (pyobjc).
    Events go to the store's default calendar for new events unless a
    calendar title is given.
    """

    def __init__(self):
        if not EVENTKIT_AVAILABLE:
            raise ConfigurationError("EventKit is not available on this system")
        self.event_store = EKEventStore.alloc().init()

    def request_access(self) -> bool:
        granted_event = threading.Event()
        result = {"granted": False, "error": None}

        def access_callback(granted, error):
            result["granted"] = bool(granted)
            result["error"] = error
            granted_event.set()

        if hasattr(self.event_store, "requestFullAccessToEventsWithCompletion_"):
            self.event_store.requestFullAccessToEventsWithCompletion_(access_callback)
        else:
            self.event_store.requestAccessToEntityType_completion_(EK_ENTITY_TYPE_EVENT, access_callback)

        if not granted_event.wait(ACCESS_TIMEOUT_SECONDS):
            Log.warn("Timed out waiting for calendar access")
            return False
        if result["error"] is not None:
            Log.warn(f"Calendar access error: {result['error']}")
        return result["granted"]

    def _resolve_calendar(self, calendar: Optional[str]):
        if calendar:
            for candidate in self.event_store.calendarsForEntityType_(EK_ENTITY_TYPE_EVENT) or []:
                if candidate.title() == calendar:
                    return candidate
            raise StoreWriteError(f"Calendar not found: {calendar}")
        default_calendar = self.event_store.defaultCalendarForNewEvents()
        if default_calendar is None:
            raise StoreWriteError("No default calendar for new events")
        return default_calendar

    def write(self, event: MaterializedEvent, calendar: Optional[str] = None) -> None:
        ek_event = EKEvent.eventWithEventStore_(self.event_store)
        ek_event.setCalendar_(self._resolve_calendar(calendar))
        ek_event.setTitle_(event.title)
        ek_event.setStartDate_(NSDate.dateWithTimeIntervalSince1970_(event.start.timestamp()))
        ek_event.setEndDate_(NSDate.dateWithTimeIntervalSince1970_(event.end.timestamp()))
        ek_event.setAllDay_(event.all_day)
        if event.location:
            ek_event.setLocation_(event.location)
        if event.notes:
            ek_event.setNotes_(event.notes)

        ok, error = self.event_store.saveEvent_span_error_(ek_event, EK_SPAN_THIS_EVENT, None)
        if not ok:
            raise StoreWriteError(f"EventKit refused '{event.title}': {error}")


def get_calendar_store(
    name: Optional[str] = None,
    settings: Optional[SettingsSchema] = None,
) -> Optional[CalendarStore]:
    """
    Factory for the configured calendar store.

    Args:
        name: "none", "ics" or "eventkit"; defaults to settings["calendar_store"]
        settings: Loaded settings (defaults when None)

    Returns:
        CalendarStore instance, or None for "none"
    """
    settings = settings or DEFAULT_SETTINGS
    store_name = name or get_calendar_store_name(settings)
    Log.info(f"Using calendar store: {store_name}")

    if store_name == "none":
        return None
    if store_name == "ics":
        return IcsDirectoryStore(Path(settings.get("ics_output_dir", DEFAULT_SETTINGS["ics_output_dir"])))
    if store_name == "eventkit":
        return EventKitCalendarStore()
    raise ConfigurationError(f"Unknown calendar store: {store_name}")
