"""
Application settings management.

Holds the calendar policy constants (default durations, exclusive all-day
end dates), the reference timezone and the output preferences. Settings are
persisted as JSON in ~/.config/kairos/settings.json (or KAIROS_SETTINGS_FILE)
and merged over the defaults so partial files keep working.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from pathlib import Path
from typing import Literal, Optional, TypedDict

from dateutil import tz as dateutil_tz

from kairos.exceptions import ConfigurationError
from kairos.logging_helper import Log

CalendarStoreName = Literal["none", "ics", "eventkit"]
CALENDAR_STORES = ("none", "ics", "eventkit")


class SettingsSchema(TypedDict, total=False):
    timed_default_minutes: int
    all_day_default_days: int
    all_day_end_exclusive: bool
    timezone: Optional[str]
    lenient_parsing: bool
    calendar_store: CalendarStoreName
    ics_output_dir: str
    llm_model: str


DEFAULT_SETTINGS: SettingsSchema = {
    "timed_default_minutes": 60,
    "all_day_default_days": 1,
    "all_day_end_exclusive": True,
    "timezone": None,
    "lenient_parsing": False,
    "calendar_store": "ics",
    "ics_output_dir": "~/Downloads",
    "llm_model": "gpt-4o-mini",
}


@dataclass(frozen=True)
class MaterializationPolicy:
    """Business constants applied when turning records into concrete events."""
    timed_default_duration: timedelta = timedelta(hours=1)
    all_day_default_duration: timedelta = timedelta(days=1)
    all_day_end_exclusive: bool = True
    lenient_parsing: bool = False


def get_settings_file() -> Path:
    override = os.environ.get("KAIROS_SETTINGS_FILE")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "kairos" / "settings.json"


def load_settings(path: Optional[Path] = None) -> SettingsSchema:
    """
    Load settings from disk, falling back to defaults if anything fails.
    """
    settings_file = path or get_settings_file()
    if not settings_file.exists():
        Log.info(f"Settings file not found, using defaults: {settings_file}")
        return DEFAULT_SETTINGS.copy()

    try:
        data = json.loads(settings_file.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("Settings data is not a JSON object")
    except (OSError, ValueError) as err:
        Log.warn(f"Failed to read settings file ({settings_file}): {err}")
        return DEFAULT_SETTINGS.copy()

    merged: SettingsSchema = DEFAULT_SETTINGS.copy()
    # Merge only known keys
    for key in DEFAULT_SETTINGS:
        if key in data:
            merged[key] = data[key]  # type: ignore[literal-required]
    return merged


def save_settings(settings: SettingsSchema, path: Optional[Path] = None) -> None:
    """
    Persist settings to disk.
    """
    settings_file = path or get_settings_file()
    try:
        settings_file.parent.mkdir(parents=True, exist_ok=True)
        settings_file.write_text(
            json.dumps(settings, indent=2, sort_keys=True),
            encoding="utf-8",
        )
    except OSError as err:
        Log.warn(f"Failed to write settings file ({settings_file}): {err}")


def _positive_int(settings: SettingsSchema, key: str) -> int:
    value = settings.get(key, DEFAULT_SETTINGS[key])  # type: ignore[literal-required]
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{key} must be a positive integer, got {value!r}")
    return value


def get_policy(settings: Optional[SettingsSchema] = None) -> MaterializationPolicy:
    """
    Build the materialization policy from settings.

    Raises:
        ConfigurationError: if a duration is not a positive integer
    """
    if settings is None:
        settings = DEFAULT_SETTINGS
    return MaterializationPolicy(
        timed_default_duration=timedelta(minutes=_positive_int(settings, "timed_default_minutes")),
        all_day_default_duration=timedelta(days=_positive_int(settings, "all_day_default_days")),
        all_day_end_exclusive=bool(settings.get("all_day_end_exclusive", True)),
        lenient_parsing=bool(settings.get("lenient_parsing", False)),
    )


def get_reference_timezone(settings: Optional[SettingsSchema] = None) -> tzinfo:
    """
    Timezone used for date/time values that carry no offset.

    Returns the configured IANA zone, or the system timezone when unset.

    Raises:
        ConfigurationError: if the configured zone is unknown
    """
    name = (settings or {}).get("timezone")
    if not name:
        return dateutil_tz.tzlocal()
    zone = dateutil_tz.gettz(name)
    if zone is None:
        raise ConfigurationError(f"Unknown timezone: {name}")
    return zone


def get_calendar_store_name(settings: Optional[SettingsSchema] = None) -> CalendarStoreName:
    settings = settings or DEFAULT_SETTINGS
    preferred = settings.get("calendar_store", DEFAULT_SETTINGS["calendar_store"])
    if preferred not in CALENDAR_STORES:
        Log.warn(f"Invalid calendar_store value '{preferred}', defaulting to ics")
        preferred = "ics"
    return preferred
