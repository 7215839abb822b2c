"""Custom exceptions for Kairos event extraction."""


class KairosError(Exception):
    """Base exception for all Kairos errors."""


class ConfigurationError(KairosError):
    """Exception raised for invalid settings values."""


class InferenceError(KairosError):
    """Exception raised when the vision model call fails."""


class ExtractionError(KairosError):
    """Base class for errors that are fatal to a whole extraction request."""


class NoJsonFound(ExtractionError):
    """No bracket pair could be located in the model response."""

    def __init__(self, message: str = "No valid JSON found in the response. "
                                      "Please try again with a clearer image."):
        super().__init__(message)


class JsonSyntaxError(ExtractionError):
    """A payload was located but is not valid JSON."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Failed to parse event data: {detail}")


class NoEventsFound(ExtractionError):
    """Valid JSON, but no event survived decoding and materialization."""

    def __init__(self, message: str = "No events found in the response."):
        super().__init__(message)


class DecodeError(KairosError):
    """A single array element could not be decoded into an event record."""


class MissingTitle(DecodeError):
    """Element has no usable title."""


class MissingStart(DecodeError):
    """Element has neither start_datetime nor start_date."""


class InvalidEventRecord(DecodeError):
    """Element is not a JSON object or has a field of the wrong type."""


class MaterializationError(KairosError):
    """An event record could not be turned into concrete instants."""


class UnparsableStart(MaterializationError):
    """The record's start value matched none of the supported formats."""

    def __init__(self, raw_value):
        self.raw_value = raw_value
        super().__init__(f"Unable to parse start date/time: {raw_value!r}")


class StoreError(KairosError):
    """Base class for calendar store failures."""


class CalendarAccessDenied(StoreError):
    """The calendar store refused access."""

    def __init__(self, message: str = "Calendar access denied"):
        super().__init__(message)


class StoreWriteError(StoreError):
    """Writing a single event to the calendar store failed."""
