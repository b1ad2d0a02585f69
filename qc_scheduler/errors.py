"""
Error kinds raised by the scheduling engine.

Two tiers are kept apart so callers can decide what to retry:

- SchedulingError: bad input to a pure computation (frequency, dates).
  Retrying with the same input fails the same way; the caller must fix it.
- CompletionSourceError: I/O against a collaborator (remote API, cache).
  Transient; safe to retry, and absorbed into degraded mode where possible.
"""


class SchedulingError(ValueError):
    """Base class for local-computation errors caused by invalid input."""


class InvalidFrequency(SchedulingError):
    """Frequency value is not one of the supported recurrence tiers."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid QC frequency: {value!r}")


class InvalidStartDate(SchedulingError):
    """Start date is missing or cannot be parsed as a calendar date."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid or missing start date: {value!r}")


class CompletionSourceError(Exception):
    """Base class for I/O failures while reading collaborator stores."""


class RemoteSourceUnavailable(CompletionSourceError):
    """The remote QC API could not be reached or returned an unusable response."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
