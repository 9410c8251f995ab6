"""Exception taxonomy shared by the monitor core and its collaborators."""

from __future__ import annotations

from typing import Optional


class MonitorError(Exception):
    """Base error for the Jenkins monitor."""


class ConfigError(MonitorError):
    """Configuration file could not be loaded or validated."""


class InvalidSchedule(MonitorError):
    """A cron expression could not be parsed."""

    def __init__(self, expression: str, detail: str = "") -> None:
        self.expression = expression
        self.detail = detail
        message = f"Invalid cron expression {expression!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ScheduleLookbackExhausted(MonitorError):
    """No scheduled firing was found inside the lookback window."""

    def __init__(self, expression: str, lookback_minutes: int) -> None:
        self.expression = expression
        self.lookback_minutes = lookback_minutes
        super().__init__(
            f"No firing of {expression!r} within the last {lookback_minutes} minutes"
        )


class RetrievalError(MonitorError):
    """Base class for every failure to obtain job data from Jenkins."""


class RetrievalFailed(RetrievalError):
    """Transport kept failing until the retry budget ran out."""

    def __init__(self, url: str, attempts: int, last_error: BaseException) -> None:
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"GET {url} failed after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}"
        )


class UpstreamError(RetrievalError):
    """Jenkins answered with a non-success status."""

    def __init__(self, status: int, url: str) -> None:
        self.status = status
        self.url = url
        super().__init__(f"Jenkins returned HTTP {status} for {url}")


class MalformedUpstreamReference(RetrievalError):
    """A build URL returned by Jenkins could not be turned into a request URL."""

    def __init__(self, reference: str, detail: Optional[str] = None) -> None:
        self.reference = reference
        self.detail = detail
        message = f"Malformed build reference from Jenkins: {reference!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class MalformedUpstreamPayload(RetrievalError):
    """A successful response did not carry the expected JSON document."""

    def __init__(self, url: str, detail: str) -> None:
        self.url = url
        self.detail = detail
        super().__init__(f"Unexpected payload from {url}: {detail}")


class SinkError(MonitorError):
    """An alert could not be delivered."""
