"""Alert sink contract and the sinks that need no external transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

from jenkins_monitor.errors import SinkError


class AlertSink(ABC):
    """Destination for alerts fired by the monitor.

    Implementations raise :class:`SinkError` when delivery fails; the monitor
    loop logs the failure and carries on with the tick.
    """

    async def start(self) -> None:
        """Acquire transport resources."""

    async def shutdown(self) -> None:
        """Release transport resources."""

    @abstractmethod
    async def send(self, subject: str, body: str) -> None:
        """Deliver one alert.

        :param subject: Short alert title.
        :param body: Plain-text alert body.
        :raises SinkError: If the alert could not be delivered.
        """
        raise NotImplementedError


class LoggingAlertSink(AlertSink):
    """Fallback used when no alert transport is configured."""

    def __init__(self, logger) -> None:
        self.logger = logger

    async def send(self, subject: str, body: str) -> None:
        self.logger.warning("No alert transport configured - alert would have been sent:")
        self.logger.warning(f"Subject: {subject}")
        self.logger.warning(f"Body:\n{body}")


class MultiAlertSink(AlertSink):
    """Fan an alert out to several sinks, trying every one of them."""

    def __init__(self, sinks: Sequence[AlertSink], logger) -> None:
        self.sinks: List[AlertSink] = list(sinks)
        self.logger = logger

    async def start(self) -> None:
        for sink in self.sinks:
            await sink.start()

    async def shutdown(self) -> None:
        for sink in self.sinks:
            try:
                await sink.shutdown()
            except Exception as e:
                self.logger.error(f"{type(sink).__name__} shutdown failed: {e}")

    async def send(self, subject: str, body: str) -> None:
        failures = []
        for sink in self.sinks:
            try:
                await sink.send(subject, body)
            except Exception as e:
                self.logger.error(f"{type(sink).__name__} failed to deliver '{subject}': {e}")
                failures.append(type(sink).__name__)
        if failures:
            raise SinkError(f"Delivery failed for: {', '.join(failures)}")
