"""Asynchronous buffered logger that feeds pluggable handlers."""

import asyncio
import sys
import traceback
from typing import List, Optional

from colorama import Fore, Style, init as colorama_init

from jenkins_monitor.utils.logger.config import LogEvent, LogLevel, LoggerConfig
from jenkins_monitor.utils.logger.handlers.base import BaseLogHandler
from jenkins_monitor.utils.misc import time_iso8601, time_s

colorama_init(autoreset=True)


LOG_COLORS = {
    LogLevel.TRACE: Fore.LIGHTBLACK_EX,
    LogLevel.DEBUG: Fore.LIGHTBLACK_EX,
    LogLevel.INFO: Fore.GREEN,
    LogLevel.WARNING: Fore.YELLOW,
    LogLevel.ERROR: Fore.RED + Style.BRIGHT,
    LogLevel.CRITICAL: Fore.RED + Style.BRIGHT,
}

# Lines containing these markers are flushed right away even at INFO level.
FLUSH_MARKERS = ("Alert sent", "Monitor started", "Monitor stopped", "shutdown")


class Logger:
    """Logger that renders messages synchronously and dispatches them from a task.

    Callers never await: ``info``/``error``/... only format the line and put it
    on a queue. The ingest task started by :meth:`start` batches events and
    hands them to every handler.
    """

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        name: str = "",
        handlers: Optional[List[BaseLogHandler]] = None,
    ):
        """Initialise the logger with optional configuration and handlers.

        :param config: Configuration settings controlling buffering and output.
        :param name: Name prefix used in emitted log records.
        :param handlers: Handlers derived from :class:`BaseLogHandler`.
        :raises TypeError: If a handler does not extend :class:`BaseLogHandler`.
        """
        self._config = config or LoggerConfig()
        self._name = name
        self._handlers = list(handlers or [])

        for handler in self._handlers:
            if not isinstance(handler, BaseLogHandler):
                raise TypeError(f"Invalid handler; expected BaseLogHandler but got {type(handler).__name__}")
            handler.add_primary_config(self._config)

        self._buffer: List[LogEvent] = []
        self._buffer_start_time = time_s()
        self._msg_queue: Optional[asyncio.Queue] = None
        self._is_running = False
        self._log_ingestor_task: Optional[asyncio.Task] = None

    async def _flush_buffer(self) -> None:
        """Hand the buffered events to every handler and reset the buffer."""
        batch = list(self._buffer)
        self._buffer.clear()
        self._buffer_start_time = time_s()
        for handler in self._handlers:
            try:
                await handler.push(batch)
            except Exception:
                traceback.print_exc(file=sys.stderr)

    def _should_flush(self, event: LogEvent) -> bool:
        if event.level >= LogLevel.WARNING:
            return True
        if any(marker in event.text for marker in FLUSH_MARKERS):
            return True
        if len(self._buffer) >= self._config.buffer_capacity:
            return True
        return (time_s() - self._buffer_start_time) >= self._config.buffer_timeout

    async def _log_ingestor(self) -> None:
        """Consume queued events until shutdown has drained the queue."""
        queue = self._msg_queue
        while self._is_running or not queue.empty():
            try:
                event: LogEvent = await queue.get()
            except asyncio.CancelledError:
                break
            try:
                self._buffer.append(event)
                if self._config.do_stdout:
                    print(LOG_COLORS.get(event.level, "") + event.text + Style.RESET_ALL)
                if self._should_flush(event):
                    await self._flush_buffer()
            except Exception:
                traceback.print_exc(file=sys.stderr)
            finally:
                queue.task_done()

    def _process_log(self, level: LogLevel, msg: str) -> None:
        """Render ``msg`` and enqueue it when the level passes the threshold."""
        if level < self._config.base_level:
            return
        text = self._config.str_format % {
            "asctime": time_iso8601(),
            "name": self._name,
            "levelname": level.name,
            "message": msg,
        }
        event = LogEvent(text=text, level=level)
        if not self._is_running or self._msg_queue is None:
            # Not started (or already stopped): keep the line visible on stderr.
            print(text, file=sys.stderr)
            return
        self._msg_queue.put_nowait(event)

    def trace(self, msg: str) -> None:
        self._process_log(LogLevel.TRACE, msg)

    def debug(self, msg: str) -> None:
        self._process_log(LogLevel.DEBUG, msg)

    def info(self, msg: str) -> None:
        self._process_log(LogLevel.INFO, msg)

    def warning(self, msg: str) -> None:
        self._process_log(LogLevel.WARNING, msg)

    def error(self, msg: str) -> None:
        self._process_log(LogLevel.ERROR, msg)

    def critical(self, msg: str) -> None:
        self._process_log(LogLevel.CRITICAL, msg)

    async def start(self) -> None:
        """Start the handlers and the ingest task."""
        if self._is_running:
            return
        self._msg_queue = asyncio.Queue()
        self._is_running = True
        for h in self._handlers:
            if hasattr(h, "start"):
                await h.start()
        self._log_ingestor_task = asyncio.create_task(self._log_ingestor())

    async def shutdown(self) -> None:
        """Drain the queue, flush the buffer and stop handlers."""
        if not self._is_running:
            return
        self._is_running = False
        await asyncio.sleep(0)

        try:
            await asyncio.wait_for(self._msg_queue.join(), timeout=2.0)
        except asyncio.TimeoutError:
            print("[Logger] drain timeout; forcing shutdown", file=sys.stderr)

        if self._log_ingestor_task is not None:
            self._log_ingestor_task.cancel()
            try:
                await self._log_ingestor_task
            except asyncio.CancelledError:
                pass
            self._log_ingestor_task = None

        if self._buffer:
            await self._flush_buffer()

        for h in self._handlers:
            if hasattr(h, "shutdown"):
                try:
                    await h.shutdown()
                except Exception:
                    traceback.print_exc(file=sys.stderr)
