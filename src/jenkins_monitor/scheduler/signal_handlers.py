"""SIGINT/SIGTERM wiring for the monitor process."""

import asyncio
import signal

from jenkins_monitor.utils.logger_factory import log_exception

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(service, loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
    """Stop ``service`` on the first SIGINT/SIGTERM and then set ``stop_event``.

    Later signals are ignored while the shutdown is in progress. Platforms
    without ``loop.add_signal_handler`` fall back to :func:`signal.signal`.

    :param service: Running :class:`~jenkins_monitor.scheduler.service.MonitorService`.
    :param loop: Loop the shutdown task is created on.
    :param stop_event: Awaited by :func:`jenkins_monitor.main.main`.
    """
    pending = []

    async def _stop(name: str) -> None:
        service.logger.info(f"Received {name}, stopping monitor")
        try:
            await service.shutdown()
        except Exception as e:
            log_exception(service.logger, e, context="signal shutdown")
        finally:
            stop_event.set()

    def _on_signal(signum, frame=None) -> None:
        if pending:
            return
        name = signal.Signals(signum).name
        pending.append(name)
        loop.call_soon_threadsafe(loop.create_task, _stop(name))

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
        except (NotImplementedError, AttributeError):
            signal.signal(sig, _on_signal)
