"""Monitor service: scheduler lifecycle, collaborators and status views."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import STATE_PAUSED, STATE_RUNNING, STATE_STOPPED

from jenkins_monitor.bot.base import AlertSink
from jenkins_monitor.bot.factory import build_alert_sink
from jenkins_monitor.jenkins.rest import JenkinsClientAsync
from jenkins_monitor.jenkins.urls import build_job_url, describe_origin
from jenkins_monitor.model.job import AlertEvent, BuildSnapshot, ComplianceVerdict, JobRuntimeState, JobSpec
from jenkins_monitor.monitor.loop import MonitorLoop
from jenkins_monitor.scheduler.scheduler import TICK_JOB_ID, build_scheduler, schedule_monitor
from jenkins_monitor.utils.logger.logger import Logger
from jenkins_monitor.utils.logger_factory import EnhancedLoggerFactory, log_exception
from jenkins_monitor.utils.misc import UTC


class MonitorService:
    """Encapsulates the monitor loop, its collaborators and the tick scheduler."""

    def __init__(
        self,
        config,
        *,
        logger: Optional[Logger] = None,
        client: Optional[JenkinsClientAsync] = None,
        sink: Optional[AlertSink] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        """Build the collaborators described by ``config``; any may be injected.

        :param config: Validated :class:`~jenkins_monitor.configs.settings.AppConfig`.
        """
        self._config = config
        self._logger: Logger = logger or EnhancedLoggerFactory.from_settings(
            config.logging, discord_webhook=config.discord_webhook
        )
        self._client = client or JenkinsClientAsync.from_settings(config.jenkins, self._logger)
        self._sink = sink or build_alert_sink(config.alerts, self._logger)
        self._loop = MonitorLoop.from_config(config, self._client, self._sink, self._logger)
        self._scheduler: AsyncIOScheduler = scheduler or build_scheduler()
        self._interval = timedelta(seconds=config.monitor.check_interval_seconds)
        self._started = False
        self._started_at: Optional[datetime] = None
        self._last_tick_at: Optional[datetime] = None
        self._tick_count = 0
        self._ticks: Set[asyncio.Task] = set()

    async def startup(self) -> None:
        """Start logging and transports, then schedule the first tick immediately.

        :raises Exception: Propagates APScheduler startup failures.
        """
        if self._started:
            return
        await self._logger.start()
        await self._client.start()
        await self._sink.start()
        await self._client.test_connection()
        self._loop.prepare()
        schedule_monitor(self._scheduler, self.run_tick, self._interval)
        self._scheduler.start()
        self._started = True
        self._started_at = datetime.now(tz=UTC)
        self._logger.info(
            f"Monitor started: {len(self._loop.jobs)} job(s), checking every "
            f"{int(self._interval.total_seconds())}s against {describe_origin(self._config.jenkins.url)}"
        )

    async def shutdown(self, *, wait: bool = False) -> None:
        """Stop the scheduler, let in-flight ticks settle, then release transports.

        ``AsyncIOScheduler.shutdown`` may only queue the stop on the event loop,
        so the loop is yielded to once before anything is closed.
        """
        if not self._started:
            return
        try:
            self._scheduler.shutdown(wait=wait)
            await asyncio.sleep(0)
        finally:
            self._started = False
            await self._settle_ticks()
            for closer in (self._sink.shutdown, self._client.shutdown):
                try:
                    await closer()
                except Exception as e:
                    log_exception(self._logger, e, context="shutdown")
            self._logger.info("Monitor stopped")
            await self._logger.shutdown()

    async def run_tick(self) -> List[AlertEvent]:
        """Run one tick; failures are logged so the scheduler keeps going."""
        task = asyncio.current_task()
        self._ticks.add(task)
        self._tick_count += 1
        self._last_tick_at = datetime.now(tz=UTC)
        try:
            return await self._loop.tick()
        except Exception as e:
            log_exception(self._logger, e, context="tick")
            return []
        finally:
            self._ticks.discard(task)

    async def _settle_ticks(self) -> None:
        current = asyncio.current_task()
        pending = [task for task in self._ticks if task is not current and not task.done()]
        if pending:
            self._logger.info(f"Waiting for {len(pending)} in-flight tick(s) before closing transports")
            await asyncio.gather(*pending, return_exceptions=True)

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    @property
    def logger(self) -> Logger:
        return self._logger

    @property
    def loop(self) -> MonitorLoop:
        return self._loop

    def status(self) -> Dict[str, Any]:
        """Summarise scheduler state and tick timing."""
        state = self._scheduler.state if self._started else STATE_STOPPED
        job = self._scheduler.get_job(TICK_JOB_ID) if state != STATE_STOPPED else None
        return {
            "state": _map_state(state),
            "running": state == STATE_RUNNING,
            "started_at": self._started_at,
            "last_tick_at": self._last_tick_at,
            "next_tick_at": getattr(job, "next_run_time", None),
            "tick_count": self._tick_count,
            "check_interval_seconds": int(self._interval.total_seconds()),
            "job_count": len(self._loop.jobs),
            "jenkins": describe_origin(self._config.jenkins.url),
        }

    def list_jobs(self) -> Iterable[Dict[str, Any]]:
        for job in self._loop.jobs:
            yield self._serialize_job(job)

    def job_details(self, name: str) -> Dict[str, Any]:
        """Return one job payload or raise ``KeyError`` if it is not configured."""
        for job in self._loop.jobs:
            if job.name == name:
                return self._serialize_job(job)
        raise KeyError(name)

    async def trigger_check(self) -> Dict[str, Any]:
        """Run a tick right away and report the alerts it fired."""
        self._logger.info("Manual check requested")
        events = await self.run_tick()
        return {
            "checked_at": self._last_tick_at,
            "alerts": [_serialize_event(event) for event in events],
            "alert_count": len(events),
        }

    def _serialize_job(self, job: JobSpec) -> Dict[str, Any]:
        invalid = self._loop.invalid_schedules.get(job.name)
        state = self._loop.state_of(job.name)
        return {
            "name": job.name,
            "enabled": job.enabled,
            "schedule": self._loop.schedule_of(job.name) or job.cron_expression,
            "schedule_valid": invalid is None,
            "schedule_error": invalid,
            "alert_threshold_minutes": job.alert_threshold_minutes,
            "url": build_job_url(self._config.jenkins.url, job.name),
            "state": _serialize_state(state),
        }


def _map_state(state: int) -> str:
    return {
        STATE_RUNNING: "running",
        STATE_PAUSED: "paused",
        STATE_STOPPED: "stopped",
    }.get(state, "unknown")


def _serialize_snapshot(snapshot: Optional[BuildSnapshot]) -> Optional[Dict[str, Any]]:
    if snapshot is None:
        return None
    return {
        "number": snapshot.build_number,
        "timestamp": snapshot.timestamp,
        "outcome": snapshot.outcome.value,
        "result": snapshot.result,
        "display_name": snapshot.display_name,
    }


def _serialize_verdict(verdict: Optional[ComplianceVerdict]) -> Optional[Dict[str, Any]]:
    if verdict is None:
        return None
    return {
        "status": verdict.status.value,
        "reason": verdict.reason,
        "expected_at": verdict.expected_at,
        "minutes_since_build": verdict.minutes_since_build,
        "minutes_since_schedule": verdict.minutes_since_schedule,
    }


def _serialize_state(state: Optional[JobRuntimeState]) -> Optional[Dict[str, Any]]:
    if state is None:
        return None
    return {
        "last_check": state.last_check,
        "outcome": state.observed_outcome.value,
        "last_build": _serialize_snapshot(state.last_build_snapshot),
        "gate_state": state.gate_state.value,
        "last_alert_sent": state.last_alert_sent,
        "last_verdict": _serialize_verdict(state.last_verdict),
        "last_error": state.last_error,
    }


def _serialize_event(event: AlertEvent) -> Dict[str, Any]:
    return {
        "job_name": event.job_name,
        "subject": event.subject,
        "body": event.body,
        "raised_at": event.raised_at,
    }

