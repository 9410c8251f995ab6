"""Tick orchestration: fetch, classify, evaluate and gate every enabled job."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jenkins_monitor.bot.base import AlertSink
from jenkins_monitor.errors import InvalidSchedule, RetrievalError, ScheduleLookbackExhausted
from jenkins_monitor.model.job import AlertEvent, JobRuntimeState, JobSpec
from jenkins_monitor.monitor.alert_gate import AlertGate
from jenkins_monitor.monitor.cron_clock import CronClock
from jenkins_monitor.monitor.evaluator import evaluate
from jenkins_monitor.utils.logger_factory import log_exception
from jenkins_monitor.utils.misc import UTC, utc_now

SEQUENTIAL = "sequential"
CONCURRENT = "concurrent"


class MonitorLoop:
    """Owner of the per-job runtime state table.

    Each job's state is only touched while that job's lock is held, so a
    concurrent tick never evaluates the same job twice at once and a slow job
    never blocks the others.
    """

    def __init__(
        self,
        jobs: Sequence[JobSpec],
        client,
        sink: AlertSink,
        logger,
        *,
        gate: Optional[AlertGate] = None,
        alert_on_retrieval_error: bool = True,
        min_lookback: timedelta = timedelta(0),
        concurrency: str = CONCURRENT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Wire the loop to its collaborators.

        :param jobs: Monitored jobs, including disabled ones.
        :param client: Jenkins client exposing ``fetch_latest_build`` and
            ``fetch_job_schedule``.
        :param sink: Destination for fired alerts.
        :param logger: Service logger.
        :param gate: Alert gate; a default one-hour cooldown gate if omitted.
        :param alert_on_retrieval_error: Global default for retrieval error alerts.
        :param min_lookback: Lower bound on the schedule lookback window.
        :param concurrency: ``"sequential"`` or ``"concurrent"`` job evaluation.
        :param clock: Source of ``now`` when a tick is not given one.
        """
        if concurrency not in (SEQUENTIAL, CONCURRENT):
            raise ValueError(f"concurrency must be {SEQUENTIAL!r} or {CONCURRENT!r}, got {concurrency!r}")
        self.jobs: List[JobSpec] = list(jobs)
        self.client = client
        self.sink = sink
        self.logger = logger
        self.gate = gate or AlertGate(logger)
        self.alert_on_retrieval_error = alert_on_retrieval_error
        self.min_lookback = min_lookback
        self.concurrency = concurrency
        self._clock = clock

        self._states: Dict[str, JobRuntimeState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._clocks: Dict[str, CronClock] = {}
        self._invalid: Dict[str, str] = {}
        self._prepared = False
        self._tick_count = 0

    @classmethod
    def from_config(cls, config, client, sink: AlertSink, logger, **kwargs) -> "MonitorLoop":
        """Build a loop from an :class:`~jenkins_monitor.configs.settings.AppConfig`."""
        monitor = config.monitor
        gate = AlertGate(
            logger,
            cooldown=timedelta(minutes=monitor.alert_cooldown_minutes),
            jenkins_url=config.jenkins.url,
        )
        return cls(
            config.job_specs(),
            client,
            sink,
            logger,
            gate=gate,
            alert_on_retrieval_error=monitor.alert_on_retrieval_error,
            min_lookback=timedelta(minutes=monitor.min_schedule_lookback_minutes),
            concurrency=monitor.concurrency,
            **kwargs,
        )

    def prepare(self) -> None:
        """Validate configured schedules once; invalid ones disable their job."""
        for job in self.jobs:
            if job.cron_expression is None or job.name in self._clocks or job.name in self._invalid:
                continue
            self._register_schedule(job.name, job.cron_expression)
        self._prepared = True

    def _register_schedule(self, name: str, expression: str, timezone: tzinfo = UTC) -> Optional[CronClock]:
        try:
            clock = CronClock(expression, timezone)
        except InvalidSchedule as exc:
            self._invalid[name] = str(exc)
            self.logger.error(f"Job '{name}' skipped: {exc}")
            return None
        self._clocks[name] = clock
        return clock

    @property
    def invalid_schedules(self) -> Dict[str, str]:
        return dict(self._invalid)

    def schedule_of(self, name: str) -> Optional[str]:
        clock = self._clocks.get(name)
        return clock.expression if clock else None

    def state_of(self, name: str) -> Optional[JobRuntimeState]:
        return self._states.get(name)

    async def tick(self, now: Optional[datetime] = None) -> List[AlertEvent]:
        """Run one monitoring pass over every enabled job.

        :param now: Evaluation instant; the loop's clock is used if omitted.
        :return: Alerts fired during this tick (delivered or not).
        """
        if not self._prepared:
            self.prepare()
        now = now or self._clock()
        self._tick_count += 1

        enabled = []
        for job in self.jobs:
            if job.enabled:
                enabled.append(job)
            else:
                self.logger.debug(f"Job '{job.name}' is disabled, skipping")

        self.logger.info(f"Tick #{self._tick_count} started: checking {len(enabled)} job(s)")
        if self.concurrency == CONCURRENT:
            results = await asyncio.gather(*(self._check_isolated(job, now) for job in enabled))
        else:
            results = [await self._check_isolated(job, now) for job in enabled]

        events = [event for event in results if event is not None]
        self.logger.info(
            f"Tick #{self._tick_count} finished: {len(enabled)} job(s) checked, {len(events)} alert(s) fired"
        )
        return events

    async def _check_isolated(self, job: JobSpec, now: datetime) -> Optional[AlertEvent]:
        lock = self._locks.setdefault(job.name, asyncio.Lock())
        async with lock:
            try:
                return await self.check_job(job, now)
            except Exception as e:
                log_exception(self.logger, e, context=f"job:{job.name}")
                state = self._states.get(job.name)
                if state is not None:
                    state.last_error = f"{type(e).__name__}: {e}"
                return None

    async def check_job(self, job: JobSpec, now: datetime) -> Optional[AlertEvent]:
        """Evaluate one job and deliver the alert it fires, if any.

        Callers must hold the job's lock; :meth:`tick` does.
        """
        state = self._states.get(job.name)
        if state is None:
            state = self._states[job.name] = JobRuntimeState(last_check=now)
        state.observe(now)

        if job.name in self._invalid:
            return None

        try:
            clock = await self._resolve_clock(job)
            if clock is None:
                return None
            snapshot = await self.client.fetch_latest_build(job.name)
        except RetrievalError as exc:
            state.last_error = f"{type(exc).__name__}: {exc}"
            self.logger.error(f"Retrieval error in job:{job.name}: {type(exc).__name__}: {exc}")
            event = self.gate.process_retrieval_error(job, state, exc, now, self.alert_on_retrieval_error)
            return await self._deliver(event)

        state.last_build_snapshot = snapshot
        try:
            verdict = evaluate(job, now, snapshot, clock=clock, min_lookback=self.min_lookback)
        except ScheduleLookbackExhausted as exc:
            state.last_error = str(exc)
            self.logger.error(f"Cannot evaluate job '{job.name}': {exc}")
            return None

        state.last_verdict = verdict
        state.last_error = None
        if verdict.is_overdue:
            self.logger.warning(f"Job '{job.name}' is OVERDUE: {verdict.reason}")
        else:
            self.logger.info(f"Job '{job.name}' is healthy: {verdict.reason}")

        event = self.gate.process_verdict(job, state, verdict, now)
        return await self._deliver(event)

    async def _resolve_clock(self, job: JobSpec) -> Optional[CronClock]:
        clock = self._clocks.get(job.name)
        if clock is not None:
            return clock
        if job.cron_expression is not None:
            return self._register_schedule(job.name, job.cron_expression)

        spec = await self.client.fetch_job_schedule(job.name)
        if spec is None:
            self._invalid[job.name] = "no timer trigger found in config.xml"
            self.logger.error(f"Job '{job.name}' skipped: no schedule configured and none found in Jenkins")
            return None
        zone = UTC
        if spec.timezone:
            try:
                zone = ZoneInfo(spec.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                self._invalid[job.name] = f"unknown timezone {spec.timezone!r}"
                self.logger.error(f"Job '{job.name}' skipped: unknown timezone {spec.timezone!r} in timer trigger")
                return None
        self.logger.info(f"Discovered schedule {spec.expression!r} ({zone}) for job '{job.name}'")
        return self._register_schedule(job.name, spec.expression, zone)

    async def _deliver(self, event: Optional[AlertEvent]) -> Optional[AlertEvent]:
        if event is None:
            return None
        try:
            await self.sink.send(event.subject, event.body)
        except Exception as e:
            self.logger.error(f"Failed to deliver alert for job '{event.job_name}': {type(e).__name__}: {e}")
        else:
            self.logger.info(f"Alert sent for job '{event.job_name}': {event.subject}")
        return event
