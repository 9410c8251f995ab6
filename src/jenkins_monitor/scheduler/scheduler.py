"""Factory helpers for the APScheduler instance that drives monitor ticks."""

from datetime import datetime, timedelta

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from jenkins_monitor.utils.misc import UTC

TICK_JOB_ID = "jenkins_monitor_tick"

DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 60,
}


def build_scheduler() -> AsyncIOScheduler:
    """Create an ``AsyncIOScheduler`` with the default in-memory job store."""
    return AsyncIOScheduler(timezone=UTC, job_defaults=DEFAULTS)


def schedule_monitor(
    scheduler: AsyncIOScheduler,
    tick,
    interval: timedelta,
    *,
    run_immediately: bool = True,
) -> Job:
    """Register the single tick job on ``scheduler``.

    :param scheduler: Target scheduler.
    :param tick: Coroutine function run on every interval.
    :param interval: Time between ticks.
    :param run_immediately: Fire the first tick now instead of one interval later.
    :return: The APScheduler job.
    """
    trigger = IntervalTrigger(seconds=interval.total_seconds(), timezone=UTC)
    job_options = {"id": TICK_JOB_ID, "replace_existing": True, **DEFAULTS}
    if run_immediately:
        job_options["next_run_time"] = datetime.now(tz=UTC)
    return scheduler.add_job(tick, trigger=trigger, **job_options)
