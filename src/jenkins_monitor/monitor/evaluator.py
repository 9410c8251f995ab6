"""Decide whether a job is overdue relative to its cron schedule."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from jenkins_monitor.errors import ScheduleLookbackExhausted
from jenkins_monitor.model.job import (
    BuildOutcome,
    BuildSnapshot,
    ComplianceVerdict,
    JobSpec,
    VerdictStatus,
)
from jenkins_monitor.monitor.cron_clock import CronClock
from jenkins_monitor.utils.misc import whole_minutes

NO_HISTORY_REASON = "job has no build history"
FAILED_BUILD_REASON = "last build finished with a non-success result"


def lookback_for(job: JobSpec, min_lookback: timedelta = timedelta(0)) -> timedelta:
    """Window searched for the latest scheduled firing: twice the threshold."""
    return max(2 * job.alert_threshold, min_lookback)


def evaluate(
    job: JobSpec,
    now: datetime,
    latest_build: Optional[BuildSnapshot],
    clock: Optional[CronClock] = None,
    min_lookback: timedelta = timedelta(0),
) -> ComplianceVerdict:
    """Compare the latest build against the job's schedule.

    The job may trail its most recent scheduled firing by up to
    ``alert_threshold``. Both ages are whole minutes truncated the same way,
    so a build at exactly the scheduled time is never overdue until the
    threshold has fully elapsed since that firing.

    :param job: Job specification.
    :param now: Evaluation instant (aware).
    :param latest_build: Most recent build, or ``None`` if the job never ran.
    :param clock: Pre-validated schedule for ``job``; built from the spec if omitted.
    :param min_lookback: Lower bound for the firing search window.
    :return: Verdict with a human-readable reason.
    :raises InvalidSchedule: If no clock is passed and the expression is invalid.
    :raises ScheduleLookbackExhausted: If the schedule did not fire in the window.
    """
    if latest_build is None:
        return ComplianceVerdict(VerdictStatus.OVERDUE, NO_HISTORY_REASON)

    if latest_build.outcome is BuildOutcome.FAILED:
        detail = f" ({latest_build.result})" if latest_build.result else ""
        return ComplianceVerdict(
            VerdictStatus.OVERDUE,
            f"{FAILED_BUILD_REASON}{detail}",
            minutes_since_build=whole_minutes(now - latest_build.timestamp),
        )

    if clock is None:
        clock = CronClock(job.cron_expression)

    lookback = lookback_for(job, min_lookback)
    expected = clock.most_recent_firing(now, lookback)
    if expected is None:
        raise ScheduleLookbackExhausted(clock.expression, whole_minutes(lookback))

    age_of_build = whole_minutes(now - latest_build.timestamp)
    age_of_schedule = whole_minutes(now - expected)
    allowed = age_of_schedule + job.alert_threshold_minutes

    if age_of_build > allowed:
        status = VerdictStatus.OVERDUE
        reason = (
            f"last build ran {age_of_build} min ago, more than {allowed} min "
            f"({age_of_schedule} min since the scheduled run + {job.alert_threshold_minutes} min threshold)"
        )
    else:
        status = VerdictStatus.HEALTHY
        reason = (
            f"last build ran {age_of_build} min ago, within {allowed} min "
            f"({age_of_schedule} min since the scheduled run + {job.alert_threshold_minutes} min threshold)"
        )
    if latest_build.outcome is BuildOutcome.RUNNING:
        reason = f"{reason}; build #{latest_build.build_number} still running"

    return ComplianceVerdict(
        status,
        reason,
        expected_at=expected,
        minutes_since_build=age_of_build,
        minutes_since_schedule=age_of_schedule,
    )
