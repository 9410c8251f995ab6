from datetime import datetime, timedelta

import pytest

from jenkins_monitor.errors import InvalidSchedule, ScheduleLookbackExhausted
from jenkins_monitor.model.job import BuildOutcome, BuildSnapshot, VerdictStatus
from jenkins_monitor.monitor.cron_clock import CronClock
from jenkins_monitor.monitor.evaluator import NO_HISTORY_REASON, evaluate, lookback_for
from jenkins_monitor.utils.misc import UTC


def at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def build(timestamp: datetime, outcome: BuildOutcome = BuildOutcome.SUCCESS, number: int = 7) -> BuildSnapshot:
    result = {BuildOutcome.SUCCESS: "SUCCESS", BuildOutcome.FAILED: "FAILURE"}.get(outcome)
    return BuildSnapshot(build_number=number, timestamp=timestamp, outcome=outcome, result=result)


def test_worked_example_healthy(job_factory):
    job = job_factory(cron_expression="0 0 0 * * *", alert_threshold_minutes=90)
    verdict = evaluate(job, at(2025, 12, 7, 1, 28, 5), build(at(2025, 12, 7, 0, 0, 0)))

    assert verdict.status is VerdictStatus.HEALTHY
    assert verdict.expected_at == at(2025, 12, 7, 0, 0, 0)
    assert verdict.minutes_since_build == 88
    assert verdict.minutes_since_schedule == 88


def test_worked_example_overdue(job_factory):
    job = job_factory(cron_expression="0 0 0 * * *", alert_threshold_minutes=90)
    verdict = evaluate(job, at(2025, 12, 7, 2, 0, 0), build(at(2025, 12, 6, 0, 0, 0)))

    assert verdict.status is VerdictStatus.OVERDUE
    assert verdict.expected_at == at(2025, 12, 7, 0, 0, 0)
    assert verdict.minutes_since_build == 1560
    assert verdict.minutes_since_schedule == 120
    assert "1560" in verdict.reason


def test_no_history_is_overdue(job_factory, now):
    verdict = evaluate(job_factory(), now, None)
    assert verdict.status is VerdictStatus.OVERDUE
    assert verdict.reason == NO_HISTORY_REASON


@pytest.mark.parametrize("minutes_ago", [0, 5, 60 * 24 * 30])
def test_failed_build_is_overdue_regardless_of_timing(job_factory, now, minutes_ago):
    latest = build(now - timedelta(minutes=minutes_ago), BuildOutcome.FAILED)
    verdict = evaluate(job_factory(), now, latest)
    assert verdict.status is VerdictStatus.OVERDUE
    assert "FAILURE" in verdict.reason


def test_failed_build_needs_no_valid_schedule(job_factory, now):
    job = job_factory(cron_expression="H * * * *")
    verdict = evaluate(job, now, build(now, BuildOutcome.FAILED))
    assert verdict.is_overdue


@pytest.mark.parametrize(
    "built_at, expected",
    [
        # hourly schedule, 30 min threshold, now = 01:30 -> allowed = 30 + 30 = 60
        (at(2025, 12, 7, 0, 30, 0), VerdictStatus.HEALTHY),
        (at(2025, 12, 7, 0, 29, 1), VerdictStatus.HEALTHY),
        (at(2025, 12, 7, 0, 29, 0), VerdictStatus.OVERDUE),
        (at(2025, 12, 7, 0, 0, 0), VerdictStatus.OVERDUE),
        (at(2025, 12, 7, 1, 0, 0), VerdictStatus.HEALTHY),
    ],
)
def test_boundary_uses_whole_minutes_on_both_sides(job_factory, built_at, expected):
    job = job_factory(cron_expression="@hourly", alert_threshold_minutes=30)
    verdict = evaluate(job, at(2025, 12, 7, 1, 30, 0), build(built_at))
    assert verdict.status is expected


def test_build_at_scheduled_time_is_healthy_until_threshold(job_factory):
    job = job_factory(cron_expression="0 0 0 * * *", alert_threshold_minutes=90)
    latest = build(at(2025, 12, 7, 0, 0, 0))
    assert evaluate(job, at(2025, 12, 7, 1, 29, 59), latest).status is VerdictStatus.HEALTHY


def test_running_build_is_judged_on_timing(job_factory):
    job = job_factory(cron_expression="@hourly", alert_threshold_minutes=30)
    latest = build(at(2025, 12, 7, 1, 0, 5), BuildOutcome.RUNNING, number=42)
    verdict = evaluate(job, at(2025, 12, 7, 1, 10, 0), latest)
    assert verdict.status is VerdictStatus.HEALTHY
    assert "#42 still running" in verdict.reason


def test_evaluate_is_idempotent(job_factory):
    job = job_factory(cron_expression="0 0 0 * * *", alert_threshold_minutes=90)
    now = at(2025, 12, 7, 2, 0, 0)
    latest = build(at(2025, 12, 6, 0, 0, 0))
    assert evaluate(job, now, latest) == evaluate(job, now, latest)


def test_lookback_exhausted(job_factory):
    job = job_factory(cron_expression="0 0 0 * * *", alert_threshold_minutes=60)
    with pytest.raises(ScheduleLookbackExhausted) as excinfo:
        evaluate(job, at(2025, 12, 7, 12, 0, 0), build(at(2025, 12, 7, 0, 5, 0)))
    assert excinfo.value.lookback_minutes == 120


def test_min_lookback_widens_search(job_factory):
    job = job_factory(cron_expression="0 0 0 * * *", alert_threshold_minutes=60)
    verdict = evaluate(
        job,
        at(2025, 12, 7, 12, 0, 0),
        build(at(2025, 12, 7, 0, 5, 0)),
        min_lookback=timedelta(hours=24),
    )
    assert verdict.status is VerdictStatus.HEALTHY
    assert verdict.expected_at == at(2025, 12, 7, 0, 0, 0)


def test_lookback_for_defaults_to_twice_threshold(job_factory):
    job = job_factory(alert_threshold_minutes=45)
    assert lookback_for(job) == timedelta(minutes=90)
    assert lookback_for(job, timedelta(hours=3)) == timedelta(hours=3)


def test_invalid_schedule_raises_without_clock(job_factory, now):
    job = job_factory(cron_expression="H H * * *")
    with pytest.raises(InvalidSchedule):
        evaluate(job, now, build(now - timedelta(minutes=5)))


def test_prebuilt_clock_is_used(job_factory):
    job = job_factory(cron_expression="this is ignored", alert_threshold_minutes=30)
    verdict = evaluate(job, at(2025, 12, 7, 1, 30, 0), build(at(2025, 12, 7, 1, 0, 0)), clock=CronClock("@hourly"))
    assert verdict.expected_at == at(2025, 12, 7, 1, 0, 0)
