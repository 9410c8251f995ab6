"""Cooldown-based alert de-duplication per job."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from jenkins_monitor.errors import RetrievalError
from jenkins_monitor.jenkins.urls import build_job_url
from jenkins_monitor.model.job import (
    AlertEvent,
    BuildOutcome,
    BuildSnapshot,
    ComplianceVerdict,
    GateState,
    JobRuntimeState,
    JobSpec,
)
from jenkins_monitor.utils.misc import format_utc, whole_minutes

DEFAULT_COOLDOWN = timedelta(hours=1)


class AlertGate:
    """Turn verdicts and retrieval errors into at most one alert per cooldown.

    ``gate_state`` tracks whether the job is currently misbehaving;
    ``last_alert_sent`` is the cooldown memory and survives a return to
    ``QUIET`` so a flapping job cannot re-alert inside the window.
    """

    def __init__(self, logger, cooldown: timedelta = DEFAULT_COOLDOWN, jenkins_url: str = "") -> None:
        self.logger = logger
        self.cooldown = cooldown
        self.jenkins_url = jenkins_url.rstrip("/")

    def cooldown_elapsed(self, state: JobRuntimeState, now: datetime) -> bool:
        if state.last_alert_sent is None:
            return True
        return now - state.last_alert_sent > self.cooldown

    def _fire(self, job: JobSpec, state: JobRuntimeState, now: datetime, subject: str, body: str) -> AlertEvent:
        state.last_alert_sent = now
        return AlertEvent(job_name=job.name, subject=subject, body=body, raised_at=now)

    def process_verdict(
        self,
        job: JobSpec,
        state: JobRuntimeState,
        verdict: ComplianceVerdict,
        now: datetime,
    ) -> Optional[AlertEvent]:
        """Apply a verdict to the job's gate and return the alert to send, if any."""
        if not verdict.is_overdue:
            if state.gate_state is GateState.ALERTING:
                self.logger.info(f"Job '{job.name}' recovered: {verdict.reason}")
            state.gate_state = GateState.QUIET
            return None

        state.gate_state = GateState.ALERTING
        if not self.cooldown_elapsed(state, now):
            self.logger.info(
                f"Alert suppressed for job '{job.name}' - last alert at "
                f"{format_utc(state.last_alert_sent)} is within the {whole_minutes(self.cooldown)} min cooldown"
            )
            return None

        body = self.overdue_body(job, state.last_build_snapshot, verdict, now)
        return self._fire(job, state, now, f"Jenkins Job Alert: {job.name}", body)

    def process_retrieval_error(
        self,
        job: JobSpec,
        state: JobRuntimeState,
        error: RetrievalError,
        now: datetime,
        default_alert_on_error: bool,
    ) -> Optional[AlertEvent]:
        """Alert on a failure to read the job from Jenkins, if policy allows."""
        if not job.wants_error_alerts(default_alert_on_error):
            self.logger.debug(f"Retrieval error alerts disabled for job '{job.name}'")
            return None
        if not self.cooldown_elapsed(state, now):
            self.logger.info(
                f"Retrieval error alert suppressed for job '{job.name}' - within cooldown"
            )
            return None

        body = (
            "Jenkins Monitor Alert\n\n"
            f"Job: {job.name}\n"
            "Status: Unable to retrieve job status from Jenkins\n\n"
            f"Error: {type(error).__name__}: {error}\n"
            f"Time: {format_utc(now)}\n\n"
            f"Jenkins URL: {self.jenkins_url}"
        )
        return self._fire(job, state, now, f"Jenkins Monitor Error: {job.name}", body)

    def overdue_body(
        self,
        job: JobSpec,
        build: Optional[BuildSnapshot],
        verdict: ComplianceVerdict,
        now: datetime,
    ) -> str:
        job_url = build_job_url(self.jenkins_url, job.name)
        if build is None:
            return (
                "Jenkins Monitor Alert\n\n"
                f"Job: {job.name}\n"
                "Status: No builds found\n\n"
                f"Reason: {verdict.reason}\n"
                f"Expected Schedule: {job.cron_expression}\n"
                "Last Build: None\n"
                f"Alert Threshold: {job.alert_threshold_minutes} minutes\n\n"
                "The job has no build history and should have run by now.\n"
                "Please check Jenkins for issues.\n\n"
                f"Jenkins URL: {job_url}"
            )
        if build.outcome is BuildOutcome.FAILED:
            return (
                "Jenkins Monitor Alert\n\n"
                f"Job: {job.name}\n"
                "Status: Last build failed\n\n"
                f"Reason: {verdict.reason}\n"
                f"Expected Schedule: {job.cron_expression}\n"
                f"Last Build: {format_utc(build.timestamp)} (Build #{build.build_number})\n"
                f"Build Result: {build.result or build.outcome.value}\n"
                f"Time Since Last Build: {whole_minutes(now - build.timestamp)} minutes\n\n"
                "Please check the build log in Jenkins.\n\n"
                f"Jenkins URL: {job_url}"
            )
        return (
            "Jenkins Monitor Alert\n\n"
            f"Job: {job.name}\n"
            "Status: Job has not run as expected\n\n"
            f"Reason: {verdict.reason}\n"
            f"Expected Schedule: {job.cron_expression}\n"
            f"Last Expected Run: {format_utc(verdict.expected_at)}\n"
            f"Last Build: {format_utc(build.timestamp)} (Build #{build.build_number})\n"
            f"Build Result: {build.result or build.outcome.value}\n"
            f"Time Since Last Build: {whole_minutes(now - build.timestamp)} minutes\n"
            f"Alert Threshold: {job.alert_threshold_minutes} minutes\n\n"
            "Please check Jenkins for issues.\n\n"
            f"Jenkins URL: {job_url}"
        )
