from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class BuildOutcome(str, Enum):
    """Semantic outcome of the most recent build of a job."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    RUNNING = "RUNNING"
    MISSING = "MISSING"


class VerdictStatus(str, Enum):
    OVERDUE = "OVERDUE"
    HEALTHY = "HEALTHY"


class GateState(str, Enum):
    QUIET = "QUIET"
    ALERTING = "ALERTING"


@dataclass(frozen=True)
class JobSpec:
    """Monitored job as declared in configuration."""

    name: str
    cron_expression: Optional[str]
    alert_threshold_minutes: int = 60
    enabled: bool = True
    alert_on_retrieval_error: Optional[bool] = None

    @property
    def alert_threshold(self) -> timedelta:
        return timedelta(minutes=self.alert_threshold_minutes)

    def wants_error_alerts(self, default: bool) -> bool:
        """Resolve the per-job override against the global default."""
        if self.alert_on_retrieval_error is None:
            return default
        return self.alert_on_retrieval_error


@dataclass(frozen=True)
class JobSummary:
    name: str
    last_build_number: Optional[int] = None
    last_build_url: Optional[str] = None

    @property
    def has_build(self) -> bool:
        return self.last_build_url is not None


@dataclass(frozen=True)
class BuildSnapshot:
    build_number: int
    timestamp: datetime
    outcome: BuildOutcome
    result: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class ComplianceVerdict:
    status: VerdictStatus
    reason: str
    expected_at: Optional[datetime] = None
    minutes_since_build: Optional[int] = None
    minutes_since_schedule: Optional[int] = None

    @property
    def is_overdue(self) -> bool:
        return self.status is VerdictStatus.OVERDUE


@dataclass(frozen=True)
class AlertEvent:
    job_name: str
    subject: str
    body: str
    raised_at: datetime


@dataclass
class JobRuntimeState:
    """Per-job memory kept by the monitor loop for the process lifetime."""

    last_check: datetime
    last_build_snapshot: Optional[BuildSnapshot] = None
    last_alert_sent: Optional[datetime] = None
    gate_state: GateState = GateState.QUIET
    last_verdict: Optional[ComplianceVerdict] = None
    last_error: Optional[str] = None

    def observe(self, now: datetime) -> None:
        """Advance ``last_check`` without ever moving it backwards."""
        if now > self.last_check:
            self.last_check = now

    @property
    def observed_outcome(self) -> BuildOutcome:
        if self.last_build_snapshot is None:
            return BuildOutcome.MISSING
        return self.last_build_snapshot.outcome
