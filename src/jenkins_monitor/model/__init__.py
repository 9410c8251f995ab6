from jenkins_monitor.model.job import (
    AlertEvent,
    BuildOutcome,
    BuildSnapshot,
    ComplianceVerdict,
    GateState,
    JobRuntimeState,
    JobSpec,
    JobSummary,
    VerdictStatus,
)

__all__ = [
    "AlertEvent",
    "BuildOutcome",
    "BuildSnapshot",
    "ComplianceVerdict",
    "GateState",
    "JobRuntimeState",
    "JobSpec",
    "JobSummary",
    "VerdictStatus",
]
