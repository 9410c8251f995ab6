from datetime import datetime
from typing import Any, List, Tuple

import pytest

from jenkins_monitor.model.job import JobSpec
from jenkins_monitor.utils.misc import UTC


class DummyLogger:
    def __init__(self) -> None:
        self.records: List[Tuple[str, str]] = []

    def _record(self, level: str, msg: Any) -> None:
        self.records.append((level, str(msg)))

    def trace(self, msg: Any) -> None:
        self._record("TRACE", msg)

    def debug(self, msg: Any) -> None:
        self._record("DEBUG", msg)

    def info(self, msg: Any) -> None:
        self._record("INFO", msg)

    def warning(self, msg: Any) -> None:
        self._record("WARNING", msg)

    def error(self, msg: Any) -> None:
        self._record("ERROR", msg)

    def critical(self, msg: Any) -> None:
        self._record("CRITICAL", msg)

    def messages(self, level: str) -> List[str]:
        return [msg for lvl, msg in self.records if lvl == level]


@pytest.fixture
def dummy_logger() -> DummyLogger:
    return DummyLogger()


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 12, 7, 2, 0, 0, tzinfo=UTC)


@pytest.fixture
def job_factory():
    def _factory(name: str = "nightly", **overrides: Any) -> JobSpec:
        data = {
            "name": name,
            "cron_expression": "0 0 0 * * *",
            "alert_threshold_minutes": 90,
        }
        data.update(overrides)
        return JobSpec(**data)

    return _factory
