from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from jenkins_monitor.configs.settings import AppConfig, load_config, parse_config
from jenkins_monitor.errors import ConfigError
from jenkins_monitor.monitor.cron_clock import CronClock
from jenkins_monitor.monitor.evaluator import lookback_for
from jenkins_monitor.utils.misc import UTC

ENV_KEYS = (
    "JENKINS_URL", "JENKINS_USERNAME", "JENKINS_API_TOKEN", "DISCORD_WEBHOOK_URL",
    "SMTP_USERNAME", "SMTP_PASSWORD", "MONITOR_CONFIG", "LOG_LEVEL", "LOG_DIR", "LOG_STDOUT",
)

VALID_YAML = """
jenkins:
  url: https://ci.example.com/
  username: bot
jobs:
  - name: nightly-build
    schedule: "0 0 0 * * *"
    alert_threshold_mins: 90
  - name: platform/integration-tests
    expected_schedule: "*/15 * * * *"
    alert_threshold_minutes: 30
    enabled: false
  - name: reports/weekly-export
    alert_on_error: false
"""


def fake_env(**values):
    data = {key: None for key in ENV_KEYS}
    data.update(values)
    return SimpleNamespace(**data)


def minimal(**jenkins):
    return {"jenkins": {"url": "https://ci.example.com", **jenkins}, "jobs": [{"name": "a", "schedule": "@daily"}]}


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "monitor.yaml"
    path.write_text(VALID_YAML, encoding="utf-8")
    return path


def test_load_valid_config(config_file):
    config = load_config(config_file, env=fake_env())

    assert isinstance(config, AppConfig)
    assert config.jenkins.url == "https://ci.example.com"
    assert config.jenkins.timeout_secs == 30
    assert config.jenkins.retry.max_attempts == 3
    assert config.monitor.check_interval_seconds == 60
    assert config.monitor.concurrency == "concurrent"
    assert config.logging.level == "INFO"
    assert config.discord_webhook is None


def test_job_specs_use_aliases_and_defaults(config_file):
    specs = load_config(config_file, env=fake_env()).job_specs()

    assert [spec.name for spec in specs] == ["nightly-build", "platform/integration-tests", "reports/weekly-export"]
    assert specs[0].alert_threshold_minutes == 90
    assert specs[1].cron_expression == "*/15 * * * *"
    assert specs[1].alert_threshold_minutes == 30
    assert specs[1].enabled is False
    assert specs[2].cron_expression is None
    assert specs[2].alert_threshold_minutes == 60
    assert specs[2].alert_on_retrieval_error is False


def test_monitor_config_env_selects_file(config_file):
    config = load_config(env=fake_env(MONITOR_CONFIG=str(config_file)))
    assert len(config.jobs) == 3


def test_env_fills_empty_fields_only():
    raw = minimal(username="yaml-user")
    raw["alerts"] = {"email": {"smtp_host": "smtp", "from": "m@example.com", "to": ["a@example.com"]}}
    env = fake_env(
        JENKINS_URL="https://other.example.com",
        JENKINS_USERNAME="env-user",
        JENKINS_API_TOKEN="t0ken",
        DISCORD_WEBHOOK_URL="https://discord.com/api/webhooks/1/abc",
        SMTP_PASSWORD="pw",
        LOG_LEVEL="debug",
        LOG_DIR="/var/log/monitor",
        LOG_STDOUT="off",
    )

    config = parse_config(raw, env)

    assert config.jenkins.url == "https://ci.example.com"
    assert config.jenkins.username == "yaml-user"
    assert config.jenkins.api_token == "t0ken"
    assert config.discord_webhook == "https://discord.com/api/webhooks/1/abc"
    assert config.alerts.email.password == "pw"
    assert config.alerts.email.username is None
    assert config.logging.level == "DEBUG"
    assert config.logging.dir == "/var/log/monitor"
    assert config.logging.stdout is False


def test_env_supplies_missing_url():
    raw = {"jobs": [{"name": "a", "schedule": "@daily"}]}
    config = parse_config(raw, fake_env(JENKINS_URL="https://ci.example.com/"))
    assert config.jenkins.url == "https://ci.example.com"


def test_blank_schedule_becomes_none():
    raw = minimal()
    raw["jobs"][0]["schedule"] = "   "
    assert parse_config(raw).jobs[0].schedule is None


@pytest.mark.parametrize(
    "mutate",
    [
        lambda raw: raw.update(jobs=[]),
        lambda raw: raw.update(jobs=[{"name": "a"}, {"name": "a"}]),
        lambda raw: raw["jenkins"].update(url="ci.example.com"),
        lambda raw: raw["jenkins"].update(url="ftp://ci.example.com"),
        lambda raw: raw.update(monitor={"concurrency": "parallel"}),
        lambda raw: raw.update(monitor={"check_interval_seconds": 0}),
        lambda raw: raw.update(logging={"level": "loud"}),
        lambda raw: raw.update(unknown_section={}),
        lambda raw: raw["jobs"][0].update(name=" / "),
        lambda raw: raw["jobs"][0].update(alert_threshold_mins=-1),
        lambda raw: raw.update(jenkins=["not", "a", "mapping"]),
    ],
)
def test_invalid_documents(mutate):
    raw = minimal()
    mutate(raw)
    with pytest.raises(ConfigError):
        parse_config(raw, fake_env())


def test_non_mapping_document():
    with pytest.raises(ConfigError):
        parse_config(["jobs"])


def test_bad_log_stdout_is_config_error():
    with pytest.raises(ConfigError, match="LOG_STDOUT"):
        parse_config(minimal(), fake_env(LOG_STDOUT="sometimes"))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Failed to read"):
        load_config(tmp_path / "absent.yaml", env=fake_env())


def test_malformed_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("jenkins: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(path, env=fake_env())


def test_retry_settings_reach_client_policy():
    raw = minimal(retry={"max_attempts": 5, "base_delay_ms": 100, "max_delay_ms": 1000})
    retry = parse_config(raw).jenkins.retry
    assert (retry.max_attempts, retry.base_delay_ms, retry.max_delay_ms) == (5, 100, 1000)


def test_example_config_schedules_can_be_evaluated_at_any_hour():
    example = Path(__file__).resolve().parents[2] / "monitor.yaml"
    config = load_config(example, env=fake_env())
    min_lookback = timedelta(minutes=config.monitor.min_schedule_lookback_minutes)

    for job in config.job_specs():
        if job.cron_expression is None:
            continue
        clock = CronClock(job.cron_expression)
        window = lookback_for(job, min_lookback)
        for hour in range(24):
            now = datetime(2025, 12, 7, hour, 30, tzinfo=UTC)
            assert clock.most_recent_firing(now, window) is not None, (job.name, hour)
