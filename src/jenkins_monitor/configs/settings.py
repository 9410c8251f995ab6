"""YAML configuration loading and validation.

One :class:`AppConfig` value is built at startup by :func:`load_config` and
handed to the components that need it. Secrets may come from the environment
(see :class:`~jenkins_monitor.configs.env_config.Env`) and fill the matching
YAML fields when those are left empty.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlsplit

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from jenkins_monitor.errors import ConfigError
from jenkins_monitor.model.job import JobSpec
from jenkins_monitor.utils.casting import to_bool
from jenkins_monitor.utils.logger.config import LogLevel

DEFAULT_CONFIG_PATH = "monitor.yaml"


class RetrySettings(BaseModel):
    """Backoff for transient Jenkins failures (milliseconds)."""

    max_attempts: int = Field(3, ge=1)
    base_delay_ms: int = Field(500, ge=0)
    max_delay_ms: int = Field(30_000, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class JenkinsSettings(BaseModel):
    url: str
    username: Optional[str] = None
    api_token: Optional[str] = None
    timeout_secs: float = Field(30, gt=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parts = urlsplit(v.strip())
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Jenkins URL must be an absolute http(s) URL, got {v!r}")
        return v.strip().rstrip("/")


class MonitorSettings(BaseModel):
    check_interval_seconds: int = Field(60, gt=0)
    alert_on_retrieval_error: bool = True
    alert_cooldown_minutes: int = Field(60, ge=0)
    min_schedule_lookback_minutes: int = Field(0, ge=0)
    concurrency: Literal["sequential", "concurrent"] = "concurrent"

    model_config = ConfigDict(frozen=True, extra="forbid")


class JobSettings(BaseModel):
    name: str
    schedule: Optional[str] = Field(None, validation_alias=AliasChoices("schedule", "expected_schedule"))
    alert_threshold_mins: int = Field(
        60, ge=0, validation_alias=AliasChoices("alert_threshold_mins", "alert_threshold_minutes")
    )
    enabled: bool = True
    alert_on_error: Optional[bool] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip(" /"):
            raise ValueError("Job name cannot be empty")
        return v.strip()

    @field_validator("schedule")
    @classmethod
    def blank_schedule_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    def to_spec(self) -> JobSpec:
        return JobSpec(
            name=self.name,
            cron_expression=self.schedule,
            alert_threshold_minutes=self.alert_threshold_mins,
            enabled=self.enabled,
            alert_on_retrieval_error=self.alert_on_error,
        )


class DiscordSettings(BaseModel):
    webhook_url: Optional[str] = None
    username: str = "Jenkins Monitor"
    thread_id: Optional[int] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class EmailSettings(BaseModel):
    smtp_host: str
    smtp_port: int = Field(587, gt=0, le=65535)
    sender: str = Field(validation_alias=AliasChoices("from", "sender"))
    to: List[str] = Field(..., min_length=1)
    username: Optional[str] = None
    password: Optional[str] = None
    starttls: bool = True

    model_config = ConfigDict(frozen=True, extra="forbid")


class AlertSettings(BaseModel):
    discord: Optional[DiscordSettings] = None
    email: Optional[EmailSettings] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class LoggingSettings(BaseModel):
    level: str = "INFO"
    dir: str = "logs"
    stdout: bool = True
    discord_errors: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v: Any) -> str:
        return LogLevel.parse(v).name


class AppConfig(BaseModel):
    """Complete, validated service configuration."""

    jenkins: JenkinsSettings
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    jobs: List[JobSettings] = Field(..., min_length=1)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def validate_unique_jobs(self) -> "AppConfig":
        seen = set()
        for job in self.jobs:
            if job.name in seen:
                raise ValueError(f"Duplicate job name: {job.name!r}")
            seen.add(job.name)
        return self

    def job_specs(self) -> List[JobSpec]:
        return [job.to_spec() for job in self.jobs]

    @property
    def discord_webhook(self) -> Optional[str]:
        if self.alerts.discord is None:
            return None
        return self.alerts.discord.webhook_url


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key)
    if value is None:
        value = raw[key] = {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{key}' must be a mapping, got {type(value).__name__}")
    return value


def apply_env(raw: Dict[str, Any], env) -> Dict[str, Any]:
    """Fill secrets and the Jenkins URL from ``env`` where YAML leaves them empty.

    ``LOG_LEVEL``, ``LOG_DIR`` and ``LOG_STDOUT`` override the ``logging`` section.
    """
    jenkins = _section(raw, "jenkins")
    for key, value in (
        ("url", env.JENKINS_URL),
        ("username", env.JENKINS_USERNAME),
        ("api_token", env.JENKINS_API_TOKEN),
    ):
        if value and not jenkins.get(key):
            jenkins[key] = value

    alerts = _section(raw, "alerts")
    if env.DISCORD_WEBHOOK_URL:
        discord = alerts.get("discord")
        if discord is None:
            alerts["discord"] = {"webhook_url": env.DISCORD_WEBHOOK_URL}
        elif isinstance(discord, dict) and not discord.get("webhook_url"):
            discord["webhook_url"] = env.DISCORD_WEBHOOK_URL
    email = alerts.get("email")
    if isinstance(email, dict):
        if env.SMTP_USERNAME and not email.get("username"):
            email["username"] = env.SMTP_USERNAME
        if env.SMTP_PASSWORD and not email.get("password"):
            email["password"] = env.SMTP_PASSWORD

    logging_section = _section(raw, "logging")
    if env.LOG_LEVEL:
        logging_section["level"] = env.LOG_LEVEL
    if env.LOG_DIR:
        logging_section["dir"] = env.LOG_DIR
    if env.LOG_STDOUT:
        try:
            logging_section["stdout"] = to_bool(env.LOG_STDOUT)
        except ValueError as exc:
            raise ConfigError(f"LOG_STDOUT: {exc}") from exc
    return raw


def parse_config(raw: Any, env=None) -> AppConfig:
    """Validate an already-decoded YAML document.

    :raises ConfigError: If the document does not describe a valid configuration.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(raw).__name__}")
    if env is not None:
        raw = apply_env(raw, env)
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration:\n{exc}") from exc


def load_config(path: Optional[Path | str] = None, env=None) -> AppConfig:
    """Read and validate the YAML configuration file.

    :param path: Config file; ``env.MONITOR_CONFIG`` or ``monitor.yaml`` if omitted.
    :param env: Environment holder, :class:`Env` by default.
    :return: Validated configuration.
    :raises ConfigError: If the file is missing, unreadable or invalid.
    """
    if env is None:
        from jenkins_monitor.configs.env_config import Env

        env = Env
    path = Path(path or env.MONITOR_CONFIG or DEFAULT_CONFIG_PATH)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {str(path)!r}: {exc}") from exc
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {str(path)!r}: {exc}") from exc
    return parse_config(raw, env)
