from jenkins_monitor.configs.settings import (
    AlertSettings,
    AppConfig,
    JenkinsSettings,
    JobSettings,
    LoggingSettings,
    MonitorSettings,
    load_config,
    parse_config,
)

__all__ = [
    "AlertSettings",
    "AppConfig",
    "JenkinsSettings",
    "JobSettings",
    "LoggingSettings",
    "MonitorSettings",
    "load_config",
    "parse_config",
]
