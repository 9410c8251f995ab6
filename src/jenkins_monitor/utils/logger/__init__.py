from jenkins_monitor.utils.logger.config import LogEvent, LogLevel, LoggerConfig
from jenkins_monitor.utils.logger.logger import Logger

__all__ = ["LogEvent", "LogLevel", "Logger", "LoggerConfig"]
