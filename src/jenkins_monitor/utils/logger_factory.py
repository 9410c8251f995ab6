"""Factories for application loggers and helper utilities."""

import traceback
from typing import List, Optional

from jenkins_monitor.utils.logger.config import LogLevel, LoggerConfig
from jenkins_monitor.utils.logger.handlers.base import BaseLogHandler
from jenkins_monitor.utils.logger.handlers.file import ErrorFileHandler, RotatingFileHandler
from jenkins_monitor.utils.logger.logger import Logger


class EnhancedLoggerFactory:
    """Convenience constructors for configured application loggers."""

    @staticmethod
    def create_application_logger(name: str = "jenkins_monitor",
                                  enable_stdout: bool = True,
                                  log_level: LogLevel = LogLevel.INFO,
                                  base_dir: str = "logs",
                                  config_prefix: Optional[str] = None,
                                  discord_webhook: Optional[str] = None) -> Logger:
        """Create the service logger with rotating file handlers.

        :param name: Logger name used in records and as default file prefix.
        :param enable_stdout: Whether to emit log lines to stdout.
        :param log_level: Minimum log level captured by the logger.
        :param base_dir: Directory receiving the log files.
        :param config_prefix: Optional subdirectory for log files; ``""`` disables it.
        :param discord_webhook: When set, ERROR+ lines are mirrored to this webhook.
        :return: Configured :class:`Logger` instance.
        """
        config = LoggerConfig(
            base_level=log_level,
            do_stdout=enable_stdout,
            str_format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        )
        prefix = name if config_prefix is None else config_prefix

        handlers: List[BaseLogHandler] = [
            RotatingFileHandler(base_dir=base_dir, filename_prefix=prefix, rotation="daily"),
            ErrorFileHandler(base_dir=base_dir, filename_prefix=prefix, rotation="daily"),
        ]
        if discord_webhook:
            from jenkins_monitor.bot.discord import DiscordHandler

            handlers.append(DiscordHandler(webhook_url=discord_webhook, username="Jenkins Monitor Logs"))

        return Logger(config=config, name=name, handlers=handlers)

    @staticmethod
    def from_settings(settings, discord_webhook: Optional[str] = None, name: str = "jenkins_monitor") -> Logger:
        """Build the service logger from a ``LoggingSettings`` section.

        :param settings: Parsed ``logging`` configuration section.
        :param discord_webhook: Webhook used when ``settings.discord_errors`` is on.
        :param name: Logger name.
        :return: Configured :class:`Logger` instance.
        """
        return EnhancedLoggerFactory.create_application_logger(
            name=name,
            enable_stdout=settings.stdout,
            log_level=LogLevel.parse(settings.level),
            base_dir=settings.dir,
            discord_webhook=discord_webhook if settings.discord_errors else None,
        )


def log_exception(logger, exc: BaseException, context: str = "") -> None:
    """Log an exception with traceback using the provided logger.

    :param logger: Logger instance used for reporting the failure.
    :param exc: Exception that should be logged.
    :param context: Optional textual context describing the failure.
    """
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    error_msg = f"EXCEPTION in {context}: {type(exc).__name__}: {exc}\n{tb_str}"
    logger.error(error_msg)
