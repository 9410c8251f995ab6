from jenkins_monitor.utils.logger.handlers.base import BaseLogHandler
from jenkins_monitor.utils.logger.handlers.file import ErrorFileHandler, RotatingFileHandler

__all__ = ["BaseLogHandler", "ErrorFileHandler", "RotatingFileHandler"]
