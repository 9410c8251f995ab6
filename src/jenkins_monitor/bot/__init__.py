from jenkins_monitor.bot.base import AlertSink, LoggingAlertSink, MultiAlertSink
from jenkins_monitor.bot.discord import DiscordAlertSink, DiscordHandler
from jenkins_monitor.bot.email import EmailAlertSink
from jenkins_monitor.bot.factory import build_alert_sink

__all__ = [
    "AlertSink",
    "DiscordAlertSink",
    "DiscordHandler",
    "EmailAlertSink",
    "LoggingAlertSink",
    "MultiAlertSink",
    "build_alert_sink",
]
