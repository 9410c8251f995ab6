"""Assemble the alert sink described by the ``alerts`` configuration section."""

from __future__ import annotations

from typing import List

from jenkins_monitor.bot.base import AlertSink, LoggingAlertSink, MultiAlertSink
from jenkins_monitor.bot.discord import DiscordAlertSink
from jenkins_monitor.bot.email import EmailAlertSink


def build_alert_sink(alerts, logger) -> AlertSink:
    """Return one sink for every configured transport.

    :param alerts: Parsed ``AlertSettings``.
    :param logger: Logger for the fallback and fan-out sinks.
    :return: A single sink, a :class:`MultiAlertSink`, or a
        :class:`LoggingAlertSink` when nothing is configured.
    """
    sinks: List[AlertSink] = []
    discord = alerts.discord
    if discord is not None and discord.webhook_url:
        sinks.append(DiscordAlertSink(discord.webhook_url, username=discord.username, thread_id=discord.thread_id))
    email = alerts.email
    if email is not None:
        sinks.append(
            EmailAlertSink(
                email.smtp_host,
                email.sender,
                email.to,
                smtp_port=email.smtp_port,
                username=email.username,
                password=email.password,
                starttls=email.starttls,
            )
        )

    if not sinks:
        logger.warning("No alert transport configured; alerts will only be logged")
        return LoggingAlertSink(logger)
    if len(sinks) == 1:
        return sinks[0]
    return MultiAlertSink(sinks, logger)
