import pytest

from jenkins_monitor.bot.base import AlertSink, LoggingAlertSink, MultiAlertSink
from jenkins_monitor.bot.discord import DiscordAlertSink
from jenkins_monitor.bot.email import EmailAlertSink
from jenkins_monitor.bot.factory import build_alert_sink
from jenkins_monitor.configs.settings import AlertSettings
from jenkins_monitor.errors import SinkError


class Recorder(AlertSink):
    def __init__(self):
        self.sent = []

    async def send(self, subject, body):
        self.sent.append(subject)


class Broken(AlertSink):
    async def send(self, subject, body):
        raise SinkError("down")


@pytest.mark.asyncio
async def test_logging_sink_logs_alert(dummy_logger):
    await LoggingAlertSink(dummy_logger).send("Jenkins Job Alert: x", "late")
    warnings = dummy_logger.messages("WARNING")
    assert "Subject: Jenkins Job Alert: x" in warnings


@pytest.mark.asyncio
async def test_multi_sink_tries_every_sink(dummy_logger):
    first, second = Recorder(), Recorder()
    sink = MultiAlertSink([first, Broken(), second], dummy_logger)

    with pytest.raises(SinkError):
        await sink.send("s", "b")

    assert first.sent == ["s"]
    assert second.sent == ["s"]
    assert any("Broken failed" in msg for msg in dummy_logger.messages("ERROR"))


def test_factory_falls_back_to_logging(dummy_logger):
    assert isinstance(build_alert_sink(AlertSettings(), dummy_logger), LoggingAlertSink)


def test_factory_builds_configured_sinks(dummy_logger):
    alerts = AlertSettings.model_validate({
        "discord": {"webhook_url": "https://discord.com/api/webhooks/1/abc"},
        "email": {"smtp_host": "smtp.example.com", "from": "m@example.com", "to": ["a@example.com"]},
    })
    sink = build_alert_sink(alerts, dummy_logger)

    assert isinstance(sink, MultiAlertSink)
    assert [type(s) for s in sink.sinks] == [DiscordAlertSink, EmailAlertSink]


def test_factory_single_sink(dummy_logger):
    alerts = AlertSettings.model_validate({
        "email": {"smtp_host": "smtp.example.com", "from": "m@example.com", "to": ["a@example.com"]},
    })
    sink = build_alert_sink(alerts, dummy_logger)
    assert isinstance(sink, EmailAlertSink)
    assert sink.sender == "m@example.com"
