"""SMTP alert sink."""

from __future__ import annotations

import asyncio
import smtplib
from email.mime.text import MIMEText
from typing import Optional, Sequence

from jenkins_monitor.bot.base import AlertSink
from jenkins_monitor.errors import SinkError


class EmailAlertSink(AlertSink):
    """Send each alert as a plain-text email through an SMTP relay."""

    def __init__(
        self,
        smtp_host: str,
        sender: str,
        recipients: Sequence[str],
        *,
        smtp_port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        if not recipients:
            raise ValueError("EmailAlertSink needs at least one recipient")
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender
        self.recipients = list(recipients)
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def build_message(self, subject: str, body: str) -> MIMEText:
        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self.sender
        message["To"] = ", ".join(self.recipients)
        message["Subject"] = subject
        return message

    def _deliver(self, message: MIMEText) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            if self.starttls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message, from_addr=self.sender, to_addrs=self.recipients)

    async def send(self, subject: str, body: str) -> None:
        message = self.build_message(subject, body)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise SinkError(f"SMTP delivery to {self.smtp_host}:{self.smtp_port} failed: {exc}") from exc
