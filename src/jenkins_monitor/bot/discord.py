"""Discord webhook delivery: log mirroring for operators and job alerts."""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence, Tuple

import httpx

from jenkins_monitor.bot.base import AlertSink
from jenkins_monitor.errors import SinkError
from jenkins_monitor.utils.logger.config import LogEvent, LogLevel
from jenkins_monitor.utils.logger.handlers.base import BaseLogHandler

DISCORD_MAX_CHARS = 2000
ZERO_WIDTH_SPACE = "\u200b"


def fence_code(text: str, lang: str = "") -> str:
    """Wrap ``text`` in a Discord code block.

    Backtick runs already inside ``text`` are broken with a zero-width space
    so they cannot close the block early.
    """
    body = text.replace("```", "```" + ZERO_WIDTH_SPACE)
    return f"```{lang}\n{body}\n```"


def calc_fence_overhead(lang: str = "") -> int:
    """Characters :func:`fence_code` adds around a body without fences."""
    return len("```\n\n```") + len(lang)


def chunk_text(text: str, limit: int) -> List[str]:
    """Cut ``text`` into pieces of at most ``limit`` characters (at least one piece)."""
    return [text[i : i + limit] for i in range(0, len(text), limit)] or [""]


def pack_lines(lines: Sequence[str], *, max_lines: int, max_chars: int) -> List[str]:
    """Group log lines into post bodies.

    Each body joins at most ``max_lines`` lines with newlines and stays within
    ``max_chars``; a single line longer than ``max_chars`` is split on its own.

    :param lines: Rendered log lines in emission order.
    :param max_lines: Upper bound on lines per body.
    :param max_chars: Upper bound on characters per body.
    :return: Bodies ready to be posted, in order.
    """
    max_chars = max(1, max_chars)
    posts: List[str] = []
    pending: List[str] = []
    size = 0
    for line in lines:
        pieces = chunk_text(line, max_chars)
        for piece in pieces:
            needed = len(piece) + (1 if pending else 0)
            if pending and (len(pending) >= max_lines or size + needed > max_chars):
                posts.append("\n".join(pending))
                pending, size = [], 0
                needed = len(piece)
            pending.append(piece)
            size += needed
    if pending:
        posts.append("\n".join(pending))
    return posts


class DiscordTransport:
    """One webhook endpoint plus the HTTP client used to post to it."""

    def __init__(
        self,
        webhook_url: str,
        *,
        username: str | None = None,
        suppress_mentions: bool = True,
        http_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Keep webhook settings; the client is opened lazily.

        :param webhook_url: Discord webhook URL.
        :param username: Author name shown on posts.
        :param suppress_mentions: Disable ``@everyone``/``@here`` pings.
        :param http_timeout: Request timeout in seconds.
        :param transport: httpx transport override.
        """
        self.url = webhook_url
        self.username = username
        self.suppress_mentions = suppress_mentions
        self.http_timeout = http_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.http_timeout, transport=self._transport)

    async def shutdown(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _payload(self, content: str) -> dict:
        payload = {"content": content}
        if self.username:
            payload["username"] = self.username
        if self.suppress_mentions:
            payload["allowed_mentions"] = {"parse": []}
        return payload

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        try:
            return float(response.json().get("retry_after", 1))
        except (ValueError, AttributeError):
            return float(response.headers.get("Retry-After", "1"))

    async def send(self, content: str, *, thread_id: int | None = None) -> bool:
        """Post ``content``; a 429 is waited out and retried once.

        :return: ``True`` if Discord answered 2xx.
        """
        await self.start()
        params = {"thread_id": str(thread_id)} if thread_id is not None else {}
        payload = self._payload(content)

        for rate_limited_before in (False, True):
            try:
                response = await self._client.post(self.url, params=params, json=payload)
            except httpx.RequestError:
                return False
            if response.status_code != 429 or rate_limited_before:
                return response.is_success
            await asyncio.sleep(max(0.0, self._retry_after(response)))
        return False


class DiscordHandler(BaseLogHandler):
    """Log handler forwarding ERROR and above to a Discord channel.

    ``push`` is called from the logger's ingest task and must not block on
    the network, so lines are queued and posted by a background worker. When
    the queue is full new lines are dropped.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        min_level: LogLevel = LogLevel.ERROR,
        username: str | None = None,
        thread_id: int | None = None,
        http_timeout: float = 5.0,
        queue_size: int = 1000,
        max_lines_per_post: int = 50,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self.transport = DiscordTransport(
            webhook_url, username=username, http_timeout=http_timeout, transport=transport
        )
        self.min_level = min_level
        self.thread_id = thread_id
        self.max_lines = max_lines_per_post
        self.max_chars = DISCORD_MAX_CHARS - 100 - calc_fence_overhead()
        self._queue: asyncio.Queue[Tuple[str, ...]] = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None

    async def start(self):
        await self.transport.start()
        if self._worker is None:
            self._worker = asyncio.create_task(self._drain(), name="discord-log-handler")

    async def shutdown(self, timeout: float = 5.0):
        """Give queued lines ``timeout`` seconds to go out, then stop."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            pass
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.transport.shutdown()

    async def push(self, records: List[LogEvent]):
        lines = tuple(ev.text for ev in records if ev.level >= self.min_level)
        if not lines:
            return
        try:
            self._queue.put_nowait(lines)
        except asyncio.QueueFull:
            pass

    async def _drain(self):
        while True:
            lines = await self._queue.get()
            try:
                for body in pack_lines(lines, max_lines=self.max_lines, max_chars=self.max_chars):
                    await self.transport.send(fence_code(body), thread_id=self.thread_id)
            finally:
                self._queue.task_done()


class DiscordAlertSink(AlertSink):
    """Deliver monitor alerts as single Discord posts.

    Alerts do not go through a queue, so a rejected post surfaces as
    :class:`SinkError` to the caller.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        username: str | None = "Jenkins Monitor",
        thread_id: int | None = None,
        http_timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.transport = DiscordTransport(
            webhook_url, username=username, http_timeout=http_timeout, transport=transport,
        )
        self.thread_id = thread_id

    async def start(self) -> None:
        await self.transport.start()

    async def shutdown(self) -> None:
        await self.transport.shutdown()

    @staticmethod
    def render(subject: str, body: str) -> str:
        """Bold title plus the fenced body, cut to fit one Discord message."""
        title = f"🚨 **{subject}**\n"
        room = DISCORD_MAX_CHARS - len(title) - calc_fence_overhead("text")
        return title + fence_code(chunk_text(body, max(1, room))[0], "text")

    async def send(self, subject: str, body: str) -> None:
        delivered = await self.transport.send(self.render(subject, body), thread_id=self.thread_id)
        if not delivered:
            raise SinkError(f"Discord webhook rejected alert '{subject}'")
