"""Async Jenkins JSON API client with bounded retry."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from jenkins_monitor.errors import (
    MalformedUpstreamPayload,
    RetrievalError,
    RetrievalFailed,
    UpstreamError,
)
from jenkins_monitor.jenkins.schedule import TimerSpec, extract_timer_spec
from jenkins_monitor.jenkins.urls import (
    build_api_url_from_last_build,
    build_job_api_url,
    build_job_config_url,
    describe_origin,
)
from jenkins_monitor.model.job import BuildSnapshot, JobSummary
from jenkins_monitor.monitor.classifier import snapshot_from_payload


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff applied to transport failures and 5xx answers."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


class JenkinsClientAsync:
    """Context-managed reader for job summaries, builds and schedules."""

    def __init__(
        self,
        base_url: str,
        logger,
        *,
        username: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: float = 30.0,
        retry: RetryPolicy = RetryPolicy(),
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Store connection parameters; the HTTP client is opened by :meth:`start`.

        :param base_url: Jenkins root URL, e.g. ``https://jenkins.example.com``.
        :param logger: Logger used for retry and connectivity messages.
        :param username: Basic-auth user; ignored unless ``api_token`` is set too.
        :param api_token: Jenkins API token for ``username``.
        :param timeout: Per-request timeout in seconds.
        :param retry: Backoff policy for transient failures.
        :param transport: Optional httpx transport (tests inject a mock).
        :param sleep: Awaitable used between attempts.
        """
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.timeout = timeout
        self.retry = retry
        self._auth = (username, api_token) if username and api_token else None
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings, logger, **kwargs) -> "JenkinsClientAsync":
        """Build a client from :class:`~jenkins_monitor.configs.settings.JenkinsSettings`."""
        return cls(
            settings.url,
            logger,
            username=settings.username,
            api_token=settings.api_token,
            timeout=settings.timeout_secs,
            retry=RetryPolicy(
                max_attempts=settings.retry.max_attempts,
                base_delay=settings.retry.base_delay_ms / 1000,
                max_delay=settings.retry.max_delay_ms / 1000,
            ),
            **kwargs,
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=self._auth,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )

    async def shutdown(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, url: str) -> httpx.Response:
        """GET ``url`` with retry on transport errors and 5xx responses.

        4xx answers are returned on the first attempt. When every attempt ends
        in a 5xx the last response is returned so the caller sees the status.

        :raises RetrievalFailed: If every attempt failed at the transport level.
        """
        if self._client is None:
            await self.start()

        attempts = max(1, self.retry.max_attempts)
        last_error: Optional[BaseException] = None
        response: Optional[httpx.Response] = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.get(url)
                last_error = None
            except httpx.TransportError as exc:
                response = None
                last_error = exc
                self.logger.warning(
                    f"Jenkins request failed (attempt {attempt}/{attempts}) {url}: {type(exc).__name__}: {exc}"
                )
            else:
                if response.status_code < 500:
                    return response
                self.logger.warning(
                    f"Jenkins returned HTTP {response.status_code} (attempt {attempt}/{attempts}) for {url}"
                )

            if attempt < attempts:
                await self._sleep(self.retry.delay_for(attempt))

        if response is not None:
            return response
        raise RetrievalFailed(url, attempts, last_error)

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and decode its JSON body.

        :raises UpstreamError: For any non-2xx final status.
        :raises MalformedUpstreamPayload: If the body is not JSON.
        """
        response = await self.request(url)
        if not response.is_success:
            raise UpstreamError(response.status_code, url)
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedUpstreamPayload(url, f"invalid JSON: {exc}") from exc

    async def get_text(self, url: str) -> str:
        response = await self.request(url)
        if not response.is_success:
            raise UpstreamError(response.status_code, url)
        return response.text

    async def fetch_job_summary(self, job_name: str) -> JobSummary:
        """Read a job's top-level document and its ``lastBuild`` reference."""
        url = build_job_api_url(self.base_url, job_name)
        payload = await self.get_json(url)
        if not isinstance(payload, dict):
            raise MalformedUpstreamPayload(url, f"expected a JSON object, got {type(payload).__name__}")

        last_build = payload.get("lastBuild")
        if last_build is None:
            return JobSummary(name=job_name)
        if not isinstance(last_build, dict):
            raise MalformedUpstreamPayload(url, f"'lastBuild' must be an object or null, got {last_build!r}")

        build_url = last_build.get("url")
        if not isinstance(build_url, str):
            raise MalformedUpstreamPayload(url, f"'lastBuild.url' must be a string, got {build_url!r}")
        number = last_build.get("number")
        if isinstance(number, bool) or not isinstance(number, int):
            number = None
        return JobSummary(name=job_name, last_build_number=number, last_build_url=build_url)

    async def fetch_last_build(self, summary_or_url: Union[JobSummary, str]) -> BuildSnapshot:
        """Read the build referenced by a job summary (or a raw ``lastBuild.url``).

        :raises MalformedUpstreamReference: If the reference cannot be reconciled.
        """
        if isinstance(summary_or_url, JobSummary):
            reference = summary_or_url.last_build_url
            if reference is None:
                raise MalformedUpstreamPayload(
                    build_job_api_url(self.base_url, summary_or_url.name), "job has no last build"
                )
        else:
            reference = summary_or_url
        url = build_api_url_from_last_build(reference, self.base_url)
        payload = await self.get_json(url)
        return snapshot_from_payload(payload, url)

    async def fetch_latest_build(self, job_name: str) -> Optional[BuildSnapshot]:
        """Summary then build in one call; ``None`` when the job never ran."""
        summary = await self.fetch_job_summary(job_name)
        if not summary.has_build:
            return None
        return await self.fetch_last_build(summary)

    async def fetch_job_schedule(self, job_name: str) -> Optional[TimerSpec]:
        """Return the timer trigger spec from the job's ``config.xml``, if any."""
        url = build_job_config_url(self.base_url, job_name)
        return extract_timer_spec(await self.get_text(url))

    async def test_connection(self) -> bool:
        """Probe the Jenkins root API; failures are logged, not raised."""
        url = f"{self.base_url}/api/json"
        try:
            await self.get_json(url)
        except RetrievalError as exc:
            self.logger.warning(f"Jenkins connectivity check failed for {describe_origin(self.base_url)}: {exc}")
            return False
        self.logger.info(f"Connected to Jenkins at {describe_origin(self.base_url)}")
        return True
