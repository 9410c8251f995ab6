import base64
from datetime import datetime
from typing import List

import httpx
import pytest

from jenkins_monitor.errors import MalformedUpstreamPayload, MalformedUpstreamReference, RetrievalFailed, UpstreamError
from jenkins_monitor.jenkins.rest import JenkinsClientAsync, RetryPolicy
from jenkins_monitor.jenkins.schedule import TimerSpec
from jenkins_monitor.model.job import BuildOutcome, JobSummary
from jenkins_monitor.utils.misc import UTC

BASE = "https://ci.example.com"


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def scripted(responses):
    """Transport answering each request with the next scripted item."""
    calls = []
    items = iter(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        item = next(items)
        if isinstance(item, Exception):
            raise item
        status, body = item
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler), calls


def make_client(dummy_logger, transport, sleep=None, **kwargs) -> JenkinsClientAsync:
    return JenkinsClientAsync(BASE, dummy_logger, transport=transport, sleep=sleep or RecordingSleep(), **kwargs)


@pytest.mark.asyncio
async def test_two_5xx_then_200_succeeds(dummy_logger):
    transport, calls = scripted([(500, {}), (502, {}), (200, {"ok": True})])
    sleep = RecordingSleep()
    async with make_client(dummy_logger, transport, sleep) as client:
        response = await client.request(f"{BASE}/api/json")

    assert response.status_code == 200
    assert len(calls) == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_three_5xx_returns_last_response(dummy_logger):
    transport, calls = scripted([(500, {}), (502, {}), (503, {})])
    async with make_client(dummy_logger, transport) as client:
        response = await client.request(f"{BASE}/api/json")

    assert response.status_code == 503
    assert len(calls) == 3
    assert len(dummy_logger.messages("WARNING")) == 3


@pytest.mark.asyncio
async def test_get_json_raises_upstream_error_after_5xx_exhaustion(dummy_logger):
    transport, _ = scripted([(500, {}), (500, {}), (503, {})])
    async with make_client(dummy_logger, transport) as client:
        with pytest.raises(UpstreamError) as excinfo:
            await client.get_json(f"{BASE}/api/json")
    assert excinfo.value.status == 503


@pytest.mark.asyncio
async def test_4xx_is_not_retried(dummy_logger):
    transport, calls = scripted([(404, {"error": "nope"})])
    sleep = RecordingSleep()
    async with make_client(dummy_logger, transport, sleep) as client:
        with pytest.raises(UpstreamError) as excinfo:
            await client.get_json(f"{BASE}/job/missing/api/json")

    assert excinfo.value.status == 404
    assert len(calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transport_failures_exhaust_into_retrieval_failed(dummy_logger):
    errors = [httpx.ConnectError("refused"), httpx.ReadTimeout("slow"), httpx.ConnectError("refused again")]
    transport, calls = scripted(errors)
    async with make_client(dummy_logger, transport) as client:
        with pytest.raises(RetrievalFailed) as excinfo:
            await client.request(f"{BASE}/api/json")

    assert len(calls) == 3
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, httpx.ConnectError)


@pytest.mark.asyncio
async def test_transport_failure_then_success(dummy_logger):
    transport, _ = scripted([httpx.ConnectError("refused"), (200, {"ok": True})])
    async with make_client(dummy_logger, transport) as client:
        assert await client.get_json(f"{BASE}/api/json") == {"ok": True}


@pytest.mark.asyncio
async def test_final_transport_failure_wins_over_earlier_5xx(dummy_logger):
    transport, _ = scripted([(500, {}), (500, {}), httpx.ConnectError("refused")])
    async with make_client(dummy_logger, transport) as client:
        with pytest.raises(RetrievalFailed):
            await client.request(f"{BASE}/api/json")


def test_backoff_is_capped():
    policy = RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=3.0)
    assert [policy.delay_for(n) for n in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_invalid_json_is_malformed_payload(dummy_logger):
    transport, _ = scripted([(200, "<html>login</html>")])
    async with make_client(dummy_logger, transport) as client:
        with pytest.raises(MalformedUpstreamPayload):
            await client.get_json(f"{BASE}/api/json")


@pytest.mark.asyncio
async def test_fetch_job_summary(dummy_logger):
    transport, calls = scripted([
        (200, {"lastBuild": {"number": 15, "url": "http://10.0.0.5:8080/job/f/job/x/15/"}}),
        (200, {"lastBuild": None}),
    ])
    async with make_client(dummy_logger, transport) as client:
        summary = await client.fetch_job_summary("f/x")
        empty = await client.fetch_job_summary("new job")

    assert summary == JobSummary("f/x", 15, "http://10.0.0.5:8080/job/f/job/x/15/")
    assert not empty.has_build
    assert str(calls[0].url) == f"{BASE}/job/f/job/x/api/json"
    assert calls[1].url.raw_path == b"/job/new%20job/api/json"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [[], {"lastBuild": "15"}, {"lastBuild": {"number": 1}}])
async def test_fetch_job_summary_rejects_bad_shapes(dummy_logger, payload):
    transport, _ = scripted([(200, payload)])
    async with make_client(dummy_logger, transport) as client:
        with pytest.raises(MalformedUpstreamPayload):
            await client.fetch_job_summary("x")


@pytest.mark.asyncio
async def test_fetch_last_build_reconciles_host(dummy_logger):
    transport, calls = scripted([(200, {"number": 15, "timestamp": 1765065600000, "result": "FAILURE"})])
    async with make_client(dummy_logger, transport) as client:
        snapshot = await client.fetch_last_build(JobSummary("x", 15, "http://10.0.0.5:8080/job/x/15/"))

    assert str(calls[0].url) == f"{BASE}/job/x/15/api/json"
    assert snapshot.outcome is BuildOutcome.FAILED
    assert snapshot.timestamp == datetime(2025, 12, 7, tzinfo=UTC)


@pytest.mark.asyncio
async def test_fetch_last_build_with_bad_reference(dummy_logger):
    transport, calls = scripted([])
    async with make_client(dummy_logger, transport) as client:
        with pytest.raises(MalformedUpstreamReference):
            await client.fetch_last_build("/job/x/15/")
    assert calls == []


@pytest.mark.asyncio
async def test_fetch_latest_build(dummy_logger):
    transport, _ = scripted([
        (200, {"lastBuild": {"number": 2, "url": f"{BASE}/job/x/2/"}}),
        (200, {"number": 2, "timestamp": 1765065600000, "result": None}),
        (200, {"lastBuild": None}),
    ])
    async with make_client(dummy_logger, transport) as client:
        running = await client.fetch_latest_build("x")
        missing = await client.fetch_latest_build("y")

    assert running.outcome is BuildOutcome.RUNNING
    assert missing is None


@pytest.mark.asyncio
async def test_fetch_job_schedule(dummy_logger):
    xml = "<?xml version='1.1'?><project><hudson.triggers.TimerTrigger><spec>0 3 * * *</spec></hudson.triggers.TimerTrigger></project>"
    transport, calls = scripted([(200, xml)])
    async with make_client(dummy_logger, transport) as client:
        assert await client.fetch_job_schedule("x") == TimerSpec("0 3 * * *")
    assert str(calls[0].url) == f"{BASE}/job/x/config.xml"


@pytest.mark.asyncio
async def test_basic_auth_and_accept_header(dummy_logger):
    transport, calls = scripted([(200, {}), (200, {})])
    async with make_client(dummy_logger, transport, username="bot", api_token="t0ken") as client:
        await client.get_json(f"{BASE}/api/json")
    async with make_client(dummy_logger, transport, username="bot") as client:
        await client.get_json(f"{BASE}/api/json")

    expected = "Basic " + base64.b64encode(b"bot:t0ken").decode()
    assert calls[0].headers["Authorization"] == expected
    assert calls[0].headers["Accept"] == "application/json"
    assert "Authorization" not in calls[1].headers


@pytest.mark.asyncio
async def test_test_connection(dummy_logger):
    transport, _ = scripted([(200, {"mode": "NORMAL"}), (401, {})])
    async with make_client(dummy_logger, transport) as client:
        assert await client.test_connection() is True
        assert await client.test_connection() is False
    assert any("connectivity check failed" in msg for msg in dummy_logger.messages("WARNING"))


@pytest.mark.asyncio
async def test_from_settings(dummy_logger):
    from jenkins_monitor.configs.settings import JenkinsSettings

    settings = JenkinsSettings(url="https://ci.example.com/", retry={"max_attempts": 2, "base_delay_ms": 250})
    client = JenkinsClientAsync.from_settings(settings, dummy_logger)

    assert client.base_url == BASE
    assert client.retry == RetryPolicy(max_attempts=2, base_delay=0.25, max_delay=30.0)
    await client.shutdown()
