"""Map raw Jenkins build records onto semantic outcomes."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from jenkins_monitor.errors import MalformedUpstreamPayload
from jenkins_monitor.model.job import BuildOutcome, BuildSnapshot
from jenkins_monitor.utils.misc import from_epoch_ms

SUCCESS_MARKER = "SUCCESS"


def classify(raw_result: Optional[str]) -> BuildOutcome:
    """Classify a Jenkins ``result`` field.

    ``None`` means the build has not finished yet and is reported as
    ``RUNNING``; it is never a failure. An empty string carries no result
    either and is treated the same way. Anything other than the exact
    ``SUCCESS`` marker (``FAILURE``, ``UNSTABLE``, ``ABORTED``...) is ``FAILED``.
    """
    if raw_result is None or raw_result == "":
        return BuildOutcome.RUNNING
    if raw_result == SUCCESS_MARKER:
        return BuildOutcome.SUCCESS
    return BuildOutcome.FAILED


def snapshot_from_payload(payload: Any, url: str = "") -> BuildSnapshot:
    """Build a :class:`BuildSnapshot` from a ``/api/json`` build document.

    :param payload: Decoded JSON body of the build endpoint.
    :param url: Request URL, used in error messages.
    :return: Snapshot with the classified outcome.
    :raises MalformedUpstreamPayload: If required fields are missing or mistyped.
    """
    if not isinstance(payload, Mapping):
        raise MalformedUpstreamPayload(url, f"expected a JSON object, got {type(payload).__name__}")

    number = payload.get("number")
    timestamp = payload.get("timestamp")
    if isinstance(number, bool) or not isinstance(number, int):
        raise MalformedUpstreamPayload(url, f"build 'number' must be an integer, got {number!r}")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise MalformedUpstreamPayload(url, f"build 'timestamp' must be epoch millis, got {timestamp!r}")

    result = payload.get("result")
    if result is not None and not isinstance(result, str):
        raise MalformedUpstreamPayload(url, f"build 'result' must be a string or null, got {result!r}")

    try:
        started_at = from_epoch_ms(int(timestamp))
    except ValueError as exc:
        raise MalformedUpstreamPayload(url, str(exc)) from exc

    display_name = payload.get("displayName")
    return BuildSnapshot(
        build_number=number,
        timestamp=started_at,
        outcome=classify(result),
        result=result,
        display_name=display_name if isinstance(display_name, str) else None,
    )
