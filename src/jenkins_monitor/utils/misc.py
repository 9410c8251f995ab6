"""Time and formatting utilities used across the project."""

from __future__ import annotations

import datetime
import time
from typing import Optional
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")

_MICROS_PER_MINUTE = 60 * 1_000_000


def time_s() -> float:
    """Return the current wall-clock time in seconds as a float."""

    return time.time()


def utc_now() -> datetime.datetime:
    """Return the current instant as an aware UTC datetime."""

    return datetime.datetime.now(tz=UTC)


def time_iso8601() -> str:
    """Return the current UTC time formatted as ``YYYY-MM-DDTHH:MM:SS.fffZ``."""

    dt = datetime.datetime.now(datetime.timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def from_epoch_ms(value: int) -> datetime.datetime:
    """Convert a Jenkins epoch-millisecond timestamp to an aware UTC datetime.

    :param value: Milliseconds since the Unix epoch.
    :return: Aware datetime in UTC.
    :raises ValueError: If the value is outside the supported datetime range.
    """

    seconds, millis = divmod(int(value), 1000)
    try:
        base = datetime.datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Timestamp out of range: {value}") from exc
    return base + datetime.timedelta(milliseconds=millis)


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def whole_minutes(delta: datetime.timedelta) -> int:
    """Return ``delta`` in whole minutes, truncating toward zero.

    Integer arithmetic on microseconds keeps both sides of an age comparison
    truncated the same way regardless of sign.
    """

    micros = delta // datetime.timedelta(microseconds=1)
    minutes = abs(micros) // _MICROS_PER_MINUTE
    return -minutes if micros < 0 else minutes


def format_utc(dt: Optional[datetime.datetime], fmt: str = "%Y-%m-%d %H:%M:%S UTC") -> str:
    """Render ``dt`` in UTC, or ``"-"`` when absent.

    :param dt: Datetime instance to format.
    :param fmt: ``strftime``-compatible format string.
    :return: Formatted datetime string.
    """

    if dt is None:
        return "-"
    return ensure_utc(dt).strftime(fmt)
