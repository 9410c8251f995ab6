"""Cron schedules answering "when should this job last have run?".

Expressions are parsed into APScheduler ``CronTrigger`` objects. Six fields
(``sec min hour dom month dow``) are the native form; Jenkins-style five-field
expressions get an implicit ``0`` seconds field and a seventh field is read as
the year. Day-of-week numbers follow classic cron (``0``/``7`` = Sunday) and are
rewritten to weekday names because APScheduler counts from Monday.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Iterator, List, Optional, Set

from apscheduler.triggers.cron import CronTrigger

from jenkins_monitor.errors import InvalidSchedule
from jenkins_monitor.utils.misc import UTC

ALIASES = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * 0",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

FIELD_NAMES = ("second", "minute", "hour", "day", "month", "day_of_week", "year")

# Index = classic cron weekday number (0 = Sunday).
WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_APS_WEEKDAY_ORDER = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_INITIAL_SEARCH_WINDOW = timedelta(minutes=1)


def _weekday_value(token: str, expression: str) -> int:
    token = token.strip().lower()
    if token.isdigit():
        value = int(token)
        if 0 <= value <= 7:
            return value
        raise InvalidSchedule(expression, f"day-of-week {value} out of range 0-7")
    if token[:3] in WEEKDAY_NAMES and len(token) >= 3:
        return WEEKDAY_NAMES.index(token[:3])
    raise InvalidSchedule(expression, f"unrecognised day-of-week {token!r}")


def translate_day_of_week(field: str, expression: str) -> str:
    """Rewrite a classic cron day-of-week field into APScheduler weekday names.

    :param field: Day-of-week field as written by the user.
    :param expression: Full expression, used in error messages.
    :return: ``"*"`` or a comma-separated list of weekday names.
    :raises InvalidSchedule: If the field cannot be interpreted.
    """
    if field in ("*", "?"):
        return "*"

    days: Set[int] = set()
    for item in field.split(","):
        if not item:
            raise InvalidSchedule(expression, "empty day-of-week list item")
        range_part, _, step_part = item.partition("/")
        step = 1
        if step_part:
            if not step_part.isdigit() or int(step_part) == 0:
                raise InvalidSchedule(expression, f"bad day-of-week step {step_part!r}")
            step = int(step_part)

        if range_part in ("*", "?"):
            first, last = 0, 6
        elif "-" in range_part:
            low, _, high = range_part.partition("-")
            first, last = _weekday_value(low, expression), _weekday_value(high, expression)
            if first > last:
                raise InvalidSchedule(expression, f"descending day-of-week range {range_part!r}")
        else:
            first = _weekday_value(range_part, expression)
            last = 6 if step_part else first
            if step_part and first == 7:
                last = 7

        days.update(value % 7 for value in range(first, last + 1, step))

    if len(days) == 7:
        return "*"
    return ",".join(name for name in _APS_WEEKDAY_ORDER if WEEKDAY_NAMES.index(name) in days)


def split_expression(expression: str) -> List[str]:
    """Normalise an expression into the seven APScheduler field values.

    :raises InvalidSchedule: If the field count or a field is invalid.
    """
    text = (expression or "").strip()
    if not text:
        raise InvalidSchedule(expression, "empty expression")
    text = ALIASES.get(text.lower(), text)

    fields = text.split()
    if len(fields) == 5:
        fields = ["0"] + fields
    if len(fields) == 6:
        fields = fields + ["*"]
    if len(fields) != 7:
        raise InvalidSchedule(expression, f"expected 5, 6 or 7 fields but got {len(text.split())}")

    if fields[3] == "?":
        fields[3] = "*"
    fields[5] = translate_day_of_week(fields[5], expression)
    return fields


class CronClock:
    """A validated cron schedule pinned to one timezone (UTC by default)."""

    def __init__(self, expression: str, timezone: tzinfo = UTC) -> None:
        """Parse ``expression`` eagerly so bad schedules fail at load time.

        :param expression: Cron expression in five, six or seven field form.
        :param timezone: Timezone the schedule is evaluated in.
        :raises InvalidSchedule: If the expression cannot be parsed.
        """
        self.expression = expression
        self.timezone = timezone
        values = dict(zip(FIELD_NAMES, split_expression(expression)))
        try:
            self._trigger = CronTrigger(timezone=timezone, **values)
        except (ValueError, TypeError) as exc:
            raise InvalidSchedule(expression, str(exc)) from exc

    def __repr__(self) -> str:
        return f"CronClock({self.expression!r})"

    def firings_between(self, start: datetime, end: datetime) -> Iterator[datetime]:
        """Yield every firing ``t`` with ``start <= t <= end`` in ascending order."""
        if end < start:
            return
        fire = self._trigger.get_next_fire_time(None, start)
        while fire is not None and fire <= end:
            yield fire
            fire = self._trigger.get_next_fire_time(fire, fire)

    def most_recent_firing(self, now: datetime, lookback: timedelta) -> Optional[datetime]:
        """Return the latest firing in ``[now - lookback, now]``, or ``None``.

        The window is widened from one minute by doubling up to ``lookback`` so
        dense schedules never enumerate the whole lookback window.
        """
        if lookback < timedelta(0):
            raise ValueError("lookback must not be negative")
        window = min(_INITIAL_SEARCH_WINDOW, lookback)
        while True:
            latest = None
            for fire in self.firings_between(now - window, now):
                latest = fire
            if latest is not None or window >= lookback:
                return latest
            window = min(window * 2, lookback)


def most_recent_firing(expression: str, now: datetime, lookback_window: timedelta) -> Optional[datetime]:
    """Functional form of :meth:`CronClock.most_recent_firing`."""
    return CronClock(expression).most_recent_firing(now, lookback_window)
