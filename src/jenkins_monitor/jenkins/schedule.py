"""Extract the timer trigger schedule from a Jenkins job ``config.xml``."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import NamedTuple, Optional

_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)
_SPEC_FALLBACK = re.compile(r"<spec>(.*?)</spec>", re.DOTALL)
_TIMER_FALLBACK = re.compile(r"<[\w.:-]*TimerTrigger[^>]*>.*?<spec>(.*?)</spec>", re.DOTALL)
_TZ_LINE = re.compile(r"^TZ\s*=\s*(\S+)$")


class TimerSpec(NamedTuple):
    """First schedule line of a timer spec and the ``TZ=`` zone preceding it."""

    expression: str
    timezone: Optional[str] = None


def parse_timer_spec(spec_text: Optional[str]) -> Optional[TimerSpec]:
    """Read the first schedule line, skipping blanks, ``#`` comments and ``TZ=`` headers.

    A ``TZ=<zone>`` line applies to the schedule lines after it, so the last one
    seen before the first schedule line is returned with it.
    """
    if not spec_text:
        return None
    zone = None
    for line in spec_text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _TZ_LINE.match(line)
        if match:
            zone = match.group(1)
            continue
        return TimerSpec(line, zone)
    return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _from_tree(root: ET.Element) -> Optional[str]:
    for element in root.iter():
        if _local_name(element.tag).endswith("TimerTrigger"):
            for child in element.iter():
                if _local_name(child.tag) == "spec":
                    return child.text or ""
    for element in root.iter():
        if _local_name(element.tag) == "spec":
            return element.text or ""
    return None


def _from_text(xml_text: str) -> Optional[str]:
    match = _TIMER_FALLBACK.search(xml_text) or _SPEC_FALLBACK.search(xml_text)
    return match.group(1) if match else None


def extract_timer_spec(xml_text: str) -> Optional[TimerSpec]:
    """Return the timer schedule configured on a job, or ``None`` if there is none.

    The ``<spec>`` of a ``*TimerTrigger`` wins over any other ``<spec>`` (SCM
    polling uses the same element). Jenkins writes ``<?xml version='1.1'?>``,
    which ElementTree refuses, so the declaration is dropped first; documents
    that still do not parse are searched with a regex.
    """
    body = _DECLARATION.sub("", xml_text or "", count=1)
    try:
        spec_text = _from_tree(ET.fromstring(body))
    except ET.ParseError:
        spec_text = _from_text(body)
    return parse_timer_spec(spec_text)
