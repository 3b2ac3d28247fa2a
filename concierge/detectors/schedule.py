"""
Scheduling detector: reminders, scheduled tasks and recurring automations.

"remind me tomorrow at 9 to call mom"
    -> {"action": "create", "task": "call mom", "day": "tomorrow", "time": "09:00"}
"every day at 8 send me the weather"
    -> {"action": "create", "recurrence": "daily", "time": "08:00", "task": "send me the weather"}
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from concierge.core.cues import has_time_cue
from concierge.core.routes import Route
from concierge.detectors.base import Detector, rule, strip_polite_prefix

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_AT_TIME_RE = re.compile(r"\bat (?P<h>\d{1,2})(?: (?P<m>\d{2}))?(?: ?(?P<ap>am|pm))?\b")
_BARE_AMPM_RE = re.compile(r"\b(?P<h>\d{1,2}) ?(?P<ap>am|pm)\b")
_RELATIVE_RE = re.compile(r"\bin (?P<n>\d+) (?P<unit>minute|minutes|min|mins|hour|hours|day|days|week|weeks)\b")
_DAY_RE = re.compile(r"\b(today|tomorrow|tonight)\b")
_DAILY_RE = re.compile(r"\b(?:every (?:day|morning|night|evening)|daily|each day)\b")
_WEEKLY_RE = re.compile(r"\b(?:every week|weekly|every (?P<weekday>" + "|".join(_WEEKDAYS) + r"))\b")

_CREATE_CUE_RE = re.compile(
    r"\b(?:remind me|set (?:a|an) (?:reminder|alarm)|schedule|program|every (?:day|morning|night|evening|week|"
    + "|".join(_WEEKDAYS) + r")|daily|weekly|each day)\b"
)

# Phrases removed from the task text once their meaning is captured
_TASK_NOISE_RE = re.compile(
    r"\b(?:remind me(?: to)?|set (?:a|an) (?:reminder|alarm)(?: to| for)?|schedule(?: a task)?(?: to)?|program|"
    r"every (?:day|morning|night|evening|week|weekday|" + "|".join(_WEEKDAYS) + r")|daily|weekly|each day|"
    r"today|tomorrow|tonight|at \d{1,2}(?: \d{2})?(?: ?[ap]m)?|\d{1,2} ?[ap]m|"
    r"in \d+ (?:minute|minutes|min|mins|hour|hours|day|days|week|weeks))\b"
)


def _clock(hour: int, minute: int, ampm: Optional[str]) -> Optional[str]:
    if ampm == "pm" and hour < 12:
        hour += 12
    elif ampm == "am" and hour == 12:
        hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return f"{hour:02d}:{minute:02d}"


def extract_when(normalized: str) -> Dict[str, Any]:
    """Time, day, relative offset and recurrence found in the text."""
    when: Dict[str, Any] = {}
    match = _AT_TIME_RE.search(normalized) or _BARE_AMPM_RE.search(normalized)
    if match:
        groups = match.groupdict()
        clock = _clock(int(groups["h"]), int(groups.get("m") or 0), groups.get("ap"))
        if clock:
            when["time"] = clock
    match = _RELATIVE_RE.search(normalized)
    if match:
        unit = match.group("unit")
        minutes = int(match.group("n"))
        if unit.startswith("hour"):
            minutes *= 60
        elif unit.startswith("day"):
            minutes *= 60 * 24
        elif unit.startswith("week"):
            minutes *= 60 * 24 * 7
        when["in_minutes"] = minutes
    match = _DAY_RE.search(normalized)
    if match:
        when["day"] = match.group(1)
    if _DAILY_RE.search(normalized):
        when["recurrence"] = "daily"
    else:
        match = _WEEKLY_RE.search(normalized)
        if match:
            when["recurrence"] = "weekly"
            if match.group("weekday"):
                when["weekday"] = match.group("weekday")
    return when


def _create(match, raw_text, normalized):
    when = extract_when(normalized)
    if not when and not has_time_cue(normalized):
        return None
    task = _TASK_NOISE_RE.sub(" ", strip_polite_prefix(normalized))
    task = re.sub(r"^(?:to|that|for)\s+", "", re.sub(r"\s+", " ", task).strip())
    if not task:
        return None
    params: Dict[str, Any] = {"task": task}
    params.update(when)
    return params


def _delete(match, raw_text, normalized):
    index = re.search(r"\b(\d{1,3})\b", normalized)
    return {"target": int(index.group(1)) if index else None}


class ScheduleDetector(Detector):
    route = Route.SCHEDULE
    required_params = ("action",)
    rules = (
        rule("list", r"\b(?:list|show|what are|what s on|which are)\b.*"
                     r"\b(?:reminders|scheduled tasks|schedule|automations|alarms|tasks)\b",
             action="list"),
        rule("delete", r"\b(?:delete|remove|cancel|clear|stop)\b.*"
                       r"\b(?:reminder|reminders|scheduled task|task|automation|alarm)\b",
             extract=_delete, action="delete"),
        rule("create", _CREATE_CUE_RE.pattern, extract=_create, action="create"),
    )
