"""Service-connector detector: start/stop/restart/status of bridges and connectors."""

from __future__ import annotations

import re
from typing import Optional

from concierge.core.routes import Route
from concierge.detectors.base import Detector, rule

_VERB_ACTIONS = (
    (re.compile(r"\b(?:restart|reboot|reload)\b"), "restart"),
    (re.compile(r"\b(?:start|enable|turn on|launch|bring up)\b"), "start"),
    (re.compile(r"\b(?:stop|disable|turn off|kill|shut down|bring down)\b"), "stop"),
    (re.compile(r"\b(?:status|check|up|down|running|alive|working)\b"), "status"),
)

_NOUN_RE = re.compile(r"\b(connector|connectors|bridge|bridges|service|services|integration|daemon)\b")
_STOPWORDS = {"the", "my", "a", "an", "of", "is", "are", "status", "check", "start", "stop",
              "restart", "enable", "disable", "turn", "on", "off", "please"}


def _action(normalized: str) -> Optional[str]:
    for pattern, action in _VERB_ACTIONS:
        if pattern.search(normalized):
            return action
    return None


def _service_name(normalized: str) -> Optional[str]:
    if re.search(r"\blim\b", normalized):
        return "lim"
    match = _NOUN_RE.search(normalized)
    if not match:
        return None
    before = [w for w in normalized[:match.start()].split(" ") if w and w not in _STOPWORDS]
    if before:
        return before[-1]
    after = [w for w in normalized[match.end():].split(" ") if w and w not in _STOPWORDS]
    return after[0] if after else None


def _extract(match, raw_text, normalized):
    action = _action(normalized)
    if action is None:
        return None
    return {"action": action, "service": _service_name(normalized)}


class ConnectorDetector(Detector):
    route = Route.CONNECTOR
    required_params = ("action",)
    vetoes = (re.compile(r"\b(mail|email|inbox|file|folder|pdf)\b"),)
    rules = (
        rule("connector-control", r"\b(?:connector|connectors|bridge|bridges|integration|daemon)\b",
             extract=_extract),
        rule("service-control", r"\b(?:start|stop|restart|enable|disable|status of|check)\b.*\bservices?\b",
             extract=_extract),
        rule("lim-control", r"\blim\b", extract=_extract),
    )
