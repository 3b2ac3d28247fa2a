"""Self-maintenance detector: assistant status, restart, update, logs, skills."""

from __future__ import annotations

import re

from concierge.core.routes import Route
from concierge.detectors.base import Detector, rule

_SKILL_VERBS = {
    "create": "add", "add": "add", "define": "add", "teach": "add",
    "list": "list", "show": "list",
    "delete": "delete", "remove": "delete", "drop": "delete",
}


def _skill(match, raw_text, normalized):
    verb = match.group("verb")
    return {"operation": _SKILL_VERBS.get(verb, "list")}


class SelfMaintenanceDetector(Detector):
    route = Route.SELF_MAINTENANCE
    required_params = ("action",)
    vetoes = (re.compile(r"\b(connector|bridge|service)\b"),)
    rules = (
        rule("restart", r"\b(?:restart|reboot|reload)\s+(?:yourself|the assistant|the bot|concierge)\b",
             action="restart"),
        rule("update", r"\b(?:update|upgrade)\s+(?:yourself|the assistant|the bot|concierge)\b",
             action="update"),
        rule("status", r"\b(?:your|assistant|bot)\s+(?:status|health|uptime|version)\b|\bhealth ?check\b|"
                       r"\bare you (?:ok|alive|running|there)\b",
             action="status"),
        rule("logs", r"\b(?:show|check|tail|read|open)\s+(?:me\s+)?(?:your|the)\s+(?:logs?|audit log)\b",
             action="logs"),
        rule("diagnostics", r"\b(?:doctor|self check|self test|diagnostics?)\b", action="diagnostics"),
        rule("skill", r"\b(?P<verb>create|add|define|teach|list|show|delete|remove|drop)\b.*"
                      r"\b(?:skill|skills|rule|rules|capability|capabilities)\b",
             extract=_skill, action="skill"),
    )
