"""
Risk policy for routed actions.

Classifies a (route, params) pair as low / medium / high. High-risk actions
(destructive or outward-facing) never run straight from routing: they go
through the confirmation state machine first.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Tuple

from concierge.core.routes import Route

RiskLevel = Literal["low", "medium", "high"]

HIGH_RISK_ACTIONS: FrozenSet[Tuple[Route, str]] = frozenset({
    (Route.WORKSPACE, "delete"),
    (Route.WORKSPACE, "move"),
    (Route.WORKSPACE, "send"),
    (Route.MAIL, "send"),
    (Route.MAIL, "reply"),
    (Route.MAIL, "forward"),
    (Route.MAIL_CONTACTS, "delete"),
    (Route.SCHEDULE, "delete"),
})

MEDIUM_RISK_ACTIONS: FrozenSet[Tuple[Route, str]] = frozenset({
    (Route.WORKSPACE, "write"),
    (Route.WORKSPACE, "mkdir"),
    (Route.WORKSPACE, "rename"),
    (Route.WORKSPACE, "copy"),
    (Route.WORKSPACE, "paste"),
    (Route.MAIL_CONTACTS, "add"),
    (Route.MAIL_CONTACTS, "update"),
    (Route.SCHEDULE, "create"),
    (Route.MEMORY, "remember"),
    (Route.MEMORY, "forget"),
    (Route.CONNECTOR, "start"),
    (Route.CONNECTOR, "stop"),
    (Route.CONNECTOR, "restart"),
    (Route.SELF_MAINTENANCE, "restart"),
    (Route.SELF_MAINTENANCE, "update"),
})


@dataclass
class RiskAssessment:
    level: RiskLevel
    action: str
    items: List[str] = field(default_factory=list)

    @property
    def requires_confirmation(self) -> bool:
        return self.level == "high"

    @property
    def needs_path(self) -> bool:
        """High risk but nothing named to act on yet."""
        return self.requires_confirmation and not self.items


def classify_action(route: Route, params: Dict[str, Any]) -> RiskLevel:
    action = str((params or {}).get("action") or "").lower()
    if (route, action) in HIGH_RISK_ACTIONS:
        return "high"
    if (route, action) in MEDIUM_RISK_ACTIONS:
        return "medium"
    return "low"


def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v not in (None, "")]
    return [str(value)]


def action_items(route: Route, params: Dict[str, Any]) -> List[str]:
    """The concrete things a risky action would touch, as display strings."""
    params = params or {}
    if route is Route.WORKSPACE:
        return _as_list(params.get("paths"))
    if route is Route.MAIL:
        return _as_list(params.get("attachments")) or _as_list(params.get("to"))
    if route is Route.MAIL_CONTACTS:
        return _as_list(params.get("email")) or _as_list(params.get("name"))
    if route is Route.SCHEDULE:
        return _as_list(params.get("target"))
    return _as_list(params.get("paths"))


def assess(route: Route, params: Dict[str, Any]) -> RiskAssessment:
    level = classify_action(route, params)
    action = str((params or {}).get("action") or "")
    items: List[str] = []
    for item in action_items(route, params):
        if item not in items:
            items.append(item)
    return RiskAssessment(level=level, action=action, items=items)
