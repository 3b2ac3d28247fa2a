"""
Route catalogue and the value types passed between routing stages.

Thresholds and priorities live here as data so they can be re-tuned
(or overridden per route via CONCIERGE_ROUTE_THRESHOLD_<ROUTE>) without
touching router logic. Lower priority number wins ties and comes first in
dispatch order.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from concierge.core.config import Config


class Route(str, Enum):
    """Closed set of domain routes."""
    SMALL_TALK = "small-talk"
    SELF_MAINTENANCE = "self-maintenance"
    CONNECTOR = "connector"
    SCHEDULE = "schedule"
    MEMORY = "memory"
    MAIL_CONTACTS = "mail-contacts"
    MAIL = "mail"
    WORKSPACE = "workspace"
    DOCUMENT = "document"
    WEB = "web"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any) -> Optional["Route"]:
        """Map a loose string ("Mail", " web ") to a Route, or None."""
        if isinstance(value, Route):
            return value
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower().replace("_", "-")
        for route in cls:
            if route.value == cleaned:
                return route
        return None


@dataclass(frozen=True)
class RouteSpec:
    """Tunable routing data for one route."""
    threshold: float
    priority: int
    description: str


ROUTE_SPECS: Dict[Route, RouteSpec] = {
    Route.SMALL_TALK: RouteSpec(0.45, 0, "Greetings, thanks, chit-chat and questions about the assistant itself."),
    Route.SELF_MAINTENANCE: RouteSpec(0.55, 1, "Assistant upkeep: status, restart, update, logs, skills and rules."),
    Route.CONNECTOR: RouteSpec(0.55, 2, "Start, stop, restart or check external service connectors and bridges."),
    Route.SCHEDULE: RouteSpec(0.5, 3, "Reminders, scheduled tasks and recurring automations."),
    Route.MEMORY: RouteSpec(0.5, 4, "Recall, store or forget facts the user told the assistant earlier."),
    Route.MAIL_CONTACTS: RouteSpec(0.55, 5, "Manage saved mail recipients: list, add, update, delete contacts."),
    Route.MAIL: RouteSpec(0.5, 6, "Read, list, search, reply to and send email."),
    Route.WORKSPACE: RouteSpec(0.5, 7, "Files and folders in the workspace: list, create, move, rename, copy, delete, send."),
    Route.DOCUMENT: RouteSpec(0.5, 8, "Read, summarize or extract text from a document (pdf, docx, txt...)."),
    Route.WEB: RouteSpec(0.5, 9, "Search the internet, news, and open web results or URLs."),
}

# Routes a detector/handler can serve, in priority order
ROUTABLE: List[Route] = sorted(ROUTE_SPECS, key=lambda r: ROUTE_SPECS[r].priority)


def get_route_threshold(route: Route) -> float:
    override = Config.get_route_threshold_override(route.value)
    if override is not None:
        return override
    spec = ROUTE_SPECS.get(route)
    return spec.threshold if spec else 1.0


def list_route_thresholds() -> List[Dict[str, Any]]:
    """[{"name": "small-talk", "threshold": 0.45}, ...] in priority order"""
    return [{"name": r.value, "threshold": get_route_threshold(r)} for r in ROUTABLE]


def get_route_priority(route: Route) -> int:
    spec = ROUTE_SPECS.get(route)
    return spec.priority if spec else len(ROUTE_SPECS)


def routes_by_priority(routes) -> List[Route]:
    """Sort routes by configured priority, dropping duplicates and NONE."""
    unique = []
    for route in routes:
        if route is Route.NONE or route in unique:
            continue
        unique.append(route)
    return sorted(unique, key=get_route_priority)


@dataclass
class Candidate:
    """A detector's judgment for one route on one message."""
    route: Route
    applies: bool = False
    params: Dict[str, Any] = field(default_factory=dict)
    rule: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"route": self.route.value, "applies": self.applies, "params": dict(self.params), "rule": self.rule}


@dataclass
class RouteAlternative:
    route: Route
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"route": self.route.value, "score": self.score}


@dataclass
class RouteDecision:
    """Semantic router verdict for one message."""
    route: Route
    score: float
    reason: str
    alternatives: List[RouteAlternative] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["route"] = self.route.value
        data["alternatives"] = [alt.to_dict() for alt in self.alternatives]
        return data
