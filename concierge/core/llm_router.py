"""
LLM Fallback Router.

Only called when the semantic router abstains. Asks the completion service to
pick exactly one of the allowed routes (or "none") and parses a strict
single-field JSON answer: {"route": "<name>"}.

HARD RULES:
- Never raises: service errors, timeouts, bad JSON and unknown route names
  all come back as Route.NONE
- Every call is time-boxed (Config.LLM_ROUTER_TIMEOUT_SEC)
- The prompt is bounded: allowed routes with one-line descriptions plus at
  most LLM_ROUTER_RECENT_TURNS prior turns
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from concierge.brain.llm_json import extract_json_object
from concierge.brain.messages import MessageBuilder
from concierge.brain.ollama_client import CompletionClient
from concierge.core.config import Config
from concierge.core.logger import get_logger
from concierge.core.routes import ROUTE_SPECS, Route, routes_by_priority
from concierge.core.timebox import run_with_timeout

MAX_TEXT_CHARS = 600
MAX_TURN_CHARS = 240


@dataclass
class LLMRouteResult:
    route: Route
    reason: str = ""
    elapsed_ms: int = 0
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def routed(self) -> bool:
        return self.route is not Route.NONE

    def to_dict(self) -> dict:
        return {
            "route": self.route.value,
            "reason": self.reason,
            "elapsed_ms": self.elapsed_ms,
            "timed_out": self.timed_out,
            "error": self.error,
        }


def build_route_prompt(text: str, recent_turns: Sequence, allowed: Iterable[Route]) -> str:
    routes = routes_by_priority(allowed)
    lines = [f"- {r.value}: {ROUTE_SPECS[r].description}" for r in routes if r in ROUTE_SPECS]
    lines.append("- none: nothing above fits; just chat.")
    system = (
        "You route a user's message to exactly one assistant capability.\n"
        "Allowed routes:\n" + "\n".join(lines) + "\n\n"
        'Answer with JSON only, one field: {"route": "<one of the names above>"}'
    )
    builder = MessageBuilder().system(system)
    if recent_turns:
        builder.turns(recent_turns, max_chars=MAX_TURN_CHARS)
    builder.user(f"Message to route:\n{text[:MAX_TEXT_CHARS]}")
    return builder.flatten(include_role_headers=True)


def parse_route_reply(reply: str, allowed: Iterable[Route]) -> Route:
    """Route named in the reply if it is allowed, else Route.NONE."""
    data = extract_json_object(reply)
    if data is None:
        return Route.NONE
    route = Route.parse(data.get("route"))
    if route is None or (route is not Route.NONE and route not in set(allowed)):
        return Route.NONE
    return route


class LLMFallbackRouter:
    """Time-boxed route classification through a completion client."""

    def __init__(
        self,
        client: Optional[CompletionClient],
        timeout_sec: Optional[float] = None,
        max_turns: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        self.client = client
        self.timeout_sec = timeout_sec if timeout_sec is not None else Config.LLM_ROUTER_TIMEOUT_SEC
        self.max_turns = max_turns if max_turns is not None else Config.LLM_ROUTER_RECENT_TURNS
        self.enabled = Config.LLM_ROUTER_ENABLED if enabled is None else enabled
        self.logger = get_logger()

    def classify(
        self,
        text: str,
        recent_turns: Optional[Sequence] = None,
        allowed: Optional[Iterable[Route]] = None,
    ) -> LLMRouteResult:
        allowed_list: List[Route] = routes_by_priority(allowed if allowed is not None else ROUTE_SPECS)
        if not self.enabled or self.client is None:
            return LLMRouteResult(Route.NONE, reason="disabled")
        if not allowed_list or not (text or "").strip():
            return LLMRouteResult(Route.NONE, reason="nothing to classify")

        turns = list(recent_turns or [])[-self.max_turns:] if self.max_turns > 0 else []
        prompt = build_route_prompt(text, turns, allowed_list)

        result = run_with_timeout(self.client.complete, self.timeout_sec, prompt, label="llm-router")
        if result.timed_out:
            self.logger.warning(f"[LLM_ROUTER] timeout after {result.elapsed_ms}ms -> none")
            return LLMRouteResult(Route.NONE, reason="timeout", elapsed_ms=result.elapsed_ms, timed_out=True)
        if not result.ok:
            self.logger.warning(f"[LLM_ROUTER] error -> none: {result.error_message}")
            return LLMRouteResult(
                Route.NONE, reason="error", elapsed_ms=result.elapsed_ms, error=result.error_message
            )

        route = parse_route_reply(result.value or "", allowed_list)
        reason = "llm pick" if route is not Route.NONE else "llm none/unparseable"
        self.logger.info(f"[LLM_ROUTER] route={route.value} elapsed_ms={result.elapsed_ms}")
        return LLMRouteResult(route, reason=reason, elapsed_ms=result.elapsed_ms)
