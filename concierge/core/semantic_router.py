"""
Semantic Router: scores the allowed routes against per-route weighted
keyword/phrase profiles and commits to one, or abstains.

score(route) =
      DETECTOR_PRIOR                  if the route's detector applied
    + sum(weights of matched phrases) (capped at MAX_KEYWORD_WEIGHT)
    + LEADING_BONUS                   if a phrase matches at the start of the text
    + contextual boost                (from the context filter)
  then damped for very long texts and capped at 1.0.

Abstains (returns None) when:
- the normalized text is shorter than MIN_TEXT_CHARS
- the best score is below that route's threshold
- the runner-up is within MIN_SCORE_GAP of the best (ambiguous; tied_routes()
  lists the contenders so the pipeline can ask which one was meant)

Abstaining means "escalate to the LLM fallback", not "no route".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

from concierge.core.logger import get_logger
from concierge.core.normalizer import normalize_text
from concierge.core.routes import (
    Candidate,
    Route,
    RouteAlternative,
    RouteDecision,
    get_route_priority,
    get_route_threshold,
)

MIN_TEXT_CHARS = 3
MIN_SCORE_GAP = 0.03
DEFAULT_TOP_K = 3
MAX_TOP_K = 5

DETECTOR_PRIOR = 0.4
MAX_KEYWORD_WEIGHT = 0.5
LEADING_BONUS = 0.05
LONG_TEXT_WORDS = 40
LONG_TEXT_DAMPING = 0.85


@dataclass(frozen=True)
class Phrase:
    pattern: Pattern[str]
    weight: float


def _p(pattern: str, weight: float) -> Phrase:
    return Phrase(re.compile(pattern), weight)


_FILE_EXT = r"(?:pdf|txt|docx?|md|csv|json|xlsx?|pptx?|png|jpe?g|gif|zip|py|log|odt|rtf|html)"

# Keyword/phrase profiles, matched against normalized text
ROUTE_PROFILES: Dict[Route, Tuple[Phrase, ...]] = {
    Route.SMALL_TALK: (
        _p(r"^(?:hi|hello|hey|hiya|good (?:morning|afternoon|evening))\b", 0.3),
        _p(r"\b(?:thanks|thank you|thx)\b", 0.3),
        _p(r"\b(?:how are you|how s it going|what s up)\b", 0.3),
        _p(r"\b(?:who|what) are you\b|\byour name\b", 0.25),
        _p(r"\b(?:joke|chat|bored|bye|goodbye)\b", 0.15),
    ),
    Route.SELF_MAINTENANCE: (
        _p(r"\b(?:restart|reboot|update|upgrade|reload)\b", 0.15),
        _p(r"\b(?:yourself|assistant|bot)\b", 0.15),
        _p(r"\b(?:logs?|health|uptime|diagnostics?|doctor|version)\b", 0.2),
        _p(r"\b(?:skills?|rules?|capabilit(?:y|ies))\b", 0.2),
    ),
    Route.CONNECTOR: (
        _p(r"\b(?:connectors?|bridges?|integrations?|daemon|lim)\b", 0.3),
        _p(r"\bservices?\b", 0.15),
        _p(r"\b(?:start|stop|restart|status|enable|disable)\b", 0.15),
    ),
    Route.SCHEDULE: (
        _p(r"\b(?:remind|reminders?|schedule|scheduled|alarms?|automations?)\b", 0.3),
        _p(r"\b(?:every|daily|weekly)\b", 0.15),
        _p(r"\b(?:today|tomorrow|tonight|at \d{1,2}|in \d+ (?:minutes?|hours?|days?))\b", 0.15),
    ),
    Route.MEMORY: (
        _p(r"\b(?:remember|recall|memory|memories|forget)\b", 0.3),
        _p(r"\b(?:i told you|did i tell you|we talked about|we discussed|about me)\b", 0.2),
    ),
    Route.MAIL_CONTACTS: (
        _p(r"\b(?:contacts?|recipients?|address book)\b", 0.35),
        _p(r"\b(?:add|save|update|delete|remove|list)\b", 0.1),
    ),
    Route.MAIL: (
        _p(r"\b(?:mail|mails|email|emails|e mail|gmail|inbox)\b", 0.3),
        _p(r"\b(?:send|reply|forward|compose|unread)\b", 0.15),
    ),
    Route.WORKSPACE: (
        _p(r"\b(?:delete|remove|erase|move|rename|copy|paste|create|mkdir|write|save)\b", 0.3),
        _p(r"\b\w+ " + _FILE_EXT + r"\b", 0.2),
        _p(r"\b(?:files?|folders?|directory|workspace)\b", 0.2),
    ),
    Route.DOCUMENT: (
        _p(r"\b(?:read|summarize|summarise|summary|extract|analy[sz]e)\b", 0.25),
        _p(r"\b(?:pdf|docx?|odt|rtf|txt|md)\b", 0.15),
        _p(r"\b(?:document|documents|pages?)\b", 0.2),
    ),
    Route.WEB: (
        _p(r"\b(?:search|google|look up|browse|web|internet|online|news|headlines)\b", 0.3),
        _p(r"\b(?:results?|links?|articles?|site|website)\b", 0.2),
        _p(r"\bhttps? ", 0.3),
        _p(r"\bopen\b", 0.1),
    ),
}


class SemanticRouter:
    """Deterministic scorer over route profiles with per-route thresholds."""

    def __init__(
        self,
        profiles: Optional[Mapping[Route, Sequence[Phrase]]] = None,
        min_score_gap: float = MIN_SCORE_GAP,
        thresholds: Optional[Mapping[Route, float]] = None,
    ):
        self.profiles: Dict[Route, Tuple[Phrase, ...]] = {
            route: tuple(phrases) for route, phrases in (profiles or ROUTE_PROFILES).items()
        }
        self.min_score_gap = min_score_gap
        self._thresholds = dict(thresholds or {})
        self.logger = get_logger()

    def threshold_for(self, route: Route) -> float:
        if route in self._thresholds:
            return self._thresholds[route]
        return get_route_threshold(route)

    def score(
        self,
        route: Route,
        normalized: str,
        detected: bool = False,
        boost: float = 0.0,
    ) -> float:
        keyword_weight = 0.0
        leading = False
        for phrase in self.profiles.get(route, ()):
            match = phrase.pattern.search(normalized)
            if match:
                keyword_weight += phrase.weight
                if match.start() == 0:
                    leading = True
        score = (DETECTOR_PRIOR if detected else 0.0) + min(keyword_weight, MAX_KEYWORD_WEIGHT)
        if leading:
            score += LEADING_BONUS
        score += boost
        if len(normalized.split(" ")) > LONG_TEXT_WORDS:
            score *= LONG_TEXT_DAMPING
        return round(min(score, 1.0), 4)

    def rank(
        self,
        text: str,
        allowed: Iterable[Route],
        candidates: Optional[Iterable[Candidate]] = None,
        boosts: Optional[Mapping[Route, float]] = None,
    ) -> List[RouteAlternative]:
        """Every allowed route with its score, best first (ties by route priority)."""
        normalized = normalize_text(text)
        detected = {c.route for c in (candidates or ()) if c.applies}
        boosts = boosts or {}
        scored = []
        for route in allowed:
            if route is Route.NONE or any(alt.route is route for alt in scored):
                continue
            scored.append(RouteAlternative(
                route=route,
                score=self.score(route, normalized, route in detected, boosts.get(route, 0.0)),
            ))
        scored.sort(key=lambda alt: (-alt.score, get_route_priority(alt.route)))
        return scored

    def route(
        self,
        text: str,
        allowed: Iterable[Route],
        candidates: Optional[Iterable[Candidate]] = None,
        boosts: Optional[Mapping[Route, float]] = None,
        top_k: int = DEFAULT_TOP_K,
    ) -> Optional[RouteDecision]:
        """Best route for text among allowed, or None to escalate."""
        normalized = normalize_text(text)
        if len(normalized) < MIN_TEXT_CHARS:
            self.logger.debug(f"[ROUTER] abstain reason=too_short len={len(normalized)}")
            return None

        ranked = self.rank(text, allowed, candidates, boosts)
        if not ranked:
            return None

        top_k = max(1, min(MAX_TOP_K, top_k))
        best = ranked[0]
        runner_up = ranked[1].score if len(ranked) > 1 else 0.0
        gap = round(best.score - runner_up, 4)
        threshold = self.threshold_for(best.route)

        if best.score < threshold:
            self.logger.info(
                f"[ROUTER] abstain reason=below_threshold best={best.route.value} "
                f"score={best.score:.4f} threshold={threshold:.3f}"
            )
            return None
        if gap < self.min_score_gap:
            self.logger.info(
                f"[ROUTER] abstain reason=ambiguous best={best.route.value} second={ranked[1].route.value} "
                f"gap={gap:.4f}"
            )
            return None

        decision = RouteDecision(
            route=best.route,
            score=best.score,
            reason=f"semantic score {best.score:.4f} >= threshold {threshold:.3f} "
                   f"and gap {gap:.4f} >= {self.min_score_gap:.2f}",
            alternatives=ranked[:top_k],
        )
        self.logger.info(f"[ROUTER] route={best.route.value} score={best.score:.4f} gap={gap:.4f}")
        return decision

    def tied_routes(
        self,
        text: str,
        allowed: Iterable[Route],
        candidates: Optional[Iterable[Candidate]] = None,
        boosts: Optional[Mapping[Route, float]] = None,
        limit: int = DEFAULT_TOP_K,
    ) -> List[RouteAlternative]:
        """
        Routes behind an ambiguous abstention: the best route clears its
        threshold and every route listed sits within min_score_gap of it.
        Empty when the text was routable or simply unclear.
        """
        if len(normalize_text(text)) < MIN_TEXT_CHARS:
            return []
        ranked = self.rank(text, allowed, candidates, boosts)
        if len(ranked) < 2:
            return []
        best = ranked[0]
        if best.score < self.threshold_for(best.route):
            return []
        tied = [alt for alt in ranked if round(best.score - alt.score, 4) < self.min_score_gap]
        if len(tied) < 2:
            return []
        return tied[:max(2, limit)]
