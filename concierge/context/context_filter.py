"""concierge.context.context_filter

Context Filter: narrows the route candidates from live chat state before
scoring.

Rules run in priority order. Each one may only NARROW the current allowed
set, and a rule whose subset would leave nothing allowed is skipped (the set
is never emptied). The filter is a pure function of (text, FilterState); it
never mutates state.

Rule order:
    1. pending confirmation / path prompt -> {workspace, document}
    2. live indexed list + ordinal/number reference -> the list's route family
    3. short follow-up with a pronoun + recent mail or file focus
    4. explicit service-connector cue -> {connector}
    5. explicit mail cue -> {mail, mail-contacts} (+schedule for scheduled mail)
    6. explicit workspace cue -> {workspace, document}
    7. memory-recall cue -> {memory, small-talk}
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from concierge.context.list_context import parse_indexed_reference
from concierge.context.session_store import ChatId, SessionStore
from concierge.core import cues
from concierge.core.config import Config
from concierge.core.logger import get_logger
from concierge.core.normalizer import extract_file_tokens, normalize_text
from concierge.core.routes import Route

SHORT_FOLLOWUP_MAX_CHARS = 120

# Score boosts handed to the semantic router when a contextual rule fired
LIST_CONTEXT_BOOST = 0.3
FOLLOWUP_BOOST = 0.15
PENDING_BOOST = 0.1

LIST_KIND_ROUTES: Dict[str, Tuple[Route, ...]] = {
    "web-results": (Route.WEB,),
    "mail-list": (Route.MAIL, Route.MAIL_CONTACTS),
    "workspace-list": (Route.WORKSPACE, Route.DOCUMENT),
    "stored-files": (Route.WORKSPACE, Route.DOCUMENT),
}


@dataclass
class FilterState:
    """The handful of chat-state lookups the filter reads."""
    pending_confirmation: bool = False
    pending_path: bool = False
    pending_route: Optional[Route] = None
    list_kind: Optional[str] = None
    recent_mail_focus: bool = False
    recent_file_focus: bool = False

    @classmethod
    def from_store(cls, store: SessionStore, chat_id: ChatId, now: Optional[float] = None) -> "FilterState":
        now = now if now is not None else time.time()
        pending = store.get_pending_confirmation(chat_id, now)
        prompt = store.get_pending_path(chat_id, now)
        owner = pending or prompt
        listing = store.get_list_context(chat_id, now)
        return cls(
            pending_confirmation=pending is not None,
            pending_path=prompt is not None,
            pending_route=Route.parse(owner.route) if owner else None,
            list_kind=listing.kind if listing else None,
            recent_mail_focus=store.get_focus(chat_id, "mail", now, Config.RECENT_FOCUS_SEC) is not None,
            recent_file_focus=store.get_focus(chat_id, "file", now, Config.RECENT_FOCUS_SEC) is not None,
        )


@dataclass
class FilterDecision:
    allowed: List[Route]
    reason: str
    strict: bool = False
    # a strict rule fired but could not narrow without emptying the set
    exhausted: bool = False
    boosts: Dict[Route, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "allowed": [r.value for r in self.allowed],
            "reason": self.reason,
            "strict": self.strict,
            "exhausted": self.exhausted,
            "boosts": {r.value: b for r, b in self.boosts.items()},
        }


def narrow_candidates(base: List[Route], subset: Iterable[Route]) -> Tuple[List[Route], bool]:
    """(base ∩ subset in base order, narrowed?). Returns base untouched when the intersection is empty."""
    wanted = set(subset)
    narrowed = [route for route in base if route in wanted]
    if narrowed:
        return narrowed, True
    return list(base), False


def build_context_filter(
    text: str,
    candidates: Iterable[Route],
    state: FilterState,
) -> Optional[FilterDecision]:
    """
    Narrow candidates using chat state. Returns None when nothing narrowed
    and no boost applies.
    """
    normalized = normalize_text(text)
    base = []
    for route in candidates:
        if route not in base and route is not Route.NONE:
            base.append(route)
    if not normalized or not base:
        return None

    mode = cues.classify_interaction_mode(normalized)
    conversational_only = mode == "conversational"
    file_tokens = extract_file_tokens(text)

    allowed = list(base)
    reasons: List[str] = []
    strict = False
    exhausted = False
    boosts: Dict[Route, float] = {}

    def apply(subset: Iterable[Route], reason: str, is_strict: bool = False, boost: float = 0.0) -> None:
        nonlocal allowed, strict, exhausted
        subset = tuple(subset)
        allowed, narrowed = narrow_candidates(allowed, subset)
        if narrowed:
            reasons.append(reason)
            if boost:
                for route in subset:
                    if route in allowed:
                        boosts[route] = boosts.get(route, 0.0) + boost
        elif is_strict:
            exhausted = True
        if is_strict:
            strict = True

    # 1. Pending confirmation state
    if state.pending_confirmation or state.pending_path:
        subset = [Route.WORKSPACE, Route.DOCUMENT]
        if state.pending_route and state.pending_route not in subset:
            subset.append(state.pending_route)
        reason = "pending-confirmation" if state.pending_confirmation else "pending-path"
        apply(subset, reason, is_strict=True, boost=PENDING_BOOST)

    # 2. Indexed list reference
    if state.list_kind and parse_indexed_reference(text) is not None:
        family = LIST_KIND_ROUTES.get(state.list_kind)
        if family:
            apply(family, f"indexed-list:{state.list_kind}", is_strict=True, boost=LIST_CONTEXT_BOOST)

    # 3. Short anaphoric follow-up on a recent focus
    if len(normalized) <= SHORT_FOLLOWUP_MAX_CHARS and cues.has_followup_pronoun(normalized):
        if state.recent_mail_focus and not (cues.has_file_cue(normalized) or file_tokens):
            apply([Route.MAIL, Route.MAIL_CONTACTS], "recent-mail-followup", boost=FOLLOWUP_BOOST)
        if state.recent_file_focus and not cues.has_mail_cue(normalized) and not cues.has_web_cue(normalized):
            apply([Route.WORKSPACE, Route.DOCUMENT], "recent-file-followup", boost=FOLLOWUP_BOOST)

    # 4. Service connectors
    if cues.has_connector_cue(normalized):
        apply([Route.CONNECTOR], "explicit-connector-route", is_strict=True)

    memory_cue = cues.has_memory_recall_cue(normalized)

    # 5. Explicit mail vocabulary
    if not conversational_only and not memory_cue and cues.has_mail_cue(normalized) and not (
            cues.has_web_cue(normalized) or file_tokens):
        if cues.has_scheduled_mail_cue(normalized):
            apply([Route.SCHEDULE, Route.MAIL, Route.MAIL_CONTACTS], "explicit-mail-schedule-route", is_strict=True)
        else:
            apply([Route.MAIL, Route.MAIL_CONTACTS], "explicit-mail-route", is_strict=True)

    # 6. Explicit workspace vocabulary
    if not conversational_only and not memory_cue and cues.has_workspace_cue(normalized, bool(file_tokens)):
        apply([Route.WORKSPACE, Route.DOCUMENT], "explicit-workspace-route", is_strict=True)

    # 7. Memory recall
    if memory_cue:
        apply([Route.MEMORY, Route.SMALL_TALK], "memory-recall-cue", is_strict=True)

    changed = allowed != base
    if not changed and not boosts:
        return None

    decision = FilterDecision(
        allowed=allowed,
        reason=", ".join(reasons),
        strict=strict,
        exhausted=exhausted,
        boosts=boosts,
    )
    get_logger().debug(
        f"[FILTER] allowed={[r.value for r in allowed]} reason=\"{decision.reason}\" exhausted={exhausted}"
    )
    return decision


def filter_routes(
    text: str,
    candidates: Iterable[Route],
    state: FilterState,
) -> Tuple[List[Route], str]:
    """Convenience form: (allowed routes, reason). Unchanged candidates give reason ""."""
    candidates = list(candidates)
    decision = build_context_filter(text, candidates, state)
    if decision is None:
        return [r for r in candidates if r is not Route.NONE], ""
    return decision.allowed, decision.reason
