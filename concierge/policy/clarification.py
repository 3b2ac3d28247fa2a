"""
Intent clarification.

When the semantic router abstains because two or more routes scored too
close to call, and the LLM fallback has no answer either, the pipeline asks
"Did you mean 1) ... or 2) ...?" instead of guessing. The question is a
TTL-bound record on the chat session:

    none -> pending-clarification -> (picked | dropped | expired: none)

HARD RULES:
- A reply is a pick only when it names exactly one offered route (by number
  or by route words) and says nothing else
- A fresh request drops the question; anything else leaves it alone
- The picked route receives the ORIGINAL text, never the reply
"""

import re
import time
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Sequence, Set, Tuple

from concierge.context.session_store import ChatId, PendingClarification, SessionStore, get_session_store
from concierge.core.config import Config
from concierge.core.logger import get_logger
from concierge.core.normalizer import normalize_text
from concierge.core.routes import Route

CLARIFY_MAX_OPTIONS = 3
CLARIFY_REPLY_MAX_WORDS = 6
FRESH_INTENT_MIN_CHARS = 10

ROUTE_LABELS: Dict[Route, str] = {
    Route.SMALL_TALK: "just chatting",
    Route.SELF_MAINTENANCE: "assistant maintenance",
    Route.CONNECTOR: "a connector or service",
    Route.SCHEDULE: "a reminder or schedule",
    Route.MEMORY: "something I should remember",
    Route.MAIL_CONTACTS: "your mail contacts",
    Route.MAIL: "email",
    Route.WORKSPACE: "workspace files",
    Route.DOCUMENT: "reading a document",
    Route.WEB: "a web search",
}

# Normalized words that name a route in a reply
ROUTE_WORDS: Dict[Route, Tuple[str, ...]] = {
    Route.SMALL_TALK: ("small talk", "chatting", "chat", "talk"),
    Route.SELF_MAINTENANCE: ("self maintenance", "maintenance", "assistant", "yourself"),
    Route.CONNECTOR: ("connectors", "connector", "service", "bridge", "integration"),
    Route.SCHEDULE: ("schedule", "reminder", "remind", "calendar", "automation"),
    Route.MEMORY: ("memory", "memories", "remember"),
    Route.MAIL_CONTACTS: ("mail contacts", "address book", "contacts", "contact"),
    Route.MAIL: ("e mail", "email", "mail", "inbox", "gmail"),
    Route.WORKSPACE: ("workspace", "files", "file", "folder"),
    Route.DOCUMENT: ("document", "documents", "reading", "read", "pdf"),
    Route.WEB: ("web search", "web", "search", "internet", "online", "google"),
}

ORDINALS: Dict[str, int] = {
    "1": 0, "first": 0, "1st": 0,
    "2": 1, "two": 1, "second": 1, "2nd": 1,
    "3": 2, "three": 2, "third": 2, "3rd": 2,
}

# Words a pick may carry around the route name ("I meant the web one please")
FILLER_WORDS = frozenset({
    "i", "meant", "mean", "the", "a", "an", "one", "option", "number", "please", "it", "its", "s", "is",
    "was", "that", "yes", "yeah", "ok", "okay", "go", "with", "for", "use", "do", "thanks", "about",
})

FRESH_VERB_RE = re.compile(
    r"\b(?:show|list|create|make|edit|send|search|find|open|delete|remove|schedule|remind|run|check|read|"
    r"summari[sz]e|update|move|rename|write|look up|start|stop|restart)\b"
)
FRESH_DOMAIN_RE = re.compile(
    r"\b(?:email|mail|inbox|contacts?|workspace|files?|folders?|documents?|pdf|tasks?|web|url|news|memory|"
    r"connectors?|bridge|reminders?)\b"
)

ClarificationResult = Literal["picked", "dropped", "ignored", "none"]


@dataclass
class ClarificationResolution:
    result: ClarificationResult
    pending: Optional[PendingClarification] = None
    route: Optional[Route] = None


def route_label(route: Route) -> str:
    return ROUTE_LABELS.get(route, route.value)


def build_clarification_question(options: Sequence[Route]) -> str:
    numbered = [f"{i}) {route_label(route)}" for i, route in enumerate(options, start=1)]
    if len(numbered) > 1:
        listing = ", ".join(numbered[:-1]) + " or " + numbered[-1]
    else:
        listing = numbered[0] if numbered else ""
    return f"Did you mean {listing}? Reply with the number or the name."


def request_clarification(
    chat_id: ChatId,
    text: str,
    options: Sequence[Route],
    source: str = "chat",
    user_id: Optional[ChatId] = None,
    now: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> PendingClarification:
    """
    Ask which of the tied routes the user meant.

    Args:
        chat_id: Chat the question belongs to
        text: The ambiguous message, replayed once a route is picked
        options: Tied routes, best first (at most CLARIFY_MAX_OPTIONS are kept)

    Raises:
        ValueError: If fewer than two distinct routes are offered
    """
    routes: List[Route] = []
    for route in options:
        if route is not Route.NONE and route not in routes:
            routes.append(route)
    routes = routes[:CLARIFY_MAX_OPTIONS]
    if len(routes) < 2:
        raise ValueError("a clarification needs at least two routes to choose from")

    store = store or get_session_store()
    requested = now if now is not None else time.time()
    pending = PendingClarification(
        chat_id=chat_id,
        original_text=text,
        question=build_clarification_question(routes),
        options=[route.value for route in routes],
        requested_at=requested,
        expires_at=requested + Config.CLARIFICATION_TTL_SEC,
        source=source,
        user_id=user_id,
    )
    store.set_pending_clarification(pending)
    get_logger().info(f"[CLARIFY] chat={chat_id} asked options={pending.options}")
    return pending


def pick_option(pending: PendingClarification, text: str) -> Optional[Route]:
    """The single offered route a reply names, or None."""
    normalized = normalize_text(text)
    if not normalized or len(normalized.split(" ")) > CLARIFY_REPLY_MAX_WORDS:
        return None

    options = [route for route in (Route.parse(value) for value in pending.options) if route is not None]
    picked: Set[Route] = set()

    # longest words first so "mail contacts" is not also read as "mail"
    spelled = sorted(
        ((word, route) for route in options for word in ROUTE_WORDS.get(route, ())),
        key=lambda pair: -len(pair[0]),
    )
    remaining = f" {normalized} "
    for word, route in spelled:
        needle = f" {word} "
        if needle in remaining:
            picked.add(route)
            remaining = remaining.replace(needle, "  ")

    for token in remaining.split():
        if token in ORDINALS and ORDINALS[token] < len(options):
            picked.add(options[ORDINALS[token]])
        elif token not in FILLER_WORDS:
            return None

    if len(picked) != 1:
        return None
    return picked.pop()


def is_fresh_intent(text: str) -> bool:
    """True for a new request that should replace an open question."""
    raw = (text or "").strip()
    if not raw:
        return False
    if raw.startswith("/"):
        return True
    normalized = normalize_text(raw)
    if len(normalized) < FRESH_INTENT_MIN_CHARS:
        return False
    return bool(FRESH_VERB_RE.search(normalized) or FRESH_DOMAIN_RE.search(normalized))


def resolve_clarification(
    chat_id: ChatId,
    text: str,
    now: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> ClarificationResolution:
    """Match a reply against the open clarification question, if any."""
    store = store or get_session_store()
    logger = get_logger()
    pending = store.get_pending_clarification(chat_id, now)
    if pending is None:
        return ClarificationResolution("none")

    route = pick_option(pending, text)
    if route is not None:
        consumed = store.consume_pending_clarification(chat_id, now)
        if consumed is None:
            return ClarificationResolution("none")
        logger.info(f"[CLARIFY] chat={chat_id} picked route={route.value}")
        return ClarificationResolution("picked", pending=consumed, route=route)

    if is_fresh_intent(text):
        store.clear_pending_clarification(chat_id)
        logger.info(f"[CLARIFY] chat={chat_id} dropped for a fresh request")
        return ClarificationResolution("dropped", pending=pending)

    logger.debug(f"[CLARIFY] chat={chat_id} reply ignored: '{text[:50]}'")
    return ClarificationResolution("ignored", pending=pending)
