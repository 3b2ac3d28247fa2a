"""
Pending Confirmation Resolver.

This module provides deterministic confirm/cancel pattern matching and the
state machine for destructive or outward-facing actions:

    none -> pending-path -> pending-confirm -> (resolved: none)

It is the SINGLE source of truth for handling user replies to pending
confirmation prompts.

HARD RULES:
- Regex/string only - NO LLM parsing for yes/no/cancel
- Must clear pending BEFORE execution to prevent double-run
- Items execute independently; one failure never aborts the others
- Unrelated replies are NOT consumed: the record survives until its TTL
- Expired records behave as absent

Usage:
    from concierge.policy.pending_confirmation import resolve_pending

    resolution = resolve_pending(chat_id, text, executor, reply_fn)
    if resolution.result == "executed":
        # Items were executed, report already sent
    elif resolution.result == "cancelled":
        # User cancelled
    elif resolution.result == "path-accepted":
        # Path prompt answered, now waiting for yes/no
    elif resolution.result == "ignored":
        # Pending exists but the reply is unrelated - route normally
    elif resolution.result == "none":
        # No pending state - continue normal flow
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from concierge.context.list_context import resolve_reference
from concierge.context.session_store import (
    ChatId,
    PendingConfirmation,
    PendingPathPrompt,
    SessionStore,
    get_session_store,
)
from concierge.core.config import Config
from concierge.core.logger import get_logger
from concierge.core.normalizer import extract_emails, extract_file_tokens

# ============================================================================
# YES/NO PATTERNS (compiled regexes)
# ============================================================================
# A reply is a yes/no only when it is the confirmation word plus, at most,
# a short courtesy tail ("yes please", "ok do it", "no thanks, leave it").
# Anything longer ("ok what's the weather", "stop the bridge service") is a
# new request and falls through to routing.

YES_PATTERN = re.compile(
    r"^(?:yes|yeah|yep|yup|do\s+it|proceed|confirm|confirmed|go\s+ahead|sure|ok|okay|absolutely|affirmative)\b",
    re.IGNORECASE
)

NO_PATTERN = re.compile(
    r"^(?:no|nope|nah|cancel|stop|don'?t|do\s+not|nevermind|never\s+mind|abort|negative)\b",
    re.IGNORECASE
)

YES_TAIL_WORDS = frozenset({
    "yes", "yeah", "yep", "sure", "ok", "okay", "please", "thanks", "thank", "you", "do", "it", "go",
    "ahead", "proceed", "confirm", "confirmed", "them", "that", "those", "this", "these", "all", "both",
    "now", "right", "away", "on", "just", "carry", "continue", "delete", "remove", "erase", "send", "move",
})

NO_TAIL_WORDS = frozenset({
    "no", "nope", "nah", "not", "don't", "dont", "do", "please", "thanks", "thank", "you", "it", "that",
    "this", "them", "those", "these", "cancel", "stop", "abort", "never", "mind", "forget", "leave",
    "keep", "wait", "i", "changed", "my", "now", "yet", "delete", "remove", "erase", "send", "move",
    "anything", "any", "of",
})

CONFIRM_REPLY_MAX_WORDS = 6

_REPLY_WORD_RE = re.compile(r"[a-z']+")

# Softened refusals anywhere in a short reply ("hmm, better not")
SOFT_NEGATION_RE = re.compile(
    r"\b(?:better not|rather not|i'?d rather not|not now|not yet|hold on|wait|leave it|keep (?:it|them)|"
    r"changed my mind|forget it|skip it)\b",
    re.IGNORECASE
)

# Bare action words that only make sense as consent ("delete them", "send it")
AFFIRMATIVE_RE = re.compile(
    r"^(?:please\s+)?(?:delete|remove|erase|send|move|do|execute|run|continue|carry\s+on|go)"
    r"(?:\s+(?:it|them|that|those|this|these|all|both|ahead|on|now|please))*\s*[.!]*$",
    re.IGNORECASE
)

SOFT_NEGATION_MAX_WORDS = 8

ReplyKind = Literal["confirm", "cancel", "unrelated"]

# Type alias for resolve_pending return values
ResolveResult = Literal["executed", "cancelled", "path-accepted", "ignored", "none"]

# Past tense used in execution reports
_PAST_TENSE = {
    "delete": "deleted",
    "remove": "removed",
    "move": "moved",
    "send": "sent",
    "reply": "replied",
    "forward": "forwarded",
}


class ConfirmationStateError(ValueError):
    """Raised when entering pending-confirm without anything to confirm."""


def normalize(text: str) -> str:
    """
    Normalize text for pattern matching.

    - Lowercase
    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space
    """
    if not text:
        return ""
    normalized = text.lower().strip()
    return re.sub(r"\s+", " ", normalized)


def _is_short_reply(pattern: "re.Pattern[str]", tail_words: frozenset, normalized: str) -> bool:
    """Lead word matches and every following word belongs to the courtesy tail."""
    match = pattern.match(normalized)
    if not match:
        return False
    words = _REPLY_WORD_RE.findall(normalized)
    if len(words) > CONFIRM_REPLY_MAX_WORDS:
        return False
    return all(word in tail_words for word in _REPLY_WORD_RE.findall(normalized[match.end():]))


def is_yes(text: str) -> bool:
    normalized = normalize(text)
    return _is_short_reply(YES_PATTERN, YES_TAIL_WORDS, normalized) or bool(AFFIRMATIVE_RE.match(normalized))


def is_no(text: str) -> bool:
    normalized = normalize(text)
    if _is_short_reply(NO_PATTERN, NO_TAIL_WORDS, normalized):
        return True
    return len(normalized.split(" ")) <= SOFT_NEGATION_MAX_WORDS and bool(SOFT_NEGATION_RE.search(normalized))


def is_confirmation_response(text: str) -> bool:
    """True for any yes OR no style reply."""
    return is_yes(text) or is_no(text)


def classify_reply(text: str) -> ReplyKind:
    """
    Classify a reply to a confirmation prompt.

    Negations win over affirmations so "ok wait, better not" cancels.
    """
    if is_no(text):
        return "cancel"
    if is_yes(text):
        return "confirm"
    return "unrelated"


def past_tense(action: str) -> str:
    action = (action or "").lower()
    return _PAST_TENSE.get(action, f"{action} done" if action else "done")


# ============================================================================
# ENTERING THE STATE MACHINE
# ============================================================================

def build_confirmation_prompt(action: str, items: Sequence[str], route: str = "workspace") -> str:
    """Plain-text prompt listing the affected items with an explicit yes/no instruction."""
    verb = (action or "do this").lower()
    lines = [f"Please confirm: {verb} {len(items)} item(s) ({route}):"]
    lines.extend(f"- {item}" for item in items)
    lines.append("Reply yes or no.")
    return "\n".join(lines)


def build_path_prompt(action: str, route: str = "workspace") -> str:
    verb = (action or "do this").lower()
    return f"Which item should I {verb}? Reply with its name (or say cancel)."


def request_confirmation(
    chat_id: ChatId,
    items: Sequence[str],
    action: str = "delete",
    route: str = "workspace",
    params: Optional[Dict[str, Any]] = None,
    source: str = "chat",
    user_id: Optional[ChatId] = None,
    now: Optional[float] = None,
    ttl_sec: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> PendingConfirmation:
    """
    Enter pending-confirm for chat_id (supersedes any pending path prompt).

    Raises:
        ConfirmationStateError: If items is empty
    """
    cleaned = [str(i) for i in items if str(i).strip()]
    if not cleaned:
        raise ConfirmationStateError("pending confirmation needs at least one item")

    store = store or get_session_store()
    now = now if now is not None else time.time()
    ttl = ttl_sec if ttl_sec is not None else Config.CONFIRMATION_TTL_SEC
    pending = PendingConfirmation(
        chat_id=chat_id,
        paths=cleaned,
        requested_at=now,
        expires_at=now + ttl,
        source=source,
        user_id=user_id,
        action=action,
        route=route,
        params=dict(params or {}),
    )
    store.set_pending_confirmation(pending)
    get_logger().info(
        f"[CONFIRM] chat={chat_id} pending-confirm action={action} route={route} items={len(cleaned)} ttl={ttl:.0f}s"
    )
    return pending


def request_path(
    chat_id: ChatId,
    action: str = "delete",
    route: str = "workspace",
    params: Optional[Dict[str, Any]] = None,
    source: str = "chat",
    user_id: Optional[ChatId] = None,
    now: Optional[float] = None,
    ttl_sec: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> PendingPathPrompt:
    """Enter pending-path: wait for the user to name what the action applies to."""
    store = store or get_session_store()
    now = now if now is not None else time.time()
    ttl = ttl_sec if ttl_sec is not None else Config.PENDING_PATH_TTL_SEC
    prompt = PendingPathPrompt(
        chat_id=chat_id,
        requested_at=now,
        expires_at=now + ttl,
        source=source,
        user_id=user_id,
        action=action,
        route=route,
        params=dict(params or {}),
    )
    store.set_pending_path(prompt)
    get_logger().info(f"[CONFIRM] chat={chat_id} pending-path action={action} route={route} ttl={ttl:.0f}s")
    return prompt


# ============================================================================
# CONFIRMED EXECUTION
# ============================================================================

@dataclass
class ItemResult:
    item: str
    ok: bool
    error: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class ExecutionReport:
    action: str
    route: str
    results: List[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[ItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[ItemResult]:
        return [r for r in self.results if not r.ok]

    @property
    def all_ok(self) -> bool:
        return bool(self.results) and not self.failed

    def summary(self) -> str:
        done = past_tense(self.action)
        lines = [f"{done.capitalize()} {len(self.succeeded)} of {len(self.results)} item(s)."]
        for result in self.results:
            if result.ok:
                lines.append(f"- {result.item}: {done}")
            else:
                lines.append(f"- {result.item}: failed ({result.error or 'unknown error'})")
        return "\n".join(lines)


ItemExecutor = Callable[[PendingConfirmation, str], Any]


def _error_text(error: BaseException) -> str:
    text = str(error).strip()
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


def execute_items(pending: PendingConfirmation, executor: ItemExecutor) -> ExecutionReport:
    """Run executor once per item, collecting success/failure independently."""
    logger = get_logger()
    report = ExecutionReport(action=pending.action, route=pending.route)
    for item in pending.paths:
        try:
            detail = executor(pending, item)
        except Exception as e:
            logger.error(f"[CONFIRM] chat={pending.chat_id} item failed: {item} ({e})")
            report.results.append(ItemResult(item=item, ok=False, error=_error_text(e)))
            continue
        if detail is False:
            report.results.append(ItemResult(item=item, ok=False, error="not done"))
        else:
            report.results.append(
                ItemResult(item=item, ok=True, detail=detail if isinstance(detail, str) else None)
            )
    logger.info(
        f"[CONFIRM] chat={pending.chat_id} executed ok={len(report.succeeded)} failed={len(report.failed)}"
    )
    return report


# ============================================================================
# RESOLUTION
# ============================================================================

@dataclass
class ConfirmationResolution:
    result: ResolveResult
    report: Optional[ExecutionReport] = None
    pending: Optional[PendingConfirmation] = None
    reply: Optional[str] = None


def _safe_reply(reply_fn: Optional[Callable[[str], Any]], text: str) -> None:
    if reply_fn is None or not text:
        return
    try:
        reply_fn(text)
    except Exception as e:
        get_logger().error(f"[CONFIRM] reply error: {e}")


def extract_path_answer(
    chat_id: ChatId,
    text: str,
    route: str,
    now: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> List[str]:
    """Items named by a reply to a path prompt (file tokens, emails, list picks, numbers)."""
    items: List[str] = list(extract_file_tokens(text))
    if not items and route in ("mail", "mail-contacts"):
        items = extract_emails(text)
    if not items:
        reference = resolve_reference(chat_id, text, now=now, store=store)
        if reference is not None:
            items = [item.reference for item in reference.items]
    if not items and route == "schedule":
        items = re.findall(r"\b\d{1,3}\b", text)[:1]
    return items


def resolve_pending(
    chat_id: ChatId,
    text: str,
    executor: Optional[ItemExecutor] = None,
    reply_fn: Optional[Callable[[str], Any]] = None,
    now: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> ConfirmationResolution:
    """
    Resolve pending state for chat_id against the user's reply.

    Call this BEFORE any routing when a message arrives.

    Behavior:
    - No live pending state -> "none" (continue normal flow)
    - pending-path + cancel -> clear, "cancelled"
    - pending-path + a plausible item -> pending-confirm, re-prompt, "path-accepted"
    - pending-confirm + confirm -> pop pending, execute item by item, report, "executed"
    - pending-confirm + cancel -> clear pending, "Okay, cancelled.", "cancelled"
    - anything else -> "ignored" (pending survives until its TTL)
    """
    logger = get_logger()
    store = store or get_session_store()
    now = now if now is not None else time.time()

    pending = store.get_pending_confirmation(chat_id, now)
    if pending is None:
        prompt = store.get_pending_path(chat_id, now)
        if prompt is None:
            return ConfirmationResolution("none")
        return _resolve_path_prompt(prompt, text, reply_fn, now, store)

    age_ms = int((now - pending.requested_at) * 1000)
    kind = classify_reply(text)

    if kind == "confirm":
        logger.info(f"[CONFIRM] chat={chat_id} received reply=\"yes\" age_ms={age_ms}")
        # Pop the pending record BEFORE execution to prevent double-run
        popped = store.consume_pending_confirmation(chat_id, now)
        if popped is None:
            logger.info(f"[CONFIRM] chat={chat_id} already consumed (race)")
            return ConfirmationResolution("none")
        if executor is None:
            report = ExecutionReport(
                action=popped.action,
                route=popped.route,
                results=[ItemResult(item=i, ok=False, error="no executor") for i in popped.paths],
            )
        else:
            report = execute_items(popped, executor)
        summary = report.summary()
        _safe_reply(reply_fn, summary)
        return ConfirmationResolution("executed", report=report, pending=popped, reply=summary)

    if kind == "cancel":
        logger.info(f"[CONFIRM] chat={chat_id} received reply=\"no\" age_ms={age_ms}")
        store.clear_pending_confirmation(chat_id)
        _safe_reply(reply_fn, "Okay, cancelled.")
        return ConfirmationResolution("cancelled", pending=pending, reply="Okay, cancelled.")

    logger.debug(f"[CONFIRM] chat={chat_id} ignored - reply not yes/no: '{text[:50]}'")
    return ConfirmationResolution("ignored", pending=pending)


def _resolve_path_prompt(
    prompt: PendingPathPrompt,
    text: str,
    reply_fn: Optional[Callable[[str], Any]],
    now: float,
    store: SessionStore,
) -> ConfirmationResolution:
    logger = get_logger()
    if is_no(text):
        store.clear_pending_path(prompt.chat_id)
        logger.info(f"[CONFIRM] chat={prompt.chat_id} path prompt cancelled")
        _safe_reply(reply_fn, "Okay, cancelled.")
        return ConfirmationResolution("cancelled", reply="Okay, cancelled.")

    items = extract_path_answer(prompt.chat_id, text, prompt.route, now=now, store=store)
    if not items:
        logger.debug(f"[CONFIRM] chat={prompt.chat_id} path prompt ignored: '{text[:50]}'")
        return ConfirmationResolution("ignored")

    pending = request_confirmation(
        prompt.chat_id,
        items,
        action=prompt.action,
        route=prompt.route,
        params=prompt.params,
        source=prompt.source,
        user_id=prompt.user_id,
        now=now,
        store=store,
    )
    message = build_confirmation_prompt(pending.action, pending.paths, pending.route)
    _safe_reply(reply_fn, message)
    return ConfirmationResolution("path-accepted", pending=pending, reply=message)


# ============================================================================
# INTROSPECTION
# ============================================================================

def check_passive_expiry(now: Optional[float] = None, store: Optional[SessionStore] = None) -> int:
    """
    Clear expired pending state for every chat (passive expiry).

    Call this from a periodic tick so records expire even if the user never
    writes again. Returns the number of records cleared.
    """
    store = store or get_session_store()
    cleared = store.sweep_expired(now)
    if cleared:
        get_logger().info(f"[CONFIRM] expired (passive) cleared={cleared}")
    return cleared


def get_pending_prompt(
    chat_id: ChatId, now: Optional[float] = None, store: Optional[SessionStore] = None
) -> Optional[str]:
    """
    Prompt text for the chat's live pending state (used to re-ask after an
    unrelated reply), or None.
    """
    store = store or get_session_store()
    pending = store.get_pending_confirmation(chat_id, now)
    if pending is not None:
        return build_confirmation_prompt(pending.action, pending.paths, pending.route)
    prompt = store.get_pending_path(chat_id, now)
    if prompt is not None:
        return build_path_prompt(prompt.action, prompt.route)
    return None


def has_active_pending(
    chat_id: ChatId, now: Optional[float] = None, store: Optional[SessionStore] = None
) -> bool:
    store = store or get_session_store()
    return store.has_pending(chat_id, now)
