"""concierge.context.list_context

Indexed List Context: remembers the last rendered enumerable result per chat
so "open the 3rd one", "read 2 to 4" or "delete the last one" resolve to
concrete items.

Parsing is pure (parse_indexed_reference); resolution clamps the requested
selectors against the live list. Absent/expired context or an out-of-range
request resolves to None, which callers treat as "no match" and fall back
to normal routing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Literal, Optional, Sequence, Tuple, Union

from concierge.context.session_store import (
    ChatId,
    IndexedListContext,
    ListItem,
    SessionStore,
    get_session_store,
)
from concierge.core.logger import get_logger
from concierge.core.normalizer import strip_diacritics

ListAction = Literal["open", "read", "delete", "select"]
# ("last", n) and ("first", n) select the final or leading n items
Selector = Union[int, Literal["last", "penultimate", "all"], Tuple[str, int]]

MAX_RANGE_SPAN = 20
MAX_EXPLICIT_INDEX = 999

_ORDINAL_WORDS = {
    "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9, "tenth": 10,
}

_DELETE_RE = re.compile(r"\b(?:delete|remove|erase|trash)\b")
_READ_RE = re.compile(r"\b(?:read|summarize|summarise)\b")
_OPEN_RE = re.compile(r"\b(?:open|show|see|view|visit|play|download|check)\b")

_ALL_RE = re.compile(r"\b(?:all of them|all|every one|everything|each one)\b")
_PENULTIMATE_RE = re.compile(r"\b(?:second to last|second-to-last|second last|penultimate|next to last)\b")
_TIME_WORDS = (
    "week|weeks|weekend|night|time|times|year|years|month|months|day|days|hour|hours|minute|minutes|"
    "monday|tuesday|wednesday|thursday|friday|saturday|sunday|summer|winter|spring|fall|autumn"
)
# "latest"/"final" only count next to a list noun ("the latest news" is not a list pick)
_LAST_RE = re.compile(
    r"\blast\b(?!\s+(?:\d{1,3}\s+)?(?:" + _TIME_WORDS + r")\b)"
    r"|\b(?:latest|final)\s+(?:one|item|result|link|entry|file|mail|email|message)s?\b"
)
_EDGE_N_RE = re.compile(r"\b(last|final|first)\s+(\d{1,2})\b(?!\s*(?:am|pm|" + _TIME_WORDS + r")\b)")
_RANGE_RE = re.compile(r"\b(?:from\s+)?(\d{1,3})\s*(?:-|to|through|thru|until)\s*(\d{1,3})\b")
_ORDINAL_RE = re.compile(r"\b(" + "|".join(_ORDINAL_WORDS) + r")\b")
_NUMERIC_ORDINAL_RE = re.compile(r"\b(\d{1,3})(?:st|nd|rd|th)\b")
_NUMBER_RE = re.compile(r"(?<![\d.:])\b(\d{1,3})\b(?![.:]\d)")
_LIST_NOUN_RE = re.compile(
    r"\b(?:one|ones|item|items|result|results|link|links|number|no|entry|entries|file|files|"
    r"mail|mails|email|emails|message|messages)\b|#"
)
_BARE_NUMBERS_RE = re.compile(r"^\s*(?:#?\d{1,3})(?:\s*(?:,|and|&)\s*#?\d{1,3})*\s*$")
# Numbers that are clearly times or quantities, not list positions
_NOT_INDEX_RE = re.compile(r"\b\d{1,3}\s*(?:am|pm|minutes?|mins?|hours?|days?|weeks?|%|percent)\b|\bat \d{1,2}\b")


@dataclass
class IndexedReferenceIntent:
    """What the user pointed at, before it is checked against a live list."""
    action: ListAction
    selectors: List[Selector] = field(default_factory=list)


@dataclass
class ListReference:
    """A reference resolved against the live list."""
    action: ListAction
    indices: List[int]
    items: List[ListItem]
    kind: str
    title: str = ""

    def to_params(self) -> dict:
        return {
            "action": self.action,
            "indices": list(self.indices),
            "kind": self.kind,
            "items": [{"index": i.index, "label": i.label, "reference": i.reference, "item_type": i.item_type}
                      for i in self.items],
        }


def _light_normalize(text: str) -> str:
    """Lowercase + strip diacritics, keeping digits, '-' and '#'."""
    lowered = strip_diacritics(text or "").lower()
    lowered = re.sub(r"[^a-z0-9#\-:.\s]", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def _detect_action(text: str) -> ListAction:
    if _DELETE_RE.search(text):
        return "delete"
    if _READ_RE.search(text):
        return "read"
    if _OPEN_RE.search(text):
        return "open"
    return "select"


def parse_indexed_reference(text: str) -> Optional[IndexedReferenceIntent]:
    """
    Parse an ordinal/number reference out of free text.

    Recognizes explicit numbers (1..999), ranges ("3 to 5", "3-5", capped to
    a span of 20), ordinal words (first..tenth, 3rd), "last",
    "second to last" and "all". Returns None when the text does not
    plausibly point at a list position.
    """
    normalized = _light_normalize(text)
    if not normalized:
        return None

    action = _detect_action(normalized)
    selectors: List[Selector] = []

    if _ALL_RE.search(normalized):
        return IndexedReferenceIntent(action=action, selectors=["all"])

    for match in _EDGE_N_RE.finditer(normalized):
        size = int(match.group(2))
        if size >= 1:
            selectors.append(("first" if match.group(1) == "first" else "last", size))
    normalized = _EDGE_N_RE.sub(" ", normalized)

    if _PENULTIMATE_RE.search(normalized):
        selectors.append("penultimate")
        normalized = _PENULTIMATE_RE.sub(" ", normalized)
    if _LAST_RE.search(normalized):
        selectors.append("last")

    for match in _ORDINAL_RE.finditer(normalized):
        selectors.append(_ORDINAL_WORDS[match.group(1)])
    for match in _NUMERIC_ORDINAL_RE.finditer(normalized):
        selectors.append(int(match.group(1)))

    numeric_text = _NOT_INDEX_RE.sub(" ", _NUMERIC_ORDINAL_RE.sub(" ", normalized))
    has_numeric_context = bool(
        _RANGE_RE.search(numeric_text)
        or _LIST_NOUN_RE.search(normalized)
        or action != "select"
        or _BARE_NUMBERS_RE.match(numeric_text)
    )
    if has_numeric_context:
        consumed = []
        for match in _RANGE_RE.finditer(numeric_text):
            start, end = int(match.group(1)), int(match.group(2))
            if start > end:
                start, end = end, start
            if start < 1:
                continue
            end = min(end, start + MAX_RANGE_SPAN - 1)
            selectors.extend(range(start, end + 1))
            consumed.append(match.span())
        for match in _NUMBER_RE.finditer(numeric_text):
            if any(a <= match.start() < b for a, b in consumed):
                continue
            value = int(match.group(1))
            if 1 <= value <= MAX_EXPLICIT_INDEX:
                selectors.append(value)

    if not selectors:
        return None

    deduped: List[Selector] = []
    for selector in selectors:
        if selector not in deduped:
            deduped.append(selector)
    return IndexedReferenceIntent(action=action, selectors=deduped)


def resolve_selectors(selectors: Sequence[Selector], count: int) -> List[int]:
    """Map selectors to concrete 1-based indices within [1, count], de-duplicated, in order."""
    indices: List[int] = []
    for selector in selectors:
        if isinstance(selector, tuple):
            edge, size = selector
            size = min(size, MAX_RANGE_SPAN)
            if edge == "last":
                candidates = list(range(max(1, count - size + 1), count + 1))
            else:
                candidates = list(range(1, min(size, count) + 1))
        elif selector == "all":
            candidates = list(range(1, count + 1))
        elif selector == "last":
            candidates = [count]
        elif selector == "penultimate":
            candidates = [count - 1]
        else:
            candidates = [int(selector)]
        for index in candidates:
            if 1 <= index <= count and index not in indices:
                indices.append(index)
    return indices


def remember(
    chat_id: ChatId,
    kind: str,
    title: str,
    source: str,
    items: Sequence[Any],
    now: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> IndexedListContext:
    """Replace the chat's list context with a freshly rendered list."""
    store = store or get_session_store()
    context = store.set_list_context(chat_id, kind, title, source, items, now=now)
    get_logger().info(f"[LIST] chat={chat_id} remembered kind={kind} items={context.count} title=\"{title[:40]}\"")
    return context


def resolve_reference(
    chat_id: ChatId,
    text: str,
    now: Optional[float] = None,
    store: Optional[SessionStore] = None,
) -> Optional[ListReference]:
    """Resolve text against the chat's live list; None means no match."""
    store = store or get_session_store()
    context = store.get_list_context(chat_id, now)
    if context is None:
        return None
    intent = parse_indexed_reference(text)
    if intent is None:
        return None
    indices = resolve_selectors(intent.selectors, context.count)
    if not indices:
        get_logger().debug(f"[LIST] chat={chat_id} reference out of range selectors={intent.selectors}")
        return None
    items = [context.items[i - 1] for i in indices]
    get_logger().info(f"[LIST] chat={chat_id} resolved action={intent.action} indices={indices} kind={context.kind}")
    return ListReference(action=intent.action, indices=indices, items=items, kind=context.kind, title=context.title)
