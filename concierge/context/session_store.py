"""concierge.context.session_store

Per-chat session record behind an explicit store interface.

Everything the pipeline remembers about a chat lives in one ChatSession:
- pending confirmation / pending path prompt (mutually exclusive, TTL-bounded)
- the last rendered indexed list (TTL-bounded, replaced wholesale)
- a bounded ring buffer of conversation turns
- recent mail/file/connector focus (for "it" / "that file" follow-ups)
- a paused step sequence waiting on a confirmation
- an intent clarification question waiting for the user to pick a route

HARD RULES:
- Reads after expiry behave as "absent" (expired records are cleared lazily)
- At most one PendingConfirmation, one PendingPathPrompt and one
  IndexedListContext per chat
- Stores are swappable: subclass SessionStore and implement get/set/delete/chat_ids
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Deque, Dict, List, Literal, Optional, Sequence, Tuple, Union

from concierge.core.config import Config
from concierge.core.logger import get_logger

ChatId = Union[int, str]
ListKind = Literal["web-results", "mail-list", "workspace-list", "stored-files"]
LIST_KINDS: Tuple[str, ...] = ("web-results", "mail-list", "workspace-list", "stored-files")
FocusKind = Literal["file", "mail", "connector"]
# (kind, requested_at, route, action, items) of a pending confirmation or path prompt
PendingOwner = Tuple[Any, ...]


# ============================================================================
# RECORDS
# ============================================================================

@dataclass
class PendingConfirmation:
    """A destructive/risky action waiting for an explicit yes/no."""
    chat_id: ChatId
    paths: List[str]
    requested_at: float
    expires_at: float
    source: str = "chat"
    user_id: Optional[ChatId] = None
    action: str = "delete"
    route: str = "workspace"
    params: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PendingPathPrompt:
    """Waiting for the user to name the item an action should apply to."""
    chat_id: ChatId
    requested_at: float
    expires_at: float
    source: str = "chat"
    user_id: Optional[ChatId] = None
    action: str = "delete"
    route: str = "workspace"
    params: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PendingClarification:
    """Question asked when two or more routes scored too close to call."""
    chat_id: ChatId
    original_text: str
    question: str
    # route values, best first
    options: List[str]
    requested_at: float
    expires_at: float
    source: str = "chat"
    user_id: Optional[ChatId] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ListItem:
    index: int
    label: str
    reference: str
    item_type: Optional[str] = None


@dataclass(frozen=True)
class IndexedListContext:
    """Last rendered enumerable result. Read-only once created."""
    chat_id: ChatId
    kind: str
    title: str
    source: str
    items: Tuple[ListItem, ...]
    created_at: float
    expires_at: float

    @property
    def count(self) -> int:
        return len(self.items)

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def item(self, index: int) -> Optional[ListItem]:
        if 1 <= index <= len(self.items):
            return self.items[index - 1]
        return None


@dataclass
class ConversationTurn:
    role: str
    text: str
    source: str
    at: float


@dataclass
class FocusRecord:
    kind: str
    value: Any
    at: float


@dataclass
class PausedSequence:
    """Remaining steps of a sequence that stopped on a pending confirmation."""
    # (step index, instruction, content prompt or None)
    steps: List[Tuple[int, str, Optional[str]]]
    total: int
    paused_at: int
    source: str = "chat"
    user_id: Optional[ChatId] = None
    user_text: str = ""
    # identity of the pending record the sequence waits on (see pending_owner)
    owner: Optional[PendingOwner] = None


@dataclass
class ChatSession:
    chat_id: ChatId
    pending_confirmation: Optional[PendingConfirmation] = None
    pending_path: Optional[PendingPathPrompt] = None
    list_context: Optional[IndexedListContext] = None
    turns: Deque[ConversationTurn] = field(default_factory=deque)
    focus: Dict[str, FocusRecord] = field(default_factory=dict)
    paused_sequence: Optional[PausedSequence] = None
    pending_clarification: Optional[PendingClarification] = None

    def is_empty(self) -> bool:
        return (
            self.pending_confirmation is None
            and self.pending_path is None
            and self.list_context is None
            and not self.turns
            and not self.focus
            and self.paused_sequence is None
            and self.pending_clarification is None
        )


def pending_owner(record: Union["PendingConfirmation", "PendingPathPrompt", None]) -> Optional[PendingOwner]:
    """Identity of a pending record; a paused sequence only resumes on its own record."""
    if record is None:
        return None
    if isinstance(record, PendingConfirmation):
        return ("confirm", record.requested_at, record.route, record.action, tuple(record.paths))
    return ("path", record.requested_at, record.route, record.action, ())


def _coerce_items(items: Sequence[Any]) -> Tuple[ListItem, ...]:
    """Re-index whatever the handler rendered into dense 1-based ListItems."""
    coerced: List[ListItem] = []
    for raw in items:
        position = len(coerced) + 1
        if isinstance(raw, ListItem):
            coerced.append(ListItem(position, raw.label, raw.reference, raw.item_type))
        elif isinstance(raw, dict):
            label = str(raw.get("label") or raw.get("title") or raw.get("reference") or "")
            reference = str(raw.get("reference") or raw.get("url") or raw.get("path") or raw.get("id") or label)
            coerced.append(ListItem(position, label, reference, raw.get("item_type") or raw.get("type")))
        elif raw is not None:
            coerced.append(ListItem(position, str(raw), str(raw)))
    return tuple(coerced)


# ============================================================================
# STORE
# ============================================================================

class SessionStore:
    """
    Session storage keyed by chat id.

    Subclasses implement the four storage primitives; every helper below is
    built on them and holds the store lock while reading-modifying-writing.
    """

    def __init__(self, max_turns: Optional[int] = None):
        self._lock = threading.RLock()
        self.max_turns = max_turns if max_turns is not None else Config.SESSION_MEMORY_TURNS

    # -- storage primitives ---------------------------------------------------

    def get(self, chat_id: ChatId) -> Optional[ChatSession]:
        raise NotImplementedError

    def set(self, chat_id: ChatId, session: ChatSession) -> None:
        raise NotImplementedError

    def delete(self, chat_id: ChatId) -> None:
        raise NotImplementedError

    def chat_ids(self) -> List[ChatId]:
        raise NotImplementedError

    # -- helpers --------------------------------------------------------------

    def session(self, chat_id: ChatId) -> ChatSession:
        """Get the chat's session, creating an empty one if needed."""
        with self._lock:
            current = self.get(chat_id)
            if current is None:
                current = ChatSession(chat_id=chat_id, turns=deque(maxlen=self.max_turns))
                self.set(chat_id, current)
            return current

    def _save(self, session: ChatSession) -> None:
        self.set(session.chat_id, session)

    # Pending confirmation

    def get_pending_confirmation(
        self, chat_id: ChatId, now: Optional[float] = None, include_expired: bool = False
    ) -> Optional[PendingConfirmation]:
        """Live pending confirmation, or None. Expired records are cleared unless include_expired."""
        with self._lock:
            current = self.get(chat_id)
            if current is None or current.pending_confirmation is None:
                return None
            pending = current.pending_confirmation
            if pending.is_expired(now) and not include_expired:
                self._drop_paused_owned_by(current, pending)
                current.pending_confirmation = None
                self._save(current)
                get_logger().info(f"[CONFIRM] chat={chat_id} expired -> cleared (lazy)")
                return None
            return pending

    def set_pending_confirmation(self, pending: PendingConfirmation) -> None:
        """Store a pending confirmation; it supersedes any pending path prompt."""
        with self._lock:
            current = self.session(pending.chat_id)
            paused = current.paused_sequence
            if paused is not None:
                answered = current.pending_confirmation is None and current.pending_path is not None
                if answered and paused.owner == pending_owner(current.pending_path):
                    # the path prompt was answered: the sequence now waits on this confirmation
                    paused.owner = pending_owner(pending)
                else:
                    self._drop_paused(current, "superseded")
            current.pending_confirmation = pending
            current.pending_path = None
            self._save(current)

    def clear_pending_confirmation(self, chat_id: ChatId) -> None:
        with self._lock:
            current = self.get(chat_id)
            if current is not None and current.pending_confirmation is not None:
                current.pending_confirmation = None
                self._save(current)

    def consume_pending_confirmation(
        self, chat_id: ChatId, now: Optional[float] = None
    ) -> Optional[PendingConfirmation]:
        """Atomically pop the live pending confirmation (None if absent/expired)."""
        with self._lock:
            pending = self.get_pending_confirmation(chat_id, now)
            if pending is None:
                return None
            current = self.session(chat_id)
            current.pending_confirmation = None
            self._save(current)
            return pending

    # Pending path prompt

    def get_pending_path(
        self, chat_id: ChatId, now: Optional[float] = None, include_expired: bool = False
    ) -> Optional[PendingPathPrompt]:
        with self._lock:
            current = self.get(chat_id)
            if current is None or current.pending_path is None:
                return None
            prompt = current.pending_path
            if prompt.is_expired(now) and not include_expired:
                self._drop_paused_owned_by(current, prompt)
                current.pending_path = None
                self._save(current)
                get_logger().info(f"[CONFIRM] chat={chat_id} path prompt expired -> cleared (lazy)")
                return None
            return prompt

    def set_pending_path(self, prompt: PendingPathPrompt) -> None:
        """Store a path prompt; any older pending confirmation is dropped."""
        with self._lock:
            current = self.session(prompt.chat_id)
            if current.paused_sequence is not None:
                self._drop_paused(current, "superseded")
            current.pending_path = prompt
            current.pending_confirmation = None
            self._save(current)

    def clear_pending_path(self, chat_id: ChatId) -> None:
        with self._lock:
            current = self.get(chat_id)
            if current is not None and current.pending_path is not None:
                current.pending_path = None
                self._save(current)

    def has_pending(self, chat_id: ChatId, now: Optional[float] = None) -> bool:
        """True while either confirmation state is live."""
        return (
            self.get_pending_confirmation(chat_id, now) is not None
            or self.get_pending_path(chat_id, now) is not None
        )

    def current_pending_owner(self, chat_id: ChatId, now: Optional[float] = None) -> Optional[PendingOwner]:
        """Identity of whichever pending record is live, else None."""
        with self._lock:
            pending = self.get_pending_confirmation(chat_id, now)
            if pending is not None:
                return pending_owner(pending)
            return pending_owner(self.get_pending_path(chat_id, now))

    def _drop_paused_owned_by(self, current: ChatSession, record: Any) -> None:
        paused = current.paused_sequence
        if paused is not None and paused.owner == pending_owner(record):
            self._drop_paused(current, "expired")

    def _drop_paused(self, current: ChatSession, why: str) -> None:
        paused = current.paused_sequence
        current.paused_sequence = None
        if paused is not None:
            get_logger().info(
                f"[SEQ] chat={current.chat_id} paused sequence dropped ({why}, {len(paused.steps)} step(s) left)"
            )

    # Pending intent clarification

    def set_pending_clarification(self, pending: PendingClarification) -> None:
        """Store a clarification question; a newer one replaces the older."""
        with self._lock:
            current = self.session(pending.chat_id)
            current.pending_clarification = pending
            self._save(current)

    def get_pending_clarification(
        self, chat_id: ChatId, now: Optional[float] = None
    ) -> Optional[PendingClarification]:
        with self._lock:
            current = self.get(chat_id)
            if current is None or current.pending_clarification is None:
                return None
            if current.pending_clarification.is_expired(now):
                current.pending_clarification = None
                self._save(current)
                get_logger().info(f"[CLARIFY] chat={chat_id} expired -> cleared (lazy)")
                return None
            return current.pending_clarification

    def consume_pending_clarification(
        self, chat_id: ChatId, now: Optional[float] = None
    ) -> Optional[PendingClarification]:
        with self._lock:
            pending = self.get_pending_clarification(chat_id, now)
            if pending is None:
                return None
            current = self.session(chat_id)
            current.pending_clarification = None
            self._save(current)
            return pending

    def clear_pending_clarification(self, chat_id: ChatId) -> None:
        with self._lock:
            current = self.get(chat_id)
            if current is not None and current.pending_clarification is not None:
                current.pending_clarification = None
                self._save(current)

    # Indexed list context

    def set_list_context(
        self,
        chat_id: ChatId,
        kind: str,
        title: str,
        source: str,
        items: Sequence[Any],
        now: Optional[float] = None,
        ttl_sec: Optional[float] = None,
    ) -> IndexedListContext:
        if kind not in LIST_KINDS:
            raise ValueError(f"Unknown list kind: {kind!r}")
        created = now if now is not None else time.time()
        context = IndexedListContext(
            chat_id=chat_id,
            kind=kind,
            title=title,
            source=source,
            items=_coerce_items(items),
            created_at=created,
            expires_at=created + (ttl_sec if ttl_sec is not None else Config.LIST_CONTEXT_TTL_SEC),
        )
        with self._lock:
            current = self.session(chat_id)
            current.list_context = context
            self._save(current)
        return context

    def get_list_context(self, chat_id: ChatId, now: Optional[float] = None) -> Optional[IndexedListContext]:
        with self._lock:
            current = self.get(chat_id)
            if current is None or current.list_context is None:
                return None
            if current.list_context.is_expired(now):
                current.list_context = None
                self._save(current)
                return None
            return current.list_context

    def clear_list_context(self, chat_id: ChatId) -> None:
        with self._lock:
            current = self.get(chat_id)
            if current is not None:
                current.list_context = None
                self._save(current)

    # Conversation ring buffer

    def append_turn(
        self, chat_id: ChatId, role: str, text: str, source: str = "chat", now: Optional[float] = None
    ) -> None:
        if not text:
            return
        with self._lock:
            current = self.session(chat_id)
            current.turns.append(ConversationTurn(role, text, source, now if now is not None else time.time()))
            self._save(current)

    def recent_turns(self, chat_id: ChatId, limit: int = 3) -> List[ConversationTurn]:
        with self._lock:
            current = self.get(chat_id)
            if current is None or limit <= 0:
                return []
            return list(current.turns)[-limit:]

    # Focus (what "it" refers to)

    def set_focus(self, chat_id: ChatId, kind: str, value: Any, now: Optional[float] = None) -> None:
        with self._lock:
            current = self.session(chat_id)
            current.focus[kind] = FocusRecord(kind, value, now if now is not None else time.time())
            self._save(current)

    def get_focus(
        self, chat_id: ChatId, kind: str, now: Optional[float] = None, window_sec: Optional[float] = None
    ) -> Optional[FocusRecord]:
        """Focus record still inside the recent-focus window, else None."""
        window = window_sec if window_sec is not None else Config.RECENT_FOCUS_SEC
        current_ts = now if now is not None else time.time()
        with self._lock:
            current = self.get(chat_id)
            if current is None:
                return None
            record = current.focus.get(kind)
            if record is None or current_ts - record.at > window:
                return None
            return record

    # Paused sequences

    def set_paused_sequence(self, chat_id: ChatId, paused: Optional[PausedSequence]) -> None:
        with self._lock:
            current = self.session(chat_id)
            current.paused_sequence = paused
            self._save(current)

    def pop_paused_sequence(self, chat_id: ChatId) -> Optional[PausedSequence]:
        with self._lock:
            current = self.get(chat_id)
            if current is None or current.paused_sequence is None:
                return None
            paused = current.paused_sequence
            current.paused_sequence = None
            self._save(current)
            return paused

    # Hygiene

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """
        Clear every expired confirmation, path prompt, clarification and list context.

        Correctness never depends on this (reads are TTL-aware); it only keeps
        memory tidy. Returns the number of records cleared.
        """
        current_ts = now if now is not None else time.time()
        cleared = 0
        with self._lock:
            for chat_id in self.chat_ids():
                current = self.get(chat_id)
                if current is None:
                    continue
                if current.pending_confirmation and current.pending_confirmation.is_expired(current_ts):
                    current.pending_confirmation = None
                    # a sequence cannot resume once its confirmation is gone
                    current.paused_sequence = None
                    cleared += 1
                if current.pending_path and current.pending_path.is_expired(current_ts):
                    current.pending_path = None
                    current.paused_sequence = None
                    cleared += 1
                if current.pending_clarification and current.pending_clarification.is_expired(current_ts):
                    current.pending_clarification = None
                    cleared += 1
                if current.list_context and current.list_context.is_expired(current_ts):
                    current.list_context = None
                    cleared += 1
                self._save(current)
        if cleared:
            get_logger().debug(f"[SWEEP] cleared={cleared}")
        return cleared


class InMemorySessionStore(SessionStore):
    """Process-local dict-backed store."""

    def __init__(self, max_turns: Optional[int] = None):
        super().__init__(max_turns=max_turns)
        self._sessions: Dict[ChatId, ChatSession] = {}

    def get(self, chat_id: ChatId) -> Optional[ChatSession]:
        return self._sessions.get(chat_id)

    def set(self, chat_id: ChatId, session: ChatSession) -> None:
        self._sessions[chat_id] = session

    def delete(self, chat_id: ChatId) -> None:
        self._sessions.pop(chat_id, None)

    def chat_ids(self) -> List[ChatId]:
        return list(self._sessions)


# ============================================================================
# DEFAULT STORE
# ============================================================================

_default_store: Optional[SessionStore] = None
_default_store_lock = threading.Lock()


def get_session_store() -> SessionStore:
    """Get the process-wide default store."""
    global _default_store
    with _default_store_lock:
        if _default_store is None:
            _default_store = InMemorySessionStore()
        return _default_store


def set_session_store(store: SessionStore) -> None:
    global _default_store
    with _default_store_lock:
        _default_store = store


def clear_sessions() -> None:
    """Reset the default store (used by tests)."""
    global _default_store
    with _default_store_lock:
        _default_store = InMemorySessionStore()
