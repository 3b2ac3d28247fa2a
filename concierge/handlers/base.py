"""
Handler contract and registry.

A handler is the domain capability a route dispatches to (file workspace,
mail, web, ...). The core only knows this interface:

    applies(text, params) -> bool
    handle(chat_id, text, source=..., user_id=..., persist_turn=..., params=...) -> handled
    execute_confirmed(chat_id, action, item, params) -> optional detail

handle() returning False means "not mine after all" and lets the dispatcher
try the next handler. execute_confirmed() runs ONE item of an action the user
has confirmed, and raises on failure.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional

from concierge.brain.messages import MessageBuilder
from concierge.brain.ollama_client import CompletionClient
from concierge.context.session_store import ChatId, SessionStore, get_session_store
from concierge.core.config import Config
from concierge.core.logger import get_logger
from concierge.core.routes import Route, get_route_priority
from concierge.core.timebox import run_with_timeout

ReplyFn = Callable[[ChatId, str], Any]


class Handler:
    """Base class for domain handlers."""

    route: Route = Route.NONE

    @property
    def name(self) -> str:
        return self.route.value

    def applies(self, text: str, params: Optional[Dict[str, Any]] = None) -> bool:
        return True

    def handle(
        self,
        chat_id: ChatId,
        text: str,
        *,
        source: str = "chat",
        user_id: Optional[ChatId] = None,
        persist_turn: bool = True,
        params: Optional[Dict[str, Any]] = None,
    ) -> bool:
        raise NotImplementedError

    def execute_confirmed(
        self, chat_id: ChatId, action: str, item: str, params: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        raise NotImplementedError(f"{self.name} has no confirmable actions")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} route={self.route.value}>"


class CallbackHandler(Handler):
    """Handler built from plain functions (transport adapters, tests, the CLI)."""

    def __init__(
        self,
        route: Route,
        handle_fn: Callable[..., Any],
        execute_fn: Optional[Callable[[ChatId, str, str, Dict[str, Any]], Any]] = None,
        applies_fn: Optional[Callable[[str, Dict[str, Any]], bool]] = None,
    ):
        self.route = route
        self._handle_fn = handle_fn
        self._execute_fn = execute_fn
        self._applies_fn = applies_fn

    def applies(self, text: str, params: Optional[Dict[str, Any]] = None) -> bool:
        if self._applies_fn is None:
            return True
        return bool(self._applies_fn(text, params or {}))

    def handle(self, chat_id, text, *, source="chat", user_id=None, persist_turn=True, params=None) -> bool:
        return bool(self._handle_fn(
            chat_id, text, source=source, user_id=user_id, persist_turn=persist_turn, params=params or {}
        ))

    def execute_confirmed(self, chat_id, action, item, params=None):
        if self._execute_fn is None:
            return super().execute_confirmed(chat_id, action, item, params)
        return self._execute_fn(chat_id, action, item, params or {})


CANNED_REPLY = "I'm not sure how to help with that yet. Could you rephrase it?"

CHAT_SYSTEM_PROMPT = (
    "You are a concise personal assistant in a chat. "
    "Reply in plain text, at most three sentences. "
    "Do not claim to have performed any action."
)


class ConversationalHandler(Handler):
    """
    Default reply when no route is chosen.

    Uses a time-boxed chat completion when a client is configured, else a
    canned reply. Never raises.
    """

    route = Route.NONE

    def __init__(
        self,
        reply_fn: ReplyFn,
        client: Optional[CompletionClient] = None,
        timeout_sec: Optional[float] = None,
        store: Optional[SessionStore] = None,
        recent_turns: int = 6,
    ):
        self.reply_fn = reply_fn
        self.client = client
        self.timeout_sec = timeout_sec if timeout_sec is not None else Config.LLM_ROUTER_TIMEOUT_SEC * 2
        self.store = store
        self.recent_turns = recent_turns
        self.logger = get_logger()

    def compose(self, chat_id: ChatId, text: str) -> str:
        if self.client is None:
            return CANNED_REPLY
        store = self.store or get_session_store()
        # the current message is already the newest stored turn
        history = store.recent_turns(chat_id, self.recent_turns + 1)
        if history and history[-1].role == "user" and history[-1].text == text:
            history = history[:-1]
        prompt = (
            MessageBuilder()
            .system(CHAT_SYSTEM_PROMPT)
            .turns(history)
            .user(text)
            .flatten(include_role_headers=True)
        )
        result = run_with_timeout(self.client.complete, self.timeout_sec, prompt, label="chat-reply")
        if result.ok and (result.value or "").strip():
            return result.value.strip()
        self.logger.warning(f"[DISPATCH] default reply fell back to canned text: {result.error_message or 'empty'}")
        return CANNED_REPLY

    def handle(self, chat_id, text, *, source="chat", user_id=None, persist_turn=True, params=None) -> bool:
        reply = self.compose(chat_id, text)
        try:
            self.reply_fn(chat_id, reply)
        except Exception as e:
            self.logger.error(f"[DISPATCH] default reply could not be sent: {e}")
            return False
        return True


class HandlerRegistry:
    """Route -> handler map with per-message dispatch ordering."""

    def __init__(self, handlers: Optional[Iterable[Handler]] = None):
        self._handlers: Dict[Route, Handler] = {}
        for handler in handlers or ():
            self.register(handler)

    def register(self, handler: Handler) -> None:
        if handler.route is Route.NONE:
            raise ValueError("the none route is served by the default handler, not the registry")
        self._handlers[handler.route] = handler

    def get(self, route: Optional[Route]) -> Optional[Handler]:
        if route is None:
            return None
        return self._handlers.get(route)

    def routes(self) -> List[Route]:
        return sorted(self._handlers, key=get_route_priority)

    def ordered(self, preferred: Optional[Route] = None, allowed: Optional[Iterable[Route]] = None) -> List[Handler]:
        """Handlers in dispatch order: the preferred route first, the rest by priority."""
        allowed_set = set(allowed) if allowed is not None else None
        ordered: List[Handler] = []
        if preferred is not None and preferred in self._handlers:
            ordered.append(self._handlers[preferred])
        for route in self.routes():
            if route == preferred or (allowed_set is not None and route not in allowed_set):
                continue
            ordered.append(self._handlers[route])
        return ordered

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, route: Route) -> bool:
        return route in self._handlers
