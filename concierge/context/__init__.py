"""concierge.context

Per-chat session state: pending confirmations, indexed lists, conversation
turns and focus, plus the context filter that reads them.
"""

from concierge.context.session_store import (
    SessionStore,
    InMemorySessionStore,
    get_session_store,
    set_session_store,
    clear_sessions,
)

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "get_session_store",
    "set_session_store",
    "clear_sessions",
]
