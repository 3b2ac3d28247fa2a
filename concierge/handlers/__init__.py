"""concierge.handlers

Domain handler contract, registry and the default conversational reply.
"""

from concierge.handlers.base import (
    Handler,
    CallbackHandler,
    ConversationalHandler,
    HandlerRegistry,
)

__all__ = ["Handler", "CallbackHandler", "ConversationalHandler", "HandlerRegistry"]
