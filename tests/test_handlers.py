"""
Tests for the handler contract, the registry and the default conversational reply.

Run with: python -m pytest tests/test_handlers.py -v
"""

import pytest
from unittest.mock import MagicMock

from concierge.context.session_store import InMemorySessionStore
from concierge.core.routes import Route
from concierge.handlers.base import (
    CANNED_REPLY,
    CallbackHandler,
    ConversationalHandler,
    Handler,
    HandlerRegistry,
)


def _handler(route):
    return CallbackHandler(route, MagicMock(return_value=True))


class TestHandlerRegistry:
    """Test HandlerRegistry ordering and registration."""

    def test_none_route_rejected(self):
        with pytest.raises(ValueError):
            HandlerRegistry().register(_handler(Route.NONE))

    def test_routes_by_priority(self):
        registry = HandlerRegistry([_handler(Route.WEB), _handler(Route.SMALL_TALK), _handler(Route.MAIL)])
        assert registry.routes() == [Route.SMALL_TALK, Route.MAIL, Route.WEB]
        assert len(registry) == 3
        assert Route.MAIL in registry

    def test_ordered_puts_preferred_first(self):
        registry = HandlerRegistry([_handler(Route.WEB), _handler(Route.SMALL_TALK), _handler(Route.MAIL)])
        assert [h.route for h in registry.ordered(Route.WEB)] == [Route.WEB, Route.SMALL_TALK, Route.MAIL]

    def test_ordered_respects_allowed(self):
        registry = HandlerRegistry([_handler(Route.WEB), _handler(Route.SMALL_TALK), _handler(Route.MAIL)])
        ordered = registry.ordered(Route.WEB, allowed=[Route.WEB, Route.MAIL])
        assert [h.route for h in ordered] == [Route.WEB, Route.MAIL]

    def test_get_unknown(self):
        assert HandlerRegistry().get(Route.WEB) is None
        assert HandlerRegistry().get(None) is None


class TestCallbackHandler:
    """Test CallbackHandler."""

    def test_handle_passes_keywords(self):
        handle = MagicMock(return_value=1)
        handler = CallbackHandler(Route.WEB, handle)

        assert handler.handle(7, "search cats", source="telegram", params={"query": "cats"}) is True
        handle.assert_called_once_with(
            7, "search cats", source="telegram", user_id=None, persist_turn=True, params={"query": "cats"}
        )

    def test_applies_fn(self):
        handler = CallbackHandler(Route.WEB, MagicMock(), applies_fn=lambda text, params: "cats" in text)
        assert handler.applies("search cats") is True
        assert handler.applies("search dogs") is False

    def test_execute_without_callback_raises(self):
        with pytest.raises(NotImplementedError):
            CallbackHandler(Route.WEB, MagicMock()).execute_confirmed(1, "delete", "x")

    def test_base_handle_not_implemented(self):
        with pytest.raises(NotImplementedError):
            Handler().handle(1, "x")


class TestConversationalHandler:
    """Test the default reply used when no route is chosen."""

    def test_canned_reply_without_client(self):
        reply = MagicMock()
        assert ConversationalHandler(reply).handle(1, "the octopus has three hearts") is True
        reply.assert_called_once_with(1, CANNED_REPLY)

    def test_client_reply(self):
        client = MagicMock()
        client.complete.return_value = "  Octopuses really do have three hearts.  "
        store = InMemorySessionStore()
        store.append_turn(1, "user", "the octopus has three hearts", now=1000.0)

        text = ConversationalHandler(MagicMock(), client=client, store=store).compose(1, "the octopus has three hearts")

        assert text == "Octopuses really do have three hearts."
        prompt = client.complete.call_args[0][0]
        assert prompt.count("the octopus has three hearts") == 1

    def test_client_failure_falls_back(self):
        client = MagicMock()
        client.complete.side_effect = ConnectionError("refused")
        handler = ConversationalHandler(MagicMock(), client=client, store=InMemorySessionStore())
        assert handler.compose(1, "hello?") == CANNED_REPLY

    def test_reply_failure_returns_false(self):
        reply = MagicMock(side_effect=RuntimeError("transport down"))
        assert ConversationalHandler(reply).handle(1, "hi") is False
