"""
Tests for the per-chat session store.

Run with: python -m pytest tests/test_session_store.py -v
"""

import pytest

from concierge.context.session_store import (
    InMemorySessionStore,
    PausedSequence,
    PendingClarification,
    PendingConfirmation,
    PendingPathPrompt,
    clear_sessions,
    get_session_store,
    pending_owner,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def store():
    return InMemorySessionStore(max_turns=3)


def _pending(chat_id=1, now=1000.0, ttl=300.0, paths=None):
    return PendingConfirmation(
        chat_id=chat_id, paths=paths or ["a.txt"], requested_at=now, expires_at=now + ttl
    )


def _path_prompt(chat_id=1, now=1000.0, ttl=300.0):
    return PendingPathPrompt(chat_id=chat_id, requested_at=now, expires_at=now + ttl)


# ============================================================================
# PENDING STATE
# ============================================================================

class TestPendingState:
    """Test pending confirmation / path prompt storage."""

    def test_set_and_get(self, store):
        store.set_pending_confirmation(_pending())
        assert store.get_pending_confirmation(1, 1001.0).paths == ["a.txt"]
        assert store.has_pending(1, 1001.0)

    def test_expired_reads_as_absent_and_is_cleared(self, store):
        store.set_pending_confirmation(_pending())
        assert store.get_pending_confirmation(1, 1300.0) is None
        assert store.get_pending_confirmation(1, 1300.0, include_expired=True) is None

    def test_include_expired(self, store):
        store.set_pending_confirmation(_pending())
        assert store.get_pending_confirmation(1, 1400.0, include_expired=True) is not None

    def test_confirmation_supersedes_path_prompt(self, store):
        store.set_pending_path(_path_prompt())
        store.set_pending_confirmation(_pending())
        assert store.get_pending_path(1, 1001.0) is None
        assert store.get_pending_confirmation(1, 1001.0) is not None

    def test_path_prompt_supersedes_confirmation(self, store):
        store.set_pending_confirmation(_pending())
        store.set_pending_path(_path_prompt())
        assert store.get_pending_confirmation(1, 1001.0) is None
        assert store.get_pending_path(1, 1001.0) is not None

    def test_consume_pops_once(self, store):
        store.set_pending_confirmation(_pending())
        assert store.consume_pending_confirmation(1, 1001.0) is not None
        assert store.consume_pending_confirmation(1, 1001.0) is None

    def test_chats_are_isolated(self, store):
        store.set_pending_confirmation(_pending(chat_id="a"))
        assert not store.has_pending("b", 1001.0)


# ============================================================================
# TURNS AND FOCUS
# ============================================================================

class TestTurnsAndFocus:
    """Test the turn ring buffer and recent focus."""

    def test_ring_buffer_is_bounded(self, store):
        for i in range(5):
            store.append_turn(1, "user", f"turn-{i}", now=1000.0 + i)
        assert [t.text for t in store.recent_turns(1, 10)] == ["turn-2", "turn-3", "turn-4"]

    def test_recent_turns_limit(self, store):
        for i in range(3):
            store.append_turn(1, "user", f"turn-{i}", now=1000.0 + i)
        assert [t.text for t in store.recent_turns(1, 1)] == ["turn-2"]
        assert store.recent_turns(1, 0) == []

    def test_empty_text_not_stored(self, store):
        store.append_turn(1, "user", "", now=1000.0)
        assert store.recent_turns(1) == []

    def test_focus_window(self, store):
        store.set_focus(1, "file", "notes.txt", now=1000.0)
        assert store.get_focus(1, "file", now=1030.0, window_sec=60).value == "notes.txt"
        assert store.get_focus(1, "file", now=1061.0, window_sec=60) is None
        assert store.get_focus(1, "mail", now=1030.0, window_sec=60) is None


# ============================================================================
# PAUSED SEQUENCE OWNER
# ============================================================================

def _paused(owner):
    return PausedSequence(steps=[(2, "read b.pdf", None)], total=2, paused_at=1, owner=owner)


class TestPausedSequenceOwner:
    """A paused sequence lives and dies with the pending record it waits on."""

    def test_owner_identity(self):
        assert pending_owner(None) is None
        assert pending_owner(_pending()) == pending_owner(_pending())
        assert pending_owner(_pending(paths=["b.txt"])) != pending_owner(_pending())
        assert pending_owner(_path_prompt())[0] == "path"

    def test_current_pending_owner(self, store):
        assert store.current_pending_owner(1, 1000.0) is None
        store.set_pending_confirmation(_pending())
        assert store.current_pending_owner(1, 1001.0) == pending_owner(_pending())
        assert store.current_pending_owner(1, 2000.0) is None

    def test_lazy_expiry_drops_the_paused_sequence(self, store):
        pending = _pending()
        store.set_pending_confirmation(pending)
        store.set_paused_sequence(1, _paused(pending_owner(pending)))

        assert store.get_pending_confirmation(1, 2000.0) is None
        assert store.pop_paused_sequence(1) is None

    def test_replacing_the_confirmation_drops_the_paused_sequence(self, store):
        pending = _pending()
        store.set_pending_confirmation(pending)
        store.set_paused_sequence(1, _paused(pending_owner(pending)))

        store.set_pending_confirmation(_pending(now=1010.0, paths=["c.txt"]))

        assert store.pop_paused_sequence(1) is None

    def test_new_path_prompt_drops_the_paused_sequence(self, store):
        pending = _pending()
        store.set_pending_confirmation(pending)
        store.set_paused_sequence(1, _paused(pending_owner(pending)))

        store.set_pending_path(_path_prompt(now=1010.0))

        assert store.pop_paused_sequence(1) is None

    def test_answered_path_prompt_hands_the_sequence_to_its_confirmation(self, store):
        prompt = _path_prompt()
        store.set_pending_path(prompt)
        store.set_paused_sequence(1, _paused(pending_owner(prompt)))

        follow_up = _pending(now=1010.0, paths=["report.pdf"])
        store.set_pending_confirmation(follow_up)

        paused = store.pop_paused_sequence(1)
        assert paused is not None
        assert paused.owner == pending_owner(follow_up)


# ============================================================================
# PENDING CLARIFICATION
# ============================================================================

def _clarification(chat_id=1, now=1000.0, ttl=300.0):
    return PendingClarification(
        chat_id=chat_id,
        original_text="zorblax plans",
        question="Did you mean 1) email or 2) a web search?",
        options=["mail", "web"],
        requested_at=now,
        expires_at=now + ttl,
    )


class TestPendingClarification:
    """Test the clarification record."""

    def test_set_get_consume(self, store):
        store.set_pending_clarification(_clarification())
        assert store.get_pending_clarification(1, 1001.0).options == ["mail", "web"]
        assert store.consume_pending_clarification(1, 1001.0).original_text == "zorblax plans"
        assert store.consume_pending_clarification(1, 1001.0) is None

    def test_expired_reads_as_absent(self, store):
        store.set_pending_clarification(_clarification())
        assert store.get_pending_clarification(1, 1300.0) is None
        assert store.session(1).pending_clarification is None

    def test_sweep_clears_expired_clarification(self, store):
        store.set_pending_clarification(_clarification())
        assert store.sweep_expired(2000.0) == 1
        assert store.session(1).is_empty()


# ============================================================================
# SWEEP AND DEFAULT STORE
# ============================================================================

class TestSweep:
    """Test sweep_expired() and the default store."""

    def test_sweep_clears_expired_records_and_paused_sequence(self, store):
        store.set_pending_confirmation(_pending())
        store.set_paused_sequence(1, PausedSequence(steps=[(3, "list files", None)], total=3, paused_at=2))
        store.set_list_context(1, "web-results", "t", "web", ["https://a"], now=1000.0, ttl_sec=10)

        cleared = store.sweep_expired(2000.0)

        assert cleared == 2
        assert store.pop_paused_sequence(1) is None
        assert store.get_list_context(1, 2000.0) is None

    def test_sweep_keeps_live_records(self, store):
        store.set_pending_confirmation(_pending())
        assert store.sweep_expired(1001.0) == 0
        assert store.has_pending(1, 1001.0)

    def test_clear_sessions_resets_default_store(self):
        get_session_store().set_pending_confirmation(_pending())
        clear_sessions()
        assert not get_session_store().has_pending(1, 1001.0)
