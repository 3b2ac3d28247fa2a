"""
Tests for the Pending Confirmation Flow.

Tests the deterministic yes/no/cancel pattern matching, the path prompt,
per-item execution and resolution of pending confirmations.

Run with: python -m pytest tests/test_confirmation_flow.py -v
"""

import pytest
from unittest.mock import MagicMock

from concierge.context.session_store import clear_sessions, get_session_store
from concierge.core.config import Config
from concierge.policy.pending_confirmation import (
    ConfirmationStateError,
    build_confirmation_prompt,
    check_passive_expiry,
    classify_reply,
    get_pending_prompt,
    has_active_pending,
    is_confirmation_response,
    is_no,
    is_yes,
    normalize,
    request_confirmation,
    request_path,
    resolve_pending,
)
from concierge.policy.risk import assess, classify_action
from concierge.core.routes import Route


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def clean_state():
    """Ensure clean state before and after each test."""
    clear_sessions()
    yield
    clear_sessions()


@pytest.fixture
def two_files():
    """A pending delete of two files for chat 1, requested at t=1000."""
    return request_confirmation(1, ["a.txt", "b.txt"], action="delete", route="workspace", now=1000.0)


def _failing_on(name):
    def execute(pending, item):
        if item == name:
            raise FileNotFoundError(item)
        return "done"
    return MagicMock(side_effect=execute)


# ============================================================================
# PATTERN MATCHING TESTS
# ============================================================================

class TestNormalize:
    """Test the normalize() function."""

    def test_lowercase(self):
        assert normalize("YES") == "yes"

    def test_strip_and_collapse(self):
        assert normalize("  do   it  ") == "do it"

    def test_empty(self):
        assert normalize("") == ""
        assert normalize(None) == ""


class TestIsYes:
    """Test affirmative replies."""

    @pytest.mark.parametrize("text", [
        "yes", "Yes!", "yeah", "yep", "sure", "ok", "okay", "go ahead",
        "do it", "confirm", "confirmed", "Yes, do it", "delete them", "send it",
    ])
    def test_yes(self, text):
        assert is_yes(text) is True

    @pytest.mark.parametrize("text", [
        "no", "yesterday was fun", "what's the weather", "",
        "ok what's the weather in Paris tomorrow", "sure, and also search flights to Rome",
        "yes the meeting moved to friday", "okay now summarize notes.pdf",
    ])
    def test_not_yes(self, text):
        assert is_yes(text) is False


class TestIsNo:
    """Test negative replies."""

    @pytest.mark.parametrize("text", [
        "no", "No.", "nope", "nah", "cancel", "stop", "don't", "do not",
        "never mind", "abort", "hmm, better not", "wait", "forget it",
    ])
    def test_no(self, text):
        assert is_no(text) is True

    @pytest.mark.parametrize("text", [
        "yes", "know what I mean", "nothing here", "",
        "stop the whatsapp bridge service", "no idea, search the web for it", "cancel my 3pm meeting with Dana",
    ])
    def test_not_no(self, text):
        assert is_no(text) is False

    def test_soft_negation_only_in_short_replies(self):
        text = "i would like you to wait for me at the station after the concert tonight"
        assert is_no(text) is False


class TestClassifyReply:
    """Test classify_reply()."""

    def test_confirm(self):
        assert classify_reply("yes please") == "confirm"

    def test_cancel(self):
        assert classify_reply("no thanks") == "cancel"

    def test_negation_wins(self):
        assert classify_reply("ok wait, better not") == "cancel"

    def test_unrelated(self):
        assert classify_reply("what's the weather tomorrow") == "unrelated"

    def test_request_after_confirmation_word_is_unrelated(self):
        assert classify_reply("ok what's the weather in Paris tomorrow") == "unrelated"
        assert classify_reply("stop the whatsapp bridge service") == "unrelated"

    def test_courtesy_tail_still_counts(self):
        assert classify_reply("ok go ahead, delete them") == "confirm"
        assert classify_reply("no, leave it please") == "cancel"

    def test_is_confirmation_response(self):
        assert is_confirmation_response("yep")
        assert is_confirmation_response("nope")
        assert not is_confirmation_response("open the news")


# ============================================================================
# RISK POLICY
# ============================================================================

class TestRisk:
    """Test the risk classification feeding the confirmation flow."""

    def test_levels(self):
        assert classify_action(Route.WORKSPACE, {"action": "delete"}) == "high"
        assert classify_action(Route.WORKSPACE, {"action": "write"}) == "medium"
        assert classify_action(Route.WEB, {"action": "open"}) == "low"
        assert classify_action(Route.MAIL, {}) == "low"

    def test_mail_items_prefer_attachments(self):
        risk = assess(Route.MAIL, {"action": "send", "attachments": ["notes.txt"], "to": ["bob"]})
        assert risk.requires_confirmation
        assert risk.items == ["notes.txt"]

    def test_high_risk_without_items_needs_path(self):
        risk = assess(Route.WORKSPACE, {"action": "delete", "paths": []})
        assert risk.needs_path is True


# ============================================================================
# ENTERING PENDING STATE
# ============================================================================

class TestRequestConfirmation:
    """Test request_confirmation() and prompts."""

    def test_stores_record_with_ttl(self, two_files):
        assert two_files.expires_at == 1000.0 + Config.CONFIRMATION_TTL_SEC
        assert has_active_pending(1, now=1001.0)

    def test_empty_items_rejected(self):
        with pytest.raises(ConfirmationStateError):
            request_confirmation(1, [], now=1000.0)
        assert not has_active_pending(1, now=1000.0)

    def test_prompt_lists_items(self):
        prompt = build_confirmation_prompt("delete", ["a.txt", "b.txt"], "workspace")
        assert prompt.splitlines() == [
            "Please confirm: delete 2 item(s) (workspace):",
            "- a.txt",
            "- b.txt",
            "Reply yes or no.",
        ]

    def test_get_pending_prompt(self, two_files):
        assert "- b.txt" in get_pending_prompt(1, now=1001.0)
        assert get_pending_prompt(2, now=1001.0) is None


# ============================================================================
# RESOLUTION TESTS
# ============================================================================

class TestResolvePending:
    """Test resolve_pending()."""

    def test_no_pending_returns_none(self):
        executor = MagicMock()
        result = resolve_pending(1, "yes", executor=executor, now=1000.0)
        assert result.result == "none"
        executor.assert_not_called()

    def test_yes_executes_each_item_and_reports(self, two_files):
        executor = _failing_on("a.txt")
        reply_fn = MagicMock()

        resolution = resolve_pending(1, "yes", executor=executor, reply_fn=reply_fn, now=1010.0)

        assert resolution.result == "executed"
        assert executor.call_count == 2
        assert [r.ok for r in resolution.report.results] == [False, True]
        assert resolution.report.results[0].error == "FileNotFoundError: a.txt"
        expected = "Deleted 1 of 2 item(s).\n- a.txt: failed (FileNotFoundError: a.txt)\n- b.txt: deleted"
        assert resolution.reply == expected
        reply_fn.assert_called_once_with(expected)

    def test_pending_cleared_before_execution(self, two_files):
        seen = []

        def execute(pending, item):
            seen.append(has_active_pending(1, now=1010.0))
            return True

        resolve_pending(1, "yes", executor=execute, now=1010.0)
        assert seen == [False, False]

    def test_second_yes_does_not_run_again(self, two_files):
        executor = MagicMock(return_value="done")
        resolve_pending(1, "yes", executor=executor, now=1010.0)
        again = resolve_pending(1, "yes", executor=executor, now=1011.0)
        assert again.result == "none"
        assert executor.call_count == 2

    def test_executor_false_counts_as_failure(self, two_files):
        resolution = resolve_pending(1, "yes", executor=MagicMock(return_value=False), now=1010.0)
        assert resolution.report.all_ok is False
        assert len(resolution.report.failed) == 2

    def test_no_cancels(self, two_files):
        executor = MagicMock()
        reply_fn = MagicMock()

        resolution = resolve_pending(1, "no", executor=executor, reply_fn=reply_fn, now=1010.0)

        assert resolution.result == "cancelled"
        executor.assert_not_called()
        reply_fn.assert_called_once_with("Okay, cancelled.")
        assert not has_active_pending(1, now=1010.0)

    def test_unrelated_reply_keeps_pending(self, two_files):
        resolution = resolve_pending(1, "what's the weather", executor=MagicMock(), now=1010.0)
        assert resolution.result == "ignored"
        assert has_active_pending(1, now=1010.0)

    def test_request_starting_with_ok_does_not_confirm(self, two_files):
        executor = MagicMock()
        resolution = resolve_pending(1, "ok what's the weather in Paris tomorrow", executor=executor, now=1010.0)
        assert resolution.result == "ignored"
        executor.assert_not_called()
        assert has_active_pending(1, now=1010.0)

    def test_request_starting_with_stop_does_not_cancel(self, two_files):
        resolution = resolve_pending(1, "stop the whatsapp bridge service", executor=MagicMock(), now=1010.0)
        assert resolution.result == "ignored"
        assert get_session_store().get_pending_confirmation(1, 1010.0).paths == ["a.txt", "b.txt"]

    def test_expired_pending_behaves_as_absent(self, two_files):
        executor = MagicMock()
        later = 1000.0 + Config.CONFIRMATION_TTL_SEC + 1
        assert resolve_pending(1, "yes", executor=executor, now=later).result == "none"
        executor.assert_not_called()

    def test_reply_failure_is_contained(self, two_files):
        reply_fn = MagicMock(side_effect=RuntimeError("transport down"))
        resolution = resolve_pending(1, "no", reply_fn=reply_fn, now=1010.0)
        assert resolution.result == "cancelled"


class TestPathPrompt:
    """Test the pending-path step."""

    def test_named_item_moves_to_confirm(self):
        request_path(1, action="delete", route="workspace", now=1000.0)
        reply_fn = MagicMock()

        resolution = resolve_pending(1, "report.pdf", reply_fn=reply_fn, now=1005.0)

        assert resolution.result == "path-accepted"
        pending = get_session_store().get_pending_confirmation(1, 1005.0)
        assert pending.paths == ["report.pdf"]
        assert get_session_store().get_pending_path(1, 1005.0) is None
        assert "report.pdf" in reply_fn.call_args[0][0]

    def test_cancel_path_prompt(self):
        request_path(1, now=1000.0)
        assert resolve_pending(1, "cancel", now=1005.0).result == "cancelled"
        assert not has_active_pending(1, now=1005.0)

    def test_unrelated_path_reply_ignored(self):
        request_path(1, now=1000.0)
        assert resolve_pending(1, "hmm what", now=1005.0).result == "ignored"
        assert has_active_pending(1, now=1005.0)

    def test_mail_route_accepts_email(self):
        request_path(1, action="delete", route="mail-contacts", now=1000.0)
        resolve_pending(1, "it's bob@example.com", now=1005.0)
        assert get_session_store().get_pending_confirmation(1, 1005.0).paths == ["bob@example.com"]


class TestPassiveExpiry:
    """Test check_passive_expiry()."""

    def test_clears_expired(self, two_files):
        assert check_passive_expiry(now=1000.0 + Config.CONFIRMATION_TTL_SEC + 1) == 1
        assert get_session_store().get_pending_confirmation(1, 0.0, include_expired=True) is None

    def test_keeps_live(self, two_files):
        assert check_passive_expiry(now=1001.0) == 0
        assert has_active_pending(1, now=1001.0)
