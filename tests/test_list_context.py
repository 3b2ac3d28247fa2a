"""
Tests for the Indexed List Context.

Tests ordinal/number parsing, selector resolution and TTL-aware
resolution against the chat's last rendered list.

Run with: python -m pytest tests/test_list_context.py -v
"""

import pytest

from concierge.context.list_context import (
    MAX_RANGE_SPAN,
    parse_indexed_reference,
    remember,
    resolve_reference,
    resolve_selectors,
)
from concierge.context.session_store import InMemorySessionStore
from concierge.core.config import Config


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def web_results(store):
    """Five search results remembered for chat 1 at t=1000."""
    items = [{"title": f"Result {i}", "url": f"https://example.com/{i}"} for i in range(1, 6)]
    return remember(1, "web-results", "cheap flights", "web", items, now=1000.0, store=store)


# ============================================================================
# PARSING
# ============================================================================

class TestParseIndexedReference:
    """Test parse_indexed_reference()."""

    def test_ordinal_word(self):
        intent = parse_indexed_reference("open the third one")
        assert intent.action == "open"
        assert intent.selectors == [3]

    def test_numeric_ordinal(self):
        assert parse_indexed_reference("show me the 2nd").selectors == [2]

    def test_range(self):
        intent = parse_indexed_reference("read 2 to 4")
        assert intent.action == "read"
        assert intent.selectors == [2, 3, 4]

    def test_range_is_capped(self):
        intent = parse_indexed_reference("show 1 to 50")
        assert len(intent.selectors) == MAX_RANGE_SPAN

    def test_last(self):
        intent = parse_indexed_reference("delete the last one")
        assert intent.action == "delete"
        assert intent.selectors == ["last"]

    def test_second_to_last(self):
        assert parse_indexed_reference("open the second to last one").selectors == ["penultimate"]

    def test_all(self):
        assert parse_indexed_reference("delete all of them").selectors == ["all"]

    def test_bare_number(self):
        intent = parse_indexed_reference("3")
        assert intent.action == "select"
        assert intent.selectors == [3]

    def test_last_n(self):
        intent = parse_indexed_reference("delete the last 2")
        assert intent.action == "delete"
        assert intent.selectors == [("last", 2)]

    def test_first_n(self):
        assert parse_indexed_reference("open the first 3").selectors == [("first", 3)]

    @pytest.mark.parametrize("text", ["open the latest one", "show me the final result"])
    def test_latest_next_to_list_noun(self, text):
        assert parse_indexed_reference(text).selectors == ["last"]

    @pytest.mark.parametrize("text", [
        "meet me at 5 pm",
        "I have 2 cats",
        "hello there",
        "",
        "search the web for the latest news about AI",
        "what did I send last week",
        "the last 2 days were busy",
        "delete what I saved last night",
    ])
    def test_not_a_reference(self, text):
        assert parse_indexed_reference(text) is None


class TestResolveSelectors:
    """Test resolve_selectors()."""

    def test_mixed_selectors_keep_order(self):
        assert resolve_selectors(["last", 2, 9], 5) == [5, 2]

    def test_out_of_range_dropped(self):
        assert resolve_selectors([0, 6], 5) == []

    def test_penultimate_on_single_item(self):
        assert resolve_selectors(["penultimate"], 1) == []

    def test_all_deduplicates(self):
        assert resolve_selectors([2, "all"], 3) == [2, 1, 3]

    def test_last_and_first_n(self):
        assert resolve_selectors([("last", 2)], 5) == [4, 5]
        assert resolve_selectors([("first", 3)], 5) == [1, 2, 3]

    def test_edge_n_larger_than_list(self):
        assert resolve_selectors([("last", 9)], 3) == [1, 2, 3]
        assert resolve_selectors([("first", 9)], 3) == [1, 2, 3]

    def test_edge_n_is_capped(self):
        assert len(resolve_selectors([("first", 99)], 100)) == MAX_RANGE_SPAN


# ============================================================================
# RESOLUTION
# ============================================================================

class TestResolveReference:
    """Test resolve_reference() against a live list."""

    def test_items_are_dense_and_one_based(self, web_results):
        assert [item.index for item in web_results.items] == [1, 2, 3, 4, 5]
        assert web_results.items[0].reference == "https://example.com/1"
        assert web_results.items[0].label == "Result 1"

    def test_resolves_item(self, store, web_results):
        reference = resolve_reference(1, "open the third one", now=1010.0, store=store)
        assert reference.indices == [3]
        assert reference.items[0].reference == "https://example.com/3"
        assert reference.kind == "web-results"

    def test_to_params(self, store, web_results):
        params = resolve_reference(1, "read 1 and 2", now=1010.0, store=store).to_params()
        assert params["indices"] == [1, 2]
        assert params["items"][1]["reference"] == "https://example.com/2"

    def test_last_two_resolve_to_the_tail(self, store, web_results):
        reference = resolve_reference(1, "delete the last 2", now=1010.0, store=store)
        assert reference.indices == [4, 5]
        assert [item.reference for item in reference.items] == ["https://example.com/4", "https://example.com/5"]

    def test_out_of_range_is_no_match(self, store, web_results):
        assert resolve_reference(1, "open the 9th one", now=1010.0, store=store) is None

    def test_expired_list_is_no_match(self, store, web_results):
        later = 1000.0 + Config.LIST_CONTEXT_TTL_SEC + 1
        assert resolve_reference(1, "open the third one", now=later, store=store) is None
        assert store.get_list_context(1, later) is None

    def test_other_chat_has_no_list(self, store, web_results):
        assert resolve_reference(2, "open the third one", now=1010.0, store=store) is None

    def test_new_list_replaces_old(self, store, web_results):
        remember(1, "mail-list", "inbox", "mail", ["m-1", "m-2"], now=1020.0, store=store)
        reference = resolve_reference(1, "open the last one", now=1030.0, store=store)
        assert reference.kind == "mail-list"
        assert reference.items[0].reference == "m-2"

    def test_unknown_kind_rejected(self, store):
        with pytest.raises(ValueError):
            remember(1, "photos", "x", "y", ["a"], now=1000.0, store=store)
