"""
Tests for the Sequence Planner.

Tests lexical splitting, plan JSON parsing and the LLM planning path with a
mocked completion client.

Run with: python -m pytest tests/test_sequence_planner.py -v
"""

import json

import pytest
from unittest.mock import MagicMock

from concierge.core.sequence_planner import (
    MAX_INSTRUCTION_CHARS,
    SequencePlanner,
    SequenceStep,
    materialize_step_instruction,
    split_sequence_text,
    try_parse_plan,
)

LONG_REQUEST = "create a file called notes.txt with a short poem about the sea and send it to bob by mail"


def _plan_json(*instructions, mode="sequence"):
    return json.dumps({
        "mode": mode,
        "steps": [{"instruction": text} for text in instructions],
        "reason": "two actions",
    })


# ============================================================================
# LEXICAL SPLITTING
# ============================================================================

class TestSplitSequenceText:
    """Test split_sequence_text()."""

    def test_first_then(self):
        assert split_sequence_text("first create notes.txt then send it by mail") == [
            "create notes.txt",
            "send it by mail",
        ]

    def test_two_separators_without_start_cue(self):
        assert split_sequence_text("create a.txt, then b.txt, then c.txt") == ["create a.txt", "b.txt", "c.txt"]

    def test_after_that(self):
        steps = split_sequence_text("First, list my files. After that, delete old.log")
        assert steps == ["list my files", "delete old.log"]

    def test_numbered_lines(self):
        assert split_sequence_text("1. create notes.txt\n2. send it by mail") == [
            "create notes.txt",
            "send it by mail",
        ]

    def test_single_then_is_not_a_sequence(self):
        assert split_sequence_text("open the news and then summarize it") is None

    def test_plain_text_is_not_a_sequence(self):
        assert split_sequence_text("delete report.pdf") is None
        assert split_sequence_text("") is None

    def test_capped_at_max_steps(self):
        assert split_sequence_text("first a then b then c then d", max_steps=2) == ["a", "b"]


# ============================================================================
# PLAN PARSING
# ============================================================================

class TestTryParsePlan:
    """Test try_parse_plan()."""

    def test_fenced_sequence(self):
        raw = (
            "```json\n"
            '{"mode":"sequence","steps":[{"instruction":"create notes.txt"},'
            '{"instruction":"mail it","ai_content_prompt":"a poem"}],"reason":"two actions"}\n'
            "```"
        )
        parsed = try_parse_plan(raw)
        assert parsed.mode == "sequence"
        assert [s.index for s in parsed.steps] == [1, 2]
        assert parsed.steps[1].ai_content_prompt == "a poem"
        assert parsed.reason == "two actions"

    def test_invalid_steps_skipped(self):
        raw = json.dumps({"mode": "sequence", "steps": [{"instruction": ""}, "junk", {"instruction": "list files"}]})
        parsed = try_parse_plan(raw)
        assert [s.instruction for s in parsed.steps] == ["list files"]
        assert parsed.steps[0].index == 1

    def test_instruction_truncated(self):
        raw = json.dumps({"mode": "sequence", "steps": [{"instruction": "x" * 1000}]})
        assert len(try_parse_plan(raw).steps[0].instruction) == MAX_INSTRUCTION_CHARS

    @pytest.mark.parametrize("raw", ["not json", '{"mode": "banana"}', "[1, 2]", ""])
    def test_malformed(self, raw):
        assert try_parse_plan(raw) is None


class TestMaterializeStep:
    """Test materialize_step_instruction()."""

    def test_placeholder(self):
        step = SequenceStep(1, "write {{ai_content}} to poem.txt", "a poem")
        assert materialize_step_instruction(step, "roses") == "write roses to poem.txt"

    def test_appended(self):
        step = SequenceStep(1, "mail bob", "a greeting")
        assert materialize_step_instruction(step, "hello") == "mail bob\ncontent: hello"

    def test_no_content(self):
        step = SequenceStep(1, "mail bob", "a greeting")
        assert materialize_step_instruction(step, None) == "mail bob"


# ============================================================================
# PLANNER
# ============================================================================

class TestSequencePlanner:
    """Test SequencePlanner.plan()."""

    def test_lexical_plan_without_client(self):
        plan = SequencePlanner(client=None).plan("first create notes.txt then send it by mail")
        assert plan.source == "lexical"
        assert plan.total == 2
        assert plan.steps[1].instruction == "send it by mail"

    def test_llm_plan(self):
        client = MagicMock()
        client.complete.return_value = _plan_json("create notes.txt with a poem", "send notes.txt to bob by mail")

        plan = SequencePlanner(client=client, llm_enabled=True).plan(LONG_REQUEST)

        assert plan.source == "llm"
        assert plan.total == 2
        assert plan.reason == "two actions"
        client.complete.assert_called_once()

    def test_llm_single_means_no_plan(self):
        client = MagicMock()
        client.complete.return_value = _plan_json(mode="single")
        assert SequencePlanner(client=client, llm_enabled=True).plan(LONG_REQUEST) is None

    def test_llm_one_step_means_no_plan(self):
        client = MagicMock()
        client.complete.return_value = _plan_json("do everything")
        assert SequencePlanner(client=client, llm_enabled=True).plan(LONG_REQUEST) is None

    def test_llm_error_means_no_plan(self):
        client = MagicMock()
        client.complete.side_effect = ConnectionError("ollama down")
        assert SequencePlanner(client=client, llm_enabled=True).plan(LONG_REQUEST) is None

    def test_short_text_never_asks_llm(self):
        client = MagicMock()
        assert SequencePlanner(client=client, llm_enabled=True).plan("delete report.pdf") is None
        client.complete.assert_not_called()

    def test_disabled_never_asks_llm(self):
        client = MagicMock()
        assert SequencePlanner(client=client, llm_enabled=False).plan(LONG_REQUEST) is None
        client.complete.assert_not_called()

    def test_generate_step_content(self):
        client = MagicMock()
        client.complete.return_value = "  roses are red  "
        planner = SequencePlanner(client=client)
        step = SequenceStep(1, "write {{ai_content}} to poem.txt", "a short poem")
        assert planner.generate_step_content(LONG_REQUEST, step) == "roses are red"

    def test_generate_step_content_without_prompt(self):
        client = MagicMock()
        planner = SequencePlanner(client=client)
        assert planner.generate_step_content(LONG_REQUEST, SequenceStep(1, "list files")) is None
        client.complete.assert_not_called()
