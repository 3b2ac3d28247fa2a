"""
Sequence Planner: decides whether one message is really N ordered steps.

Two independent triggers:
- Lexical chain cues ("first ... then ...", "..., after that ...",
  numbered lines) split the raw text by simple separators.
- Otherwise, long/structured texts are sent to the completion service for a
  JSON plan: {"mode": "single"|"sequence", "steps": [...], "reason": "..."}.

Only plans with >= 2 steps are accepted. Anything else (1 step, malformed
JSON, service error, timeout) means "not a sequence" and the message is
routed as a single instruction.

Steps never execute here; the orchestrator runs them one by one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from concierge.brain.llm_json import extract_json_object
from concierge.brain.messages import MessageBuilder
from concierge.brain.ollama_client import CompletionClient
from concierge.core import cues
from concierge.core.config import Config
from concierge.core.logger import get_logger
from concierge.core.normalizer import normalize_text
from concierge.core.timebox import run_with_timeout

MAX_INSTRUCTION_CHARS = 700
MAX_REASON_CHARS = 180
AI_CONTENT_PLACEHOLDER = "{{ai_content}}"

PlanSource = Literal["lexical", "llm"]

# ═══════════════════════════════════════════════════════════════════════════
# LEXICAL CUES
# ═══════════════════════════════════════════════════════════════════════════

_START_CUE_RE = re.compile(r"^\s*(?:please\s+|ok(?:ay)?\s+)?(?:first(?:ly)?|first of all|to start)\b[,:]?\s*", re.IGNORECASE)

# "then" style connectors may appear anywhere; "next"/"finally" only after punctuation
_SEPARATOR_RE = re.compile(
    r"\s*(?:[,;.]\s*)?\b(?:and\s+then|then|after\s+that|afterwards|and\s+finally|and\s+lastly)\b[,:]?\s*"
    r"|\s*[,;.]\s*(?:next|finally|lastly)\b[,:]?\s*",
    re.IGNORECASE,
)

_NUMBERED_LINE_RE = re.compile(r"^\s*(?:\d{1,2}\s*[.)-]|step\s+\d{1,2}\s*[:.)-]?)\s*(.+?)\s*$", re.IGNORECASE)

_STRUCTURE_RE = re.compile(r"\b(?:and|also|plus|then|after)\b|[,;\n]", re.IGNORECASE)

_EDGE_JUNK_RE = re.compile(r"^[\s,;:.]+|[\s,;:]+$")
_LEADING_AND_RE = re.compile(r"^(?:and|also)\s+", re.IGNORECASE)


def truncate_inline(text: str, max_chars: int) -> str:
    flat = " ".join((text or "").split())
    if len(flat) <= max_chars:
        return flat
    return flat[: max(0, max_chars - 3)] + "..."


@dataclass
class SequenceStep:
    index: int
    instruction: str
    ai_content_prompt: Optional[str] = None


@dataclass
class SequencePlan:
    steps: List[SequenceStep]
    source: PlanSource
    reason: str = ""

    @property
    def total(self) -> int:
        return len(self.steps)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "reason": self.reason,
            "steps": [
                {"index": s.index, "instruction": s.instruction, "ai_content_prompt": s.ai_content_prompt}
                for s in self.steps
            ],
        }


@dataclass
class ParsedPlan:
    mode: Literal["single", "sequence"]
    steps: List[SequenceStep] = field(default_factory=list)
    reason: str = ""


def _clean_segment(segment: str) -> str:
    cleaned = _EDGE_JUNK_RE.sub("", segment or "")
    cleaned = _LEADING_AND_RE.sub("", cleaned)
    return cleaned.strip()


def split_numbered_lines(text: str) -> Optional[List[str]]:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    numbered = [m.group(1) for m in (_NUMBERED_LINE_RE.match(line) for line in lines) if m]
    if len(numbered) >= 2 and len(numbered) >= len(lines) - 1:
        return [_clean_segment(step) for step in numbered if _clean_segment(step)]
    return None


def split_sequence_text(text: str, max_steps: Optional[int] = None) -> Optional[List[str]]:
    """
    Split text into ordered steps using lexical chain cues.

    A split needs either a start cue ("first ...") plus at least one
    separator, or at least two separators. Returns None when the text is not
    a lexical sequence or yields fewer than 2 non-empty steps.
    """
    max_steps = max_steps or Config.SEQUENCE_MAX_STEPS
    if not text or not text.strip():
        return None

    steps = split_numbered_lines(text)
    if steps is None:
        start = _START_CUE_RE.match(text)
        body = text[start.end():] if start else text
        separators = len(_SEPARATOR_RE.findall(body))
        if not ((start and separators >= 1) or separators >= 2):
            return None
        steps = [_clean_segment(part) for part in _SEPARATOR_RE.split(body)]
        steps = [step for step in steps if step]

    if len(steps) < 2:
        return None
    if len(steps) > max_steps:
        get_logger().warning(f"[SEQ] lexical plan has {len(steps)} steps, keeping first {max_steps}")
        steps = steps[:max_steps]
    return steps


def try_parse_plan(raw: str, max_steps: Optional[int] = None) -> Optional[ParsedPlan]:
    """Parse a model's plan JSON; None for anything malformed."""
    max_steps = max_steps or Config.SEQUENCE_MAX_STEPS
    data = extract_json_object(raw)
    if data is None:
        return None
    mode = str(data.get("mode") or "").strip().lower()
    if mode not in ("single", "sequence"):
        return None

    steps: List[SequenceStep] = []
    raw_steps = data.get("steps") if isinstance(data.get("steps"), list) else []
    for entry in raw_steps:
        if not isinstance(entry, dict):
            continue
        instruction = entry.get("instruction")
        if not isinstance(instruction, str) or not instruction.strip():
            continue
        prompt = entry.get("ai_content_prompt")
        prompt = truncate_inline(prompt.strip(), MAX_INSTRUCTION_CHARS) if isinstance(prompt, str) else ""
        steps.append(SequenceStep(
            index=len(steps) + 1,
            instruction=truncate_inline(instruction.strip(), MAX_INSTRUCTION_CHARS),
            ai_content_prompt=prompt or None,
        ))
        if len(steps) >= max_steps:
            break

    reason = data.get("reason")
    reason = truncate_inline(reason.strip(), MAX_REASON_CHARS) if isinstance(reason, str) else ""
    return ParsedPlan(mode=mode, steps=steps, reason=reason)


def materialize_step_instruction(step: SequenceStep, ai_content: Optional[str]) -> str:
    """Substitute generated content into the step instruction."""
    if not ai_content:
        return step.instruction
    if AI_CONTENT_PLACEHOLDER in step.instruction:
        return step.instruction.replace(AI_CONTENT_PLACEHOLDER, ai_content)
    return f"{step.instruction}\ncontent: {ai_content}"


def build_plan_prompt(text: str, recent_turns: Sequence, max_steps: int) -> str:
    system = "\n".join([
        "You split user requests into ordered steps for a personal assistant.",
        "Decide whether the request is a single action or a sequence.",
        "Return ONLY valid JSON.",
        "",
        "Available domains: workspace, mail, mail-contacts, web, document, memory, schedule, connector, "
        "self-maintenance.",
        "",
        "Rules:",
        "- Use mode=sequence only for 2 or more distinct or dependent actions.",
        "- Otherwise use mode=single with empty steps.",
        "- Each step.instruction must be a natural-language instruction the assistant can act on.",
        f"- If a step needs creative/long text, add ai_content_prompt and put {AI_CONTENT_PLACEHOLDER} "
        "inside instruction.",
        f"- At most {max_steps} steps.",
        "",
        'Format: {"mode":"single|sequence","steps":[{"instruction":"string","ai_content_prompt":"optional"}],'
        '"reason":"short reason"}',
    ])
    return (
        MessageBuilder()
        .system(system)
        .turns(recent_turns)
        .user(f"Current request: {text}")
        .flatten(include_role_headers=True)
    )


class SequencePlanner:
    """Lexical splitting first, optional LLM planning second."""

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        max_steps: Optional[int] = None,
        min_chars_for_llm: Optional[int] = None,
        timeout_sec: Optional[float] = None,
        llm_enabled: Optional[bool] = None,
    ):
        self.client = client
        self.max_steps = max(2, max_steps or Config.SEQUENCE_MAX_STEPS)
        self.min_chars_for_llm = (
            min_chars_for_llm if min_chars_for_llm is not None else Config.SEQUENCE_MIN_CHARS_FOR_LLM
        )
        self.timeout_sec = timeout_sec if timeout_sec is not None else Config.LLM_PLANNER_TIMEOUT_SEC
        self.llm_enabled = Config.LLM_PLANNER_ENABLED if llm_enabled is None else llm_enabled
        self.logger = get_logger()

    def should_ask_llm(self, text: str) -> bool:
        if not self.llm_enabled or self.client is None:
            return False
        stripped = (text or "").strip()
        if len(stripped) < self.min_chars_for_llm:
            return False
        if not _STRUCTURE_RE.search(stripped):
            return False
        return cues.classify_interaction_mode(normalize_text(stripped)) != "conversational"

    def plan(self, text: str, recent_turns: Optional[Sequence] = None) -> Optional[SequencePlan]:
        """A plan of >= 2 steps, or None to route the text as one instruction."""
        steps = split_sequence_text(text, self.max_steps)
        if steps:
            plan = SequencePlan(
                steps=[SequenceStep(i + 1, s) for i, s in enumerate(steps)],
                source="lexical",
                reason="lexical chain cues",
            )
            self.logger.info(f"[SEQ] lexical plan steps={plan.total}")
            return plan

        if not self.should_ask_llm(text):
            return None

        prompt = build_plan_prompt(text, list(recent_turns or [])[-3:], self.max_steps)
        result = run_with_timeout(self.client.complete, self.timeout_sec, prompt, label="llm-planner")
        if not result.ok:
            self.logger.warning(f"[SEQ] llm planner unavailable: {result.error_message}")
            return None

        parsed = try_parse_plan(result.value or "", self.max_steps)
        if parsed is None or parsed.mode != "sequence" or len(parsed.steps) < 2:
            self.logger.debug("[SEQ] llm planner -> single")
            return None
        self.logger.info(f"[SEQ] llm plan steps={len(parsed.steps)} reason=\"{parsed.reason}\"")
        return SequencePlan(steps=parsed.steps, source="llm", reason=parsed.reason)

    def generate_step_content(self, user_text: str, step: SequenceStep) -> Optional[str]:
        """Generate the text a step asked for; None on any failure."""
        if not step.ai_content_prompt or self.client is None:
            return None
        prompt = "\n".join([
            "Generate ONLY the requested content.",
            "No explanations, no markdown, no headings.",
            "",
            f"Original request: {user_text}",
            f"Step: {step.instruction}",
            f"Content to generate: {step.ai_content_prompt}",
        ])
        result = run_with_timeout(self.client.complete, self.timeout_sec, prompt, label="step-content")
        if not result.ok:
            self.logger.warning(f"[SEQ] step {step.index} content generation failed: {result.error_message}")
            return None
        content = (result.value or "").strip()
        return content or None
