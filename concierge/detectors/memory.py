"""
Memory detector: recall, store and forget facts the user told the assistant.

Only fires when the whole utterance is clearly a memory command; reminders
with a time ("remember to call mom at 5") are left to the schedule route.
"""

from __future__ import annotations

import re

from concierge.core.cues import MEMORY_RECALL_CUE_RE, has_time_cue
from concierge.core.routes import Route
from concierge.detectors.base import Detector, rule

# "open chrome and then remember X" is a sequence, not a memory command
_SEQUENCE_SEPARATORS_RE = re.compile(r"\b(?:and then|then|after that)\b")


def _recall(match, raw_text, normalized):
    query = normalized[MEMORY_RECALL_CUE_RE.search(normalized).end():].strip()
    query = re.sub(r"^(?:about|that|what|when|if|the)\s+", "", query)
    return {"query": query or None}


def _remember(match, raw_text, normalized):
    if has_time_cue(normalized) or normalized.startswith("remember to "):
        return None
    fact = match.group("fact").strip()
    return {"fact": fact} if fact else None


def _forget(match, raw_text, normalized):
    target = match.group("target").strip()
    return {"target": target} if target else None


class MemoryDetector(Detector):
    route = Route.MEMORY
    required_params = ("action",)
    vetoes = (_SEQUENCE_SEPARATORS_RE,)
    rules = (
        rule("list", r"\b(?:what do you (?:remember|know) about me|list (?:your |my )?memories|"
                     r"show (?:me )?(?:your |my )?memories|what do you remember)\b",
             action="list"),
        rule("recall", MEMORY_RECALL_CUE_RE.pattern, extract=_recall, action="recall"),
        rule("remember", r"^(?:please )?(?:remember|note|keep in mind|don t forget|save)\s+(?:that\s+)?(?P<fact>.+)$",
             extract=_remember, action="remember"),
        rule("forget", r"^(?:please )?forget\s+(?:that\s+|about\s+)?(?P<target>.+)$",
             extract=_forget, action="forget"),
    )
