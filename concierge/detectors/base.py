"""
Rule-table detector base.

A detector is a list of Rules tried in order against the normalized text.
The first rule whose pattern matches AND whose extractor returns params
(with every required param present) wins. Anything else means the route
does not apply.

HARD RULES:
- Pure: no chat state, no I/O
- Empty/whitespace text never applies
- A partial match degrades to "does not apply" rather than guessing
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from concierge.core.normalizer import normalize_text
from concierge.core.routes import Candidate, Route

# extract(match, raw_text, normalized) -> params, or None to reject the match
ParamExtractor = Callable[[re.Match, str, str], Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class Rule:
    """pattern -> params, for one route"""
    name: str
    pattern: Pattern[str]
    params: Dict[str, Any] = field(default_factory=dict)
    extract: Optional[ParamExtractor] = None


def rule(name: str, pattern: str, extract: Optional[ParamExtractor] = None, **params: Any) -> Rule:
    """Compile a Rule. Patterns always run against normalized text."""
    return Rule(name=name, pattern=re.compile(pattern), params=params, extract=extract)


class Detector:
    """Base class for one route's detector."""

    route: Route = Route.NONE
    rules: Sequence[Rule] = ()
    required_params: Tuple[str, ...] = ()
    # If any of these match, the route never applies
    vetoes: Sequence[Pattern[str]] = ()

    def detect(self, raw_text: str, normalized: Optional[str] = None) -> Candidate:
        if normalized is None:
            normalized = normalize_text(raw_text)
        if not normalized or not (raw_text or "").strip():
            return Candidate(route=self.route, applies=False)

        for veto in self.vetoes:
            if veto.search(normalized):
                return Candidate(route=self.route, applies=False)

        for current in self.rules:
            match = current.pattern.search(normalized)
            if not match:
                continue
            params = dict(current.params)
            if current.extract is not None:
                extracted = current.extract(match, raw_text, normalized)
                if extracted is None:
                    continue
                params.update(extracted)
            params = self.finalize(params, raw_text, normalized)
            if params is None or not self._has_required(params):
                continue
            return Candidate(route=self.route, applies=True, params=params, rule=current.name)

        return Candidate(route=self.route, applies=False)

    def finalize(self, params: Dict[str, Any], raw_text: str, normalized: str) -> Optional[Dict[str, Any]]:
        """Hook for route-wide param post-processing. Return None to reject."""
        return params

    def _has_required(self, params: Dict[str, Any]) -> bool:
        for key in self.required_params:
            value = params.get(key)
            if value is None or value == "" or value == []:
                return False
        return True


# ═══════════════════════════════════════════════════════════════════════════
# Shared lexical helpers used by several detectors
# ═══════════════════════════════════════════════════════════════════════════

PRONOUN_REF_RE = re.compile(r"\b(it|that|this|them|those|these|that one|this one|same one|the same)\b")

ORDINAL_REF_RE = re.compile(
    r"\b(first|second|third|fourth|fifth|sixth|seventh|eighth|ninth|tenth|last|penultimate|"
    r"\d{1,3}(?:st|nd|rd|th)?)\b"
)

POLITE_PREFIX_RE = re.compile(
    r"^(?:(?:please|pls|hey|ok|okay|so|now|and|also|could you|can you|would you|will you|"
    r"i want you to|i d like you to|i need you to|go ahead and)\s+)+"
)


def strip_polite_prefix(normalized: str) -> str:
    return POLITE_PREFIX_RE.sub("", normalized).strip()


def has_pronoun_reference(normalized: str) -> bool:
    return bool(PRONOUN_REF_RE.search(normalized))


def first_group(match: re.Match, *names: str) -> Optional[str]:
    """First non-empty named group among names."""
    groups = match.groupdict()
    for name in names:
        value = groups.get(name)
        if value and value.strip():
            return value.strip()
    return None


def words_after(normalized: str, marker: str, max_words: int = 6) -> Optional[str]:
    """Up to max_words words following the first whole-word marker."""
    match = re.search(rf"\b{re.escape(marker)}\b\s+(.+)$", normalized)
    if not match:
        return None
    words = match.group(1).split(" ")[:max_words]
    value = " ".join(words).strip()
    return value or None


def unique(values: List[Any]) -> List[Any]:
    seen: List[Any] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
