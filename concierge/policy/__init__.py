"""concierge.policy

This package provides:
- Risk classification for routed actions
- The confirmation state machine for destructive/outward-facing actions
- The "did you mean" clarification question for tied routes

HARD RULES:
- All decisions are deterministic (no LLM involvement)
- High-risk actions never execute without an explicit yes
"""

from concierge.policy.risk import assess, classify_action, RiskAssessment
from concierge.policy.pending_confirmation import (
    ConfirmationStateError,
    classify_reply,
    resolve_pending,
)
from concierge.policy.clarification import request_clarification, resolve_clarification

__all__ = [
    "assess",
    "classify_action",
    "RiskAssessment",
    "ConfirmationStateError",
    "classify_reply",
    "resolve_pending",
    "request_clarification",
    "resolve_clarification",
]
