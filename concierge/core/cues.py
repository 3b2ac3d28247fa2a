"""
Conversation cues shared by the context filter and the detectors.

Every function takes NORMALIZED text (see normalizer.normalize_text).
"""

from __future__ import annotations

import re
from typing import Literal

InteractionMode = Literal["operational", "conversational", "mixed"]

MAIL_CUE_RE = re.compile(r"\b(gmail|mail|mails|email|emails|e mail|inbox|mailbox)\b")

MEMORY_RECALL_CUE_RE = re.compile(
    r"\b(do you remember|you remember|remember when|remember what|what did i (?:tell|say to) you|"
    r"did i (?:tell|mention)|i told you|we talked about|we discussed|recall|your memory|from memory)\b"
)

SCHEDULE_VERB_RE = re.compile(r"\b(schedule|reschedule|remind|reminder|program|plan|set up|every|later)\b")

TIME_CUE_RE = re.compile(
    r"\b(today|tomorrow|tonight|this (?:morning|afternoon|evening)|at \d{1,2}(?: \d{2})?(?: ?[ap]m)?|"
    r"in \d+ (?:minute|minutes|min|mins|hour|hours|day|days|week|weeks)|\d{1,2} ?[ap]m|"
    r"every (?:day|morning|night|evening|week|weekday|monday|tuesday|wednesday|thursday|friday|saturday|sunday)|"
    r"daily|weekly)\b"
)

FILE_WORD_RE = re.compile(
    r"\b(workspace|file|files|folder|folders|directory|directories|document|documents|"
    r"pdf|txt|csv|json|md|docx|xlsx)\b"
)

WORKSPACE_VERB_RE = re.compile(
    r"\b(rename|move|copy|paste|delete|remove|erase|trash|open|read|mkdir|create|write|save)\b"
)

WEB_CUE_RE = re.compile(r"\b(web|internet|online|google|news|headlines|website|browse)\b")

CONNECTOR_NOUN_RE = re.compile(r"\b(connector|connectors|bridge|bridges|daemon|integration|lim)\b")
CONNECTOR_VERB_RE = re.compile(
    r"\b(start|stop|restart|reboot|enable|disable|turn on|turn off|status|check|up|down|running)\b"
)

FOLLOWUP_PRONOUN_RE = re.compile(
    r"\b(it|that|this|them|those|these|that one|this one|the last one|same|previous|above)\b"
)

# Interaction mode lexicons
_OPERATIONAL_RE = re.compile(
    r"\b(open|send|delete|remove|create|make|search|find|read|list|show|move|rename|copy|paste|"
    r"schedule|remind|start|stop|restart|download|write|save|summarize|summarise|reply|forward|"
    r"add|update|check|look up|google|mkdir|cancel|run|set)\b"
)
_CONVERSATIONAL_RE = re.compile(
    r"\b(how are you|what do you think|do you like|tell me about yourself|i feel|i m feeling|"
    r"thanks|thank you|hello|hi|hey|good morning|good night|lol|haha|why do you|"
    r"who are you|what are you|nice to meet you|how s it going)\b"
)


def has_mail_cue(normalized: str) -> bool:
    return bool(MAIL_CUE_RE.search(normalized))


def has_memory_recall_cue(normalized: str) -> bool:
    return bool(MEMORY_RECALL_CUE_RE.search(normalized))


def has_time_cue(normalized: str) -> bool:
    return bool(TIME_CUE_RE.search(normalized))


def has_scheduled_mail_cue(normalized: str) -> bool:
    """Mail vocabulary + scheduling verb + a time expression."""
    if not has_mail_cue(normalized):
        return False
    return bool(SCHEDULE_VERB_RE.search(normalized)) and has_time_cue(normalized)


def has_file_cue(normalized: str) -> bool:
    return bool(FILE_WORD_RE.search(normalized))


def has_workspace_cue(normalized: str, has_file_token: bool = False) -> bool:
    """File verbs/nouns or a concrete file token, and no mail or web vocabulary."""
    if has_mail_cue(normalized) or WEB_CUE_RE.search(normalized):
        return False
    return has_file_token or bool(FILE_WORD_RE.search(normalized)) or bool(WORKSPACE_VERB_RE.search(normalized))


def has_web_cue(normalized: str) -> bool:
    return bool(WEB_CUE_RE.search(normalized))


def has_connector_cue(normalized: str) -> bool:
    """Connector noun + control verb with no other domain vocabulary."""
    if not CONNECTOR_NOUN_RE.search(normalized) or not CONNECTOR_VERB_RE.search(normalized):
        return False
    return not (has_mail_cue(normalized) or has_file_cue(normalized) or has_web_cue(normalized))


def has_followup_pronoun(normalized: str) -> bool:
    return bool(FOLLOWUP_PRONOUN_RE.search(normalized))


def classify_interaction_mode(normalized: str) -> InteractionMode:
    """
    operational: asks for an action
    conversational: chit-chat with no action verb
    mixed: both, or neither (kept permissive so cue rules still run)
    """
    operational = bool(_OPERATIONAL_RE.search(normalized))
    conversational = bool(_CONVERSATIONAL_RE.search(normalized))
    if conversational and not operational:
        return "conversational"
    if operational and not conversational:
        return "operational"
    return "mixed"
