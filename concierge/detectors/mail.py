"""
Mail detector: status, list, read, search, send, reply, forward.

"send it by mail to bob@example.com"
    -> {"action": "send", "to": ["bob@example.com"], "attachments": [], "refers_to_previous": True}
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from concierge.core.normalizer import extract_emails, extract_file_tokens
from concierge.core.routes import Route
from concierge.detectors.base import Detector, ORDINAL_REF_RE, has_pronoun_reference, rule

_MAIL_NOUN = r"(?:mail|mails|email|emails|e mail|gmail|inbox|messages?)"

_TO_NAME_RE = re.compile(r"\bto (?P<name>[a-z]+)(?:\s|$)")
_NOT_NAMES = {"me", "my", "the", "a", "it", "them", "him", "her", "all", "everyone", "send", "mail", "email"}
_SUBJECT_RE = re.compile(r"\b(?:subject|titled|about)\s+(?P<subject>.+?)(?:\s+(?:saying|that says|body)\b|$)")
_SEARCH_QUERY_RE = re.compile(r"\b(?:from|about|with subject|mentioning)\s+(?P<query>.+)$")
_LIMIT_RE = re.compile(r"\b(?:last|latest|recent)\s+(?P<n>\d{1,2})\b")


def _recipients(raw_text: str, normalized: str) -> List[str]:
    emails = extract_emails(raw_text)
    if emails:
        return emails
    match = _TO_NAME_RE.search(normalized)
    if match and match.group("name") not in _NOT_NAMES:
        return [match.group("name")]
    return []


def _send(match, raw_text, normalized):
    verb = match.group("verb")
    action = {"reply": "reply", "answer": "reply", "forward": "forward"}.get(verb, "send")
    subject = _SUBJECT_RE.search(normalized)
    return {
        "action": action,
        "to": _recipients(raw_text, normalized),
        "subject": subject.group("subject") if subject else None,
        "attachments": extract_file_tokens(raw_text),
        "refers_to_previous": has_pronoun_reference(normalized),
    }


def _read(match, raw_text, normalized):
    return {
        "action": "read",
        "list_reference": bool(ORDINAL_REF_RE.search(normalized)),
        "refers_to_previous": has_pronoun_reference(normalized),
    }


def _list(match, raw_text, normalized):
    limit = _LIMIT_RE.search(normalized)
    unread = bool(re.search(r"\b(?:unread|new)\b", normalized))
    return {"action": "list", "limit": int(limit.group("n")) if limit else None, "unread_only": unread}


def _search(match, raw_text, normalized):
    query = _SEARCH_QUERY_RE.search(normalized)
    if not query:
        return None
    return {"action": "search", "query": query.group("query").strip()}


class MailDetector(Detector):
    route = Route.MAIL
    required_params = ("action",)
    vetoes = (re.compile(r"\b(?:contact|contacts|recipient|recipients|address book)\b"),)
    rules = (
        rule("send", r"\b(?P<verb>send|write|compose|draft|forward|reply|answer|mail|email)\b.*"
                     r"\b(?:by|via|over|through)\s+(?:e ?mail|mail|gmail)\b",
             extract=_send),
        rule("send-noun", r"\b(?P<verb>send|write|compose|draft|forward|reply|answer)\b(?:\s+\w+){0,4}\s+"
                          + _MAIL_NOUN + r"\b",
             extract=_send),
        rule("send-to", r"\b(?P<verb>mail|email)\s+(?:it|this|that|them|\w+\.\w+)\s+to\b", extract=_send),
        rule("search", r"\b(?:search|find|look for|look up)\b.*\b" + _MAIL_NOUN + r"\b", extract=_search),
        rule("read", r"\b(?:read|open)\b.*\b" + _MAIL_NOUN + r"\b", extract=_read),
        rule("status", r"\b(?:do i have|any|how many)\b.*\b(?:new |unread )?" + _MAIL_NOUN + r"\b",
             action="status"),
        rule("list", r"\b(?:list|show|check|see)\b.*\b" + _MAIL_NOUN + r"\b|\b(?:inbox|unread mail|unread emails)\b",
             extract=_list),
    )

    def finalize(self, params: Dict[str, Any], raw_text: str, normalized: str) -> Optional[Dict[str, Any]]:
        # "message" alone is too loose unless it is a send/reply
        if params.get("action") in ("list", "read", "status") and not re.search(
                r"\b(?:mail|mails|email|emails|e mail|gmail|inbox)\b", normalized):
            return None
        return params
