"""Mail-contacts detector: list/add/update/delete saved recipients."""

from __future__ import annotations

import re
from typing import Optional

from concierge.core.normalizer import extract_emails
from concierge.core.routes import Route
from concierge.detectors.base import Detector, rule

_NAME_AFTER_RE = re.compile(r"\b(?:as|named|called|contact|recipient)\s+(?P<name>[a-z][a-z ]{0,40}?)(?:\s+(?:with|to|from|email|mail)\b|$)")
_NAME_BEFORE_RE = re.compile(r"^(?:\w+\s+)(?P<name>[a-z][a-z]+)(?:\s+(?:from|as|to))")
_NOISE_NAMES = {"my", "the", "a", "new", "list", "contacts", "recipients", "contact", "recipient", "email", "mail"}


def _name(normalized: str) -> Optional[str]:
    for pattern in (_NAME_AFTER_RE, _NAME_BEFORE_RE):
        match = pattern.search(normalized)
        if match:
            name = match.group("name").strip()
            if name and name not in _NOISE_NAMES:
                return name
    return None


def _with_contact(match, raw_text, normalized):
    emails = extract_emails(raw_text)
    # strip the email address before looking for a name
    bare = normalized
    for email in emails:
        bare = bare.replace(re.sub(r"[^a-z0-9]+", " ", email).strip(), " ")
    bare = re.sub(r"\s+", " ", bare).strip()
    name = _name(bare)
    if not emails and not name:
        return None
    return {"email": emails[0] if emails else None, "name": name}


class MailContactsDetector(Detector):
    route = Route.MAIL_CONTACTS
    required_params = ("action",)
    rules = (
        rule("list", r"\b(?:list|show|who are|which are|see)\b.*\b(?:contacts|recipients|address book)\b",
             action="list"),
        rule("delete", r"\b(?:delete|remove|drop)\b.*\b(?:contact|recipient)\b",
             extract=_with_contact, action="delete"),
        rule("update", r"\b(?:update|change|edit|modify)\b.*\b(?:contact|recipient|email of|address of)\b",
             extract=_with_contact, action="update"),
        rule("add", r"\b(?:add|save|create|register)\b.*\b(?:contact|recipient|address book)\b",
             extract=_with_contact, action="add"),
    )
