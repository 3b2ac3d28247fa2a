"""
Workspace detector: list, mkdir, create/write, move, rename, copy, paste,
delete, open and send files in the workspace.

Paths come from the RAW text (normalization drops the dots):
    "move notes.txt to archive/" -> {"action": "move", "paths": ["notes.txt"], "target": "archive/"}
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from concierge.core.normalizer import extract_file_tokens
from concierge.core.routes import Route
from concierge.detectors.base import Detector, ORDINAL_REF_RE, has_pronoun_reference, rule

_FILE_NOUN = r"(?:file|files|folder|folders|directory|directories|workspace|document|documents|note|notes)"

_TARGET_RE = re.compile(r"\s(?:to|into|as|in)\s+(?P<target>[\w\-./~ ]+?)\s*[.!?]?$", re.IGNORECASE)
_FOLDER_NAME_RE = re.compile(r"\b(?:folder|directory)\s+(?:called|named)?\s*(?P<name>[\w\-.]+)")
_CHANNEL_RE = re.compile(r"\b(?:by|via|over|through|on)\s+(?P<channel>e ?mail|mail|gmail|telegram|whatsapp|chat)\b")

# Non-file domains that reuse the same verbs
_OTHER_DOMAIN_RE = re.compile(
    r"\b(?:reminder|reminders|alarm|contact|contacts|recipient|recipients|memory|memories|skill|skills|"
    r"rule|rules|connector|bridge)\b"
)
_MAIL_NOUN_RE = re.compile(r"\b(?:mail|mails|email|emails|inbox)\b")


def _target(raw_text: str) -> Optional[str]:
    match = _TARGET_RE.search(raw_text.strip())
    if not match:
        return None
    return match.group("target").strip() or None


def _action_params(action: str):
    def extract(match, raw_text, normalized):
        paths = extract_file_tokens(raw_text)
        params: Dict[str, Any] = {
            "action": action,
            "paths": paths,
            "refers_to_previous": has_pronoun_reference(normalized),
            "list_reference": bool(ORDINAL_REF_RE.search(normalized)),
        }
        if action in ("move", "copy", "rename"):
            target = _target(raw_text)
            if target and target in paths:
                paths = [p for p in paths if p != target]
                params["paths"] = paths
            params["target"] = target
        if action == "send":
            channel = _CHANNEL_RE.search(normalized)
            params["channel"] = channel.group("channel").replace(" ", "") if channel else None
        if action == "mkdir":
            name = _FOLDER_NAME_RE.search(raw_text.lower())
            params["paths"] = [name.group("name")] if name else paths
        return params
    return extract


def _needs_object(params: Dict[str, Any]) -> bool:
    return bool(params["paths"] or params["refers_to_previous"] or params["list_reference"])


class WorkspaceDetector(Detector):
    route = Route.WORKSPACE
    required_params = ("action",)
    rules = (
        rule("list", r"\b(?:list|show|what s in|whats in|ls)\b.*\b" + _FILE_NOUN + r"\b",
             extract=_action_params("list")),
        rule("mkdir", r"\b(?:create|make|new|add|mkdir)\b.*\b(?:folder|directory)\b",
             extract=_action_params("mkdir")),
        rule("delete", r"\b(?:delete|remove|erase|trash|rm)\b", extract=_action_params("delete")),
        rule("move", r"\b(?:move|mv)\b", extract=_action_params("move")),
        rule("rename", r"\brename\b", extract=_action_params("rename")),
        rule("copy", r"\b(?:copy|duplicate|cp)\b", extract=_action_params("copy")),
        rule("paste", r"\bpaste\b", extract=_action_params("paste")),
        rule("write", r"\b(?:create|write|make|new|save)\b", extract=_action_params("write")),
        rule("send", r"\b(?:send|share)\b", extract=_action_params("send")),
        rule("open", r"\b(?:open|show)\b", extract=_action_params("open")),
    )

    def finalize(self, params: Dict[str, Any], raw_text: str, normalized: str) -> Optional[Dict[str, Any]]:
        action = params["action"]
        has_file_word = bool(re.search(r"\b" + _FILE_NOUN + r"\b", normalized))
        if _OTHER_DOMAIN_RE.search(normalized) and not params["paths"]:
            return None
        if action in ("list", "mkdir", "paste"):
            return params
        if action == "delete":
            # bare "delete" is fine (the path gets asked for), but not "delete the mail"
            if _MAIL_NOUN_RE.search(normalized) and not params["paths"]:
                return None
            return params
        if action == "send":
            # sending needs a file-ish object; "send an email to bob" is mail
            if not params["paths"] and not has_file_word and not (
                    params["refers_to_previous"] and params.get("channel")):
                return None
            return params
        if not _needs_object(params) and not has_file_word:
            return None
        return params
