"""Document detector: read, summarize or extract text from a document."""

from __future__ import annotations

import re

from concierge.core.normalizer import extract_file_tokens
from concierge.core.routes import Route
from concierge.detectors.base import Detector, ORDINAL_REF_RE, has_pronoun_reference, rule

DOCUMENT_EXTENSIONS = frozenset({
    "pdf", "doc", "docx", "odt", "rtf", "txt", "md", "csv", "xls", "xlsx", "ppt", "pptx", "epub", "html",
})

_DOC_NOUN_RE = re.compile(r"\b(?:document|documents|pdf|report|paper|contract|invoice|page|pages)\b")


def _document_params(action: str):
    def extract(match, raw_text, normalized):
        paths = [p for p in extract_file_tokens(raw_text)
                 if p.rsplit(".", 1)[-1].lower() in DOCUMENT_EXTENSIONS]
        params = {
            "action": action,
            "path": paths[0] if paths else None,
            "refers_to_previous": has_pronoun_reference(normalized),
            "list_reference": bool(ORDINAL_REF_RE.search(normalized)),
        }
        if not (params["path"] or params["list_reference"] or _DOC_NOUN_RE.search(normalized)
                or params["refers_to_previous"]):
            return None
        return params
    return extract


class DocumentDetector(Detector):
    route = Route.DOCUMENT
    required_params = ("action",)
    vetoes = (re.compile(r"\b(?:mail|mails|email|emails|inbox|web|internet|news)\b"),)
    rules = (
        rule("summarize", r"\b(?:summarize|summarise|summary of|tl ?dr|sum up)\b", extract=_document_params("summarize")),
        rule("extract", r"\b(?:extract|pull out|get the text|what does .+ say)\b", extract=_document_params("extract")),
        rule("read", r"\b(?:read|analy[sz]e|go through|look at)\b", extract=_document_params("read")),
    )
