"""
Web detector: searches, news and opening results/URLs.

sanitize_web_query() turns the request into the bare query:
    "please search the web for cheap flights to rome" -> "cheap flights to rome"
"""

from __future__ import annotations

import re
from typing import Optional

from concierge.core.normalizer import extract_urls
from concierge.core.routes import Route
from concierge.detectors.base import Detector, ORDINAL_REF_RE, rule, strip_polite_prefix

_QUERY_LEAD_RE = re.compile(
    r"^(?:search(?: the web| the internet| online| google)?(?: for| about)?|google|look up|lookup|"
    r"find(?: me)?(?: info| information)?(?: on| about)?|browse(?: for)?|"
    r"what does the (?:web|internet) say about|check (?:online|the web) for)\s+"
)
_QUERY_TAIL_RE = re.compile(r"\s+(?:on|in|from) (?:the )?(?:web|internet|google)$|\s+online$")
_LIST_OBJECT_RE = re.compile(r"\b(?:one|result|results|link|links|item|article|entry|site|page)\b")


def sanitize_web_query(normalized: str) -> Optional[str]:
    """Strip request scaffolding from a web query; None when nothing is left."""
    query = strip_polite_prefix(normalized)
    query = _QUERY_LEAD_RE.sub("", query)
    query = _QUERY_TAIL_RE.sub("", query)
    query = re.sub(r"^(?:for|about|the|on)\s+", "", query).strip()
    return query or None


def _search(match, raw_text, normalized):
    query = sanitize_web_query(normalized)
    if not query:
        return None
    return {"query": query}


def _news(match, raw_text, normalized):
    topic = re.sub(r"^.*?\b(?:news|headlines)\b\s*(?:about|on|for|from)?\s*", "", normalized).strip()
    return {"query": topic or None}


def _open_url(match, raw_text, normalized):
    urls = extract_urls(raw_text)
    return {"url": urls[0]} if urls else None


def _open_result(match, raw_text, normalized):
    if not ORDINAL_REF_RE.search(normalized) or not _LIST_OBJECT_RE.search(normalized):
        return None
    return {"list_reference": True}


class WebDetector(Detector):
    route = Route.WEB
    required_params = ("action",)
    vetoes = (re.compile(r"\b(?:mail|mails|email|emails|inbox|contacts|reminder|reminders)\b"),)
    rules = (
        rule("open-url", r"\bhttps? ", extract=_open_url, action="open"),
        rule("open-result", r"\b(?:open|show|see|visit|check|read)\b", extract=_open_result, action="open"),
        rule("news", r"\b(?:news|headlines)\b", extract=_news, action="news"),
        rule("search", r"\b(?:search|google|look up|lookup|browse)\b|\b(?:on|in) (?:the )?(?:web|internet)\b|\bonline\b",
             extract=_search, action="search"),
    )
