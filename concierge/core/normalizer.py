"""
Text normalization shared by every detector and router stage.

normalize_text() gives a case- and diacritic-insensitive canonical form:
    "¿Borrá el Informe.PDF?" -> "borra el informe pdf"

Raw text is still passed alongside for extractors that need punctuation
(file paths, email addresses, URLs).
"""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")

# Anything that looks like a file reference: name.ext or a path with slashes
FILE_TOKEN_RE = re.compile(
    r"(?<![\w@/.])((?:~?/)?(?:[\w\-.]+/)*[\w\-][\w\-.]*\.[A-Za-z0-9]{1,6})(?![\w@])"
)
EMAIL_RE = re.compile(r"\b[\w.+\-]+@[\w\-]+(?:\.[\w\-]+)+\b")
URL_RE = re.compile(r"\bhttps?://[^\s<>\"']+", re.IGNORECASE)

# Web suffixes that look like extensions but are never files
_NOT_FILE_EXTENSIONS = frozenset({"com", "org", "net", "io", "dev", "www"})


def strip_diacritics(text: str) -> str:
    """Remove combining marks after NFD decomposition."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """
    Canonicalize text for matching.

    - NFD + strip diacritics
    - Lowercase
    - Non-alphanumerics become spaces
    - Collapse whitespace, strip

    Returns "" for None/blank input.
    """
    if not text:
        return ""
    result = strip_diacritics(text).lower()
    result = _NON_ALNUM_RE.sub(" ", result)
    return _WHITESPACE_RE.sub(" ", result).strip()


def collapse_whitespace(text: str) -> str:
    """Whitespace-only cleanup used on raw text before extraction."""
    return _WHITESPACE_RE.sub(" ", (text or "")).strip()


def contains_any(normalized: str, words: Iterable[str]) -> bool:
    """True if any whole word/phrase from words occurs in normalized text."""
    padded = f" {normalized} "
    for word in words:
        if f" {word} " in padded:
            return True
    return False


def extract_file_tokens(raw_text: str) -> List[str]:
    """
    Pull file-like tokens (report.pdf, docs/notes.txt) out of raw text.

    Email addresses and URLs are ignored. Order of first appearance is kept
    and duplicates are dropped.
    """
    if not raw_text:
        return []
    scrubbed = URL_RE.sub(" ", raw_text)
    scrubbed = EMAIL_RE.sub(" ", scrubbed)
    found: List[str] = []
    for match in FILE_TOKEN_RE.finditer(scrubbed):
        token = match.group(1)
        name = token.rsplit("/", 1)[-1]
        stem, _, ext = name.rpartition(".")
        # "e.g", "3.5", "v1.2" and domain names are not files
        if (len(stem) < 2 and len(ext) < 2) or ext.isdigit() or ext.lower() in _NOT_FILE_EXTENSIONS:
            continue
        if token not in found:
            found.append(token)
    return found


def extract_emails(raw_text: str) -> List[str]:
    if not raw_text:
        return []
    found: List[str] = []
    for match in EMAIL_RE.finditer(raw_text):
        value = match.group(0).lower()
        if value not in found:
            found.append(value)
    return found


def extract_urls(raw_text: str) -> List[str]:
    if not raw_text:
        return []
    return [m.group(0).rstrip(".,;:!?)") for m in URL_RE.finditer(raw_text)]
