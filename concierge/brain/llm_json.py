"""
Pull a JSON object out of a model reply.

Models wrap JSON in code fences, double the braces from template escaping, or
add a sentence before/after. extract_json_object() undoes all of that and
returns a dict, or None when nothing parseable is there.
"""

import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _strip_wrappers(text: str) -> str:
    cleaned = text.strip()
    fenced = _FENCE_RE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    # Handle doubled braces: {{"route":...}} -> {"route":...}
    if cleaned.startswith("{{") and cleaned.endswith("}}"):
        cleaned = cleaned[1:-1]
    return cleaned.strip()


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse the outermost {...} block of a model reply, or return None."""
    if not text or not text.strip():
        return None

    cleaned = _strip_wrappers(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            return None

    return parsed if isinstance(parsed, dict) else None
