# bundleforge/core/redaction.py
from __future__ import annotations

import re

__all__ = ["redactText"]



# Catalog requests carry API keys in headers and query strings
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(?iu)(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1***"),
    (re.compile(r"(?iu)(apikey\s*[:=]\s*)[A-Za-z0-9._\-=+/]+"), r"\1***"),
    (re.compile(r"(?iu)('apikey'\s*:\s*')[^']+(')"), r"\1***\2"),
    (re.compile(r'(?iu)("api[_\-]?key"\s*:\s*")[^"]+(")'), r"\1***\2"),
    (re.compile(r'(?iu)("token"\s*:\s*")[^"]+(")'), r"\1***\2"),
    (re.compile(r"(?iu)((?:token|key|expires)=)[^&\s]+"), r"\1***"),
]



def redactText(text: str) -> str:
    """Return sanitized text with sensitive substrings replaced by ***."""
    if not text:
        return text
    out = text
    for pattern, repl in _SENSITIVE_PATTERNS:
        try:
            out = pattern.sub(repl, out)
        except re.error:
            continue
    return out
