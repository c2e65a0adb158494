# bundleforge/core/utils.py
from __future__ import annotations
import re
from typing import Any

from bundleforge.core.jsonutils import tryJSONify

__all__ = ["deepEquals", "sanitizeFilename"]



def deepEquals(first: Any, second: Any) -> bool:
    """
    Equality for JSON-like trees (installer choices, manifests).

    Tuples and lists compare equal when their items do, so data read from
    frozen models matches data read from plain JSON. Falls back to comparing
    tryJSONify() output when == doesn't produce a bool.
    """
    try:
        result = first == second
        if isinstance(result, bool) and result:
            return True
    except Exception:
        pass
    return _jsonLikeEquals(tryJSONify(first, _maxDepth=None), tryJSONify(second, _maxDepth=None))



def _jsonLikeEquals(first: Any, second: Any) -> bool:
    if isinstance(first, dict) and isinstance(second, dict):
        if first.keys() != second.keys():
            return False
        return all(_jsonLikeEquals(first[key], second[key]) for key in first)
    if isinstance(first, list) and isinstance(second, list):
        if len(first) != len(second):
            return False
        return all(_jsonLikeEquals(left, right) for left, right in zip(first, second))
    if type(first) is not type(second) and not (isinstance(first, (int, float)) and isinstance(second, (int, float))):
        return False
    return first == second



_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')



def sanitizeFilename(name: str) -> str:
    """Replaces characters that are invalid in file names on common platforms."""
    cleaned = _INVALID_FILENAME_CHARS.sub("_", name or "").strip().rstrip(".")
    return cleaned or "unnamed"
