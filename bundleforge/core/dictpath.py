# bundleforge/core/dictpath.py
from __future__ import annotations
from typing import Any
from collections.abc import Mapping

__all__ = ["getByPath"]



def _splitPath(path: str) -> list[str]:
    """
    Splits a dotted path into segments. Empty segments ("a..b", ".a", "a.")
    make the path invalid.
    """
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    parts = path.split(".")
    if any(part == "" for part in parts):
        raise ValueError(f"Path '{path}' contains empty segment(s)")
    return parts



def getByPath(obj: Any, path: str, default: Any | None = None) -> Any:
    """
    Returns the value at `path` from `obj` if reachable. When the chain
    cannot be resolved, returns `default`.

    Resolution rules per hop:
      • mapping with the key → descend by key
      • pydantic model → descend through model_dump(by_alias=True)
      • invalid path or missing key → return default
    """
    try:
        parts = _splitPath(path)
    except ValueError:
        return default

    current: Any = obj
    for part in parts:
        if hasattr(current, "model_dump"):
            current = current.model_dump(by_alias=True)
        if isinstance(current, Mapping) and part in current:
            current = current[part]
            continue
        return default
    return current
