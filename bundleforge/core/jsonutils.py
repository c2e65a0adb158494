# bundleforge/core/jsonutils.py
from __future__ import annotations

import json
from collections.abc import Mapping, Iterable
from dataclasses import is_dataclass, asdict
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = ["safeJsonDumps", "tryJSONify"]



def safeJsonDumps(obj: object) -> str:
    """
    Serializes an object to a compact JSON string. If direct encoding fails,
    falls back to tryJSONify (circular/depth-safe) and retries.
    """
    try:
        return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except Exception:
        safePayload = tryJSONify(obj, _maxDepth=None)
        return json.dumps(safePayload, ensure_ascii=False, allow_nan=False, separators=(",", ":"))



def tryJSONify(obj: Any, *, _seen: set[int] | None = None, _depth: int = 0, _maxDepth: int | None = 10) -> Any:
    """
    Attempts to make any object JSON-serializable.

    Rules:
      • Basic scalars are preserved (NaN/inf become strings).
      • Exceptions → {"type", "message"}.
      • pydantic models → model_dump(by_alias=True).
      • date/datetime → ISO8601, Path → str, Enum → value.
      • sets/tuples/iterables → list, Mappings → dict with str keys.
      • fallback → repr(obj)
    """
    if _seen is None:
        _seen = set()

    oid = id(obj)
    if oid in _seen:
        return f"<circular_ref {type(obj).__name__}>"
    if isinstance(_maxDepth, int) and _depth > _maxDepth:
        return f"<max_depth_exceeded {type(obj).__name__}>"

    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return obj if obj == obj and obj not in (float("inf"), float("-inf")) else str(obj)

    _seen.add(oid)
    nextKw = {"_seen": _seen, "_depth": _depth + 1, "_maxDepth": _maxDepth}

    if isinstance(obj, BaseException):
        return {"type": type(obj).__name__, "message": str(obj)}
    if hasattr(obj, "model_dump"):
        return tryJSONify(obj.model_dump(by_alias=True), **nextKw)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return tryJSONify(obj.value, **nextKw)
    if is_dataclass(obj) and not isinstance(obj, type):
        return tryJSONify(asdict(obj), **nextKw)
    if isinstance(obj, Path):
        return obj.as_posix()
    if isinstance(obj, Mapping):
        return {str(key): tryJSONify(value, **nextKw) for key, value in obj.items()}
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return f"<{len(bytes(obj))} bytes>"
    if isinstance(obj, Iterable):
        return [tryJSONify(value, **nextKw) for value in obj]

    # Last-ditch representation (avoid raising during logging)
    return repr(obj)
