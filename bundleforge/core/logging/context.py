# bundleforge/core/logging/context.py
from __future__ import annotations
import contextvars

# Per-task log context (bundleId, phase, gameId, ...). asyncio tasks copy it on creation.
_logContextVar: contextvars.ContextVar[dict[str, object] | None] = contextvars.ContextVar("bundleforge.logctx", default=None)

def setLogContext(**kvs):
    """Set or update per-log context values (bundleId, phase, gameId, etc.)."""
    current = dict(_logContextVar.get() or {}) # use copy
    for key, value in kvs.items():
        if value is not None:
            current[key] = value
    _logContextVar.set(current)

def clearLogContext():
    """Clear context after an operation is fully handled."""
    _logContextVar.set(None)

def getLogContext():
    """Return current context dict or None."""
    return _logContextVar.get()
