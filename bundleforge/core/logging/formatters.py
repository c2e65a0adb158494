# bundleforge/core/logging/formatters.py
from __future__ import annotations

import logging

from bundleforge.core.jsonutils import safeJsonDumps
from bundleforge.core.redaction import redactText
from .context import getLogContext

__all__ = ["RedactingFormatter", "JsonFormatter", "DevFormatter"]



class RedactingFormatter(logging.Formatter):
    """
    Wraps another formatter and redacts the final formatted string.
    """
    def __init__(self, inner: logging.Formatter):
        super().__init__()
        self._inner = inner

    def format(self, record: logging.LogRecord) -> str:
        rendered = self._inner.format(record)
        try:
            return redactText(rendered)
        except Exception:
            # Never crash logging due to redaction failure
            return rendered



class JsonFormatter(logging.Formatter):
    """One-line JSON records for the log file."""
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": int(record.created * 1000),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "ctx": getLogContext() or {},
        }

        if record.exc_info:
            excType, excValue = record.exc_info[0], record.exc_info[1]
            try:
                typ = getattr(excType, "__name__", type(excType).__name__)
                stack = self.formatException(record.exc_info)
            except Exception:
                typ, stack = "Error", None
            base["exc"] = {"type": typ, "message": str(excValue), "stack": stack}

        return safeJsonDumps(base)



class DevFormatter(logging.Formatter):
    """Human-friendly console formatter (dev mode)."""
    def format(self, record: logging.LogRecord) -> str:
        ctx = getLogContext()
        ctxStr = ""
        if ctx:
            md = [str(ctx[key]) for key in ("gameId", "bundleId", "phase") if ctx.get(key)]
            if md:
                ctxStr = " [" + "/".join(md) + "]"
        msg = record.getMessage()
        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            msg += "\n" + str(record.stack_info)
        return f"{record.levelname}: [{record.name}] {msg}{ctxStr}"
