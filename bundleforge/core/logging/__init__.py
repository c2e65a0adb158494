# bundleforge/core/logging/__init__.py
from __future__ import annotations

from .context import setLogContext, clearLogContext, getLogContext
from .setup import configureLogging, getLogger

__all__ = [
    "configureLogging",
    "getLogger",
    "setLogContext",
    "clearLogContext",
    "getLogContext",
]
