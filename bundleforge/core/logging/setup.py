# bundleforge/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers

from bundleforge.app.settings import settings, settingsBool
from .formatters import DevFormatter, JsonFormatter, RedactingFormatter

__all__ = [
    "NO_PROPAGATE",
    "configureLogging",
    "getLogger",
]



# Disable propagation from common libraries
NO_PROPAGATE = [
    "asyncio", "concurrent.futures",
    "httpcore.connection", "httpcore.http11",
    "httpx",
]



def configureLogging(*, logFile: str | None = None):
    """
    Initiate the global logging configuration.

    Dev:
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG)

    Prod:
      - Console INFO
      - JSON file logs INFO with rotation
      - API key scrubbing in both
    """
    devMode = settingsBool("logging.devMode", True)
    rootLevel = logging.DEBUG if devMode else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)

    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    devFmt = RedactingFormatter(DevFormatter())
    jsonFmt = RedactingFormatter(JsonFormatter())

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(devFmt)
    root.addHandler(consoleHandler)

    filePath = logFile or settings("logging.file", None)
    if filePath:
        fileHandler = logging.handlers.RotatingFileHandler(
            filePath,
            maxBytes=int(settings("logging.fileMaxBytes", 10 * 1024 * 1024)),
            backupCount=int(settings("logging.fileBackups", 5)),
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(jsonFmt)
        root.addHandler(fileHandler)

    # Per-logger tweaks (reduce noise)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)



def getLogger(name: str, side: str = ""):
    return logging.getLogger(f"{str(side).strip()}.{str(name).strip()}" if str(side).strip() else str(name).strip())
