# bundleforge/host/events.py
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

__all__ = [
    "EVENT_WILL_INSTALL_PACKAGE",
    "EVENT_DID_INSTALL_PACKAGE",
    "EVENT_DID_FINISH_DOWNLOAD",
    "EVENT_WILL_INSTALL_DEPENDENCIES",
    "EVENT_DID_INSTALL_DEPENDENCIES",
    "EVENT_BUNDLE_UPDATE",
    "EventHub",
]

# Inbound signals
EVENT_WILL_INSTALL_PACKAGE = "will-install-mod"                 # (gameId, archiveId, packageId)
EVENT_DID_INSTALL_PACKAGE = "did-install-mod"                   # (gameId, archiveId, packageId)
EVENT_DID_FINISH_DOWNLOAD = "did-finish-download"               # (downloadId, state)
EVENT_WILL_INSTALL_DEPENDENCIES = "will-install-dependencies"   # (profileId, packageId, isOptionalPass)
EVENT_DID_INSTALL_DEPENDENCIES = "did-install-dependencies"     # (gameId, packageId, isOptionalPass)
EVENT_BUNDLE_UPDATE = "collection-update"                       # (gameId, slug, revisionNumber, sourceTag, oldPackageId)

Handler = Callable[..., Any]



class EventHub:
    """
    Named channels the application uses to deliver signals to the orchestrator.
    One hub per application, no global instance.

    Handlers may be plain functions or coroutine functions. A failing handler
    is logged and skipped so the remaining handlers still run.
    """
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(event, []).append(handler)

        def _unsub() -> None:
            try:
                self._handlers.get(event, []).remove(handler)
            except ValueError:
                pass
        return _unsub

    def emit(self, event: str, *args: Any) -> None:
        """Delivers a signal without waiting; coroutine handlers run as tasks."""
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
            except Exception:
                logger.exception("Handler for '%s' raised an exception.", event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(self._guard(event, result))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def emitAndAwait(self, event: str, *args: Any) -> list[Any]:
        """Delivers a signal to each handler in turn, awaiting coroutine handlers."""
        results: list[Any] = []
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception:
                logger.exception("Handler for '%s' raised an exception.", event)
                continue
            results.append(result)
        return results

    async def drain(self) -> None:
        """Waits for handler tasks started by emit()."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _guard(self, event: str, awaitable) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("Handler for '%s' raised an exception.", event)
