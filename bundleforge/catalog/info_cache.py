# bundleforge/catalog/info_cache.py
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from bundleforge.app.settings import settings
from bundleforge.bundles.types import CollectionInfo, RevisionInfo
from bundleforge.catalog.client import CatalogApi

logger = logging.getLogger(__name__)

__all__ = ["InfoCache"]

T = TypeVar("T")



@dataclass(slots=True)
class _CacheEntry(Generic[T]):
    value: T
    fetchedAt: float



class InfoCache:
    """
    Read-through cache of remote collection and revision metadata.

    - Collections are keyed by slug, revisions by revision id.
    - Entries older than `refreshAfterSeconds` are refetched on access.
    - Concurrent lookups of one key share a single in-flight request.
    - Entries are never dropped: a failed refresh logs and serves the old one.
      A failed first fetch raises so the caller can fall back.
    """
    def __init__(
        self,
        catalog: CatalogApi,
        *,
        refreshAfterSeconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._catalog = catalog
        self._refreshAfter = float(
            refreshAfterSeconds if refreshAfterSeconds is not None
            else settings("infoCache.refreshAfterSeconds", 86_400)
        )
        self._clock = clock
        self._collections: dict[str, _CacheEntry[CollectionInfo]] = {}
        self._revisions: dict[str, _CacheEntry[RevisionInfo]] = {}
        self._inFlight: dict[str, asyncio.Future] = {}

    # ----- Public lookups -----

    async def getCollectionInfo(self, slug: str | None, *, forceRefresh: bool = False) -> CollectionInfo | None:
        if not slug:
            return None
        return await self._lookup(
            self._collections, f"collection:{slug}", slug,
            lambda: self._catalog.getCollection(slug),
            forceRefresh,
        )

    async def getRevisionInfo(
        self,
        revisionId: int | str | None,
        slug: str | None = None,
        revisionNumber: int | None = None,
        *,
        forceRefresh: bool = False,
    ) -> RevisionInfo | None:
        if revisionId is None:
            return None

        async def fetch() -> RevisionInfo | None:
            if slug and revisionNumber is not None:
                revision = await self._catalog.getRevision(slug, revisionNumber)
            else:
                revision = await self._catalog.getRevisionById(revisionId)
            if revision is not None and revision.collection is not None and revision.collection.slug:
                # Revision payloads carry their collection, keep that warm too
                self._store(self._collections, revision.collection.slug, revision.collection)
            return revision

        return await self._lookup(self._revisions, f"revision:{revisionId}", str(revisionId), fetch, forceRefresh)

    def cachedCollectionInfo(self, slug: str) -> CollectionInfo | None:
        entry = self._collections.get(slug)
        return entry.value if entry is not None else None

    def cachedRevisionInfo(self, revisionId: int | str) -> RevisionInfo | None:
        entry = self._revisions.get(str(revisionId))
        return entry.value if entry is not None else None

    # ----- Internals -----

    def _store(self, table: dict, key: str, value) -> None:
        table[key] = _CacheEntry(value=value, fetchedAt=self._clock())

    def _forget(self, flightKey: str, fut: asyncio.Future) -> None:
        if self._inFlight.get(flightKey) is fut:
            del self._inFlight[flightKey]

    def _isFresh(self, entry: _CacheEntry) -> bool:
        return (self._clock() - entry.fetchedAt) < self._refreshAfter

    async def _lookup(
        self,
        table: dict,
        flightKey: str,
        key: str,
        fetch: Callable[[], Awaitable[T | None]],
        forceRefresh: bool,
    ) -> T | None:
        entry = table.get(key)
        if entry is not None and not forceRefresh and self._isFresh(entry):
            return entry.value

        pending = self._inFlight.get(flightKey)
        if pending is None:
            pending = asyncio.ensure_future(fetch())
            self._inFlight[flightKey] = pending
            pending.add_done_callback(lambda fut: self._forget(flightKey, fut))

        try:
            value = await asyncio.shield(pending)
        except Exception as err:
            if entry is not None:
                logger.warning("Refreshing %s failed, using cached copy: %s", flightKey, err)
                return entry.value
            raise

        if value is None:
            # Not on the server (any more); keep serving what we had
            return entry.value if entry is not None else None
        self._store(table, key, value)
        return value
