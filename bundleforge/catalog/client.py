# bundleforge/catalog/client.py
from __future__ import annotations

import logging
import os
from typing import Any, Protocol
from urllib.parse import quote, urljoin

import httpx
from pydantic import ValidationError

from bundleforge.app.settings import settings
from bundleforge.bundles.types import CollectionInfo, DownloadUrl, RevisionInfo
from bundleforge.core.errors import CatalogError
from bundleforge.http import client as httpClient

logger = logging.getLogger(__name__)

__all__ = ["CatalogApi", "CatalogClient"]



class CatalogApi(Protocol):
    """What the orchestrator needs from the remote catalog service."""

    async def getCollection(self, slug: str) -> CollectionInfo | None: ...

    async def getRevision(self, slug: str, revisionNumber: int) -> RevisionInfo | None: ...

    async def getRevisionById(self, revisionId: int | str) -> RevisionInfo | None: ...

    async def resolveDownloadUrls(self, downloadLink: str) -> list[DownloadUrl]: ...



class CatalogClient:
    """
    JSON catalog client on top of bundleforge.http.client.request.

    Lookups return None when the server answers 404. Any other failure raises
    CatalogError so callers can fall back to cached or embedded metadata.
    """
    def __init__(
        self,
        baseUrl: str | None = None,
        *,
        apiKey: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.baseUrl = (baseUrl or settings("catalog.baseUrl")).rstrip("/") + "/"
        envName = settings("catalog.apiKeyEnv", "BUNDLEFORGE_API_KEY")
        self._apiKey = apiKey if apiKey is not None else os.environ.get(envName)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Application-Name": "bundleforge"}
        if self._apiKey:
            headers["apikey"] = self._apiKey
        return headers

    async def _getJson(self, path: str) -> Any | None:
        # Relative paths resolve against baseUrl, "/..." against its host
        url = path if "://" in path else urljoin(self.baseUrl, path)
        try:
            resp = await httpClient.request(
                "GET",
                url,
                headers=self._headers(),
                timeoutMs=int(settings("catalog.timeoutMs", 30_000)),
                retries=int(settings("catalog.retries", 2)),
                backoffBaseMs=int(settings("catalog.backoff.baseMs", 250)),
                backoffMaxMs=int(settings("catalog.backoff.maxMs", 1000)),
                transport=self._transport,
            )
        except (httpClient.HTTPError, httpx.HTTPError) as err:
            status = getattr(err, "status", None)
            raise CatalogError(f"Catalog request failed: {url}: {err}", status=status) from err

        status = resp["status"]
        if status == 404:
            return None
        if status >= 400:
            raise CatalogError(f"Catalog request rejected ({status}): {url}", status=status)
        if "json" not in resp:
            raise CatalogError(f"Catalog returned no JSON: {url}", status=status)
        payload = resp["json"]
        # Both {"data": {...}} envelopes and bare objects are served
        if isinstance(payload, dict) and "data" in payload and len(payload) == 1:
            payload = payload["data"]
        return payload

    def _parse(self, model, payload: Any, what: str):
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as err:
            raise CatalogError(f"Malformed {what} from catalog: {err}") from err

    async def getCollection(self, slug: str) -> CollectionInfo | None:
        payload = await self._getJson(f"collections/{quote(slug)}")
        return self._parse(CollectionInfo, payload, "collection")

    async def getRevision(self, slug: str, revisionNumber: int) -> RevisionInfo | None:
        payload = await self._getJson(f"collections/{quote(slug)}/revisions/{int(revisionNumber)}")
        return self._parse(RevisionInfo, payload, "revision")

    async def getRevisionById(self, revisionId: int | str) -> RevisionInfo | None:
        payload = await self._getJson(f"revisions/{quote(str(revisionId))}")
        return self._parse(RevisionInfo, payload, "revision")

    async def resolveDownloadUrls(self, downloadLink: str) -> list[DownloadUrl]:
        payload = await self._getJson(downloadLink)
        if payload is None:
            raise CatalogError(f"Download link not found: {downloadLink}", status=404)
        if isinstance(payload, dict):
            payload = payload.get("downloadLinks", payload.get("download_links", []))
        try:
            return [DownloadUrl.model_validate(item) for item in payload]
        except (TypeError, ValidationError) as err:
            raise CatalogError(f"Malformed download links from catalog: {err}") from err
