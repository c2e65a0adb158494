# bundleforge/http/client.py
from __future__ import annotations
import asyncio
import logging
import random
from typing import Any
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

logger = logging.getLogger(__name__)

__all__ = ["HTTPError", "request"]



class HTTPError(Exception):
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body



def _parseRetryAfter(value: str | None) -> float | None:
    """Return seconds suggested by Retry-After header, if parsable."""
    if not value:
        return None
    try:
        secondsF = float(value)
        if secondsF >= 0:
            return secondsF
        return None
    except ValueError:
        pass
    try:
        dt = parsedate_to_datetime(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc).timestamp()
        return max(0.0, dt.timestamp() - now)
    except Exception:
        return None



def _shouldRetry(status: int) -> bool:
    return status in (408, 429, 500, 502, 503, 504)



def _backoffSeconds(attempt: int, baseMs: int, maxMs: int) -> float:
    base = min(maxMs, baseMs * (2 ** attempt))
    jitter = base * 0.25
    return max(0.0, base + random.uniform(-jitter, jitter)) / 1000.0



async def request(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    json: Any | None = None,
    params: dict[str, Any] | None = None,
    timeoutMs: int = 30_000,
    retries: int = 2,
    backoffBaseMs: int = 250,
    backoffMaxMs: int = 1_000,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """
    Outbound HTTP with timeout and retries (408/429/5xx and transport errors).

    Returns:
    {
        "status": int,
        "headers": dict[str,str],
        "text": str,
        "json": Any? # Present when the response is JSON and parses
    }

    - Raises HTTPError for 408/429/5xx after exhausting retries.
    - Raises httpx.HTTPError for transport errors after exhausting retries.
    - Non-retryable 4xx responses are returned, not raised.
    """
    timeout = httpx.Timeout(max(1, timeoutMs) / 1_000)
    method = str(method).upper()
    retries = max(0, retries)
    attempt = 0

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as cli:
        while True:
            try:
                resp = await cli.request(method, url, headers=headers, json=json, params=params, follow_redirects=True)
            except httpx.HTTPError as err:
                if attempt >= retries:
                    logger.warning("%s %s failed after %d attempt(s): %s", method, url, attempt + 1, err)
                    raise
                delay = _backoffSeconds(attempt, backoffBaseMs, backoffMaxMs)
                logger.debug("%s %s transport error (%s), retrying in %.2fs", method, url, err, delay)
                attempt += 1
                await asyncio.sleep(delay)
                continue

            status = resp.status_code
            if _shouldRetry(status):
                if attempt >= retries:
                    raise HTTPError(status, resp.text)
                retryAfter = _parseRetryAfter(resp.headers.get("Retry-After"))
                delay = retryAfter if retryAfter is not None else _backoffSeconds(attempt, backoffBaseMs, backoffMaxMs)
                logger.debug("%s %s returned %d, retrying in %.2fs", method, url, status, delay)
                attempt += 1
                await asyncio.sleep(delay)
                continue

            out: dict[str, Any] = {
                "status": status,
                "headers": dict(resp.headers),
                "text": resp.text,
            }
            if "json" in resp.headers.get("Content-Type", "").lower():
                try:
                    out["json"] = resp.json()
                except ValueError:
                    # Caller still has "text"
                    logger.debug("%s %s returned invalid JSON", method, url)
            return out
