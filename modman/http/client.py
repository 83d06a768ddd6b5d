# modman/http/client.py
from __future__ import annotations
import asyncio
import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

__all__ = ["HTTPError", "request", "download"]



class HTTPError(Exception):
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body



def _parseRetryAfter(value: str | None) -> float | None:
    """Return seconds suggested by Retry-After header, if parsable."""
    if not value:
        return None
    # Retry-After: seconds
    try:
        secondsF = float(value)
        if secondsF >= 0:
            return secondsF
    except ValueError:
        pass
    # Retry-After: HTTP-date
    try:
        dt = parsedate_to_datetime(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc).timestamp()
        return max(0.0, dt.timestamp() - now)
    except (TypeError, ValueError):
        return None



def _shouldRetry(status: int) -> bool:
    # Typical transient HTTP errors upon which retry makes sense
    return status in (408, 429, 500, 502, 503, 504)



def _backoffSeconds(attempt: int, backoffBaseMs: int, backoffMaxMs: int) -> float:
    """Exponential backoff with +-25% jitter. attempt is 0-based."""
    base = min(backoffMaxMs, backoffBaseMs * (2 ** attempt))
    jitter = base * 0.25
    return max(0.0, base + random.uniform(-jitter, jitter)) / 1000.0



def _makeClient(timeoutMs: int) -> httpx.AsyncClient:
    if timeoutMs <= 0:
        timeoutMs = 1
    return httpx.AsyncClient(timeout=httpx.Timeout(timeoutMs / 1_000), http2=True)



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
    followRedirects: bool = True
) -> dict[str, Any]:
    """
    Simple outbound HTTP client with timeout and retries (408/429/5xx).

    Returns:
    {
        "status": int,
        "headers": dict[str,str],
        "text": str,
        "content": bytes,
        "json": Any? # Present when the body parses as JSON
    }

    - Raises HTTPError for 408/429/5xx after exhausting retries.
    - Raises httpx.HTTPError for transport errors after exhausting retries.
    """
    attempt = 0
    method = str(method).upper()
    retries = max(0, retries)

    async with _makeClient(timeoutMs) as cli:
        while True:
            try:
                resp = await cli.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    params=params,
                    follow_redirects=followRedirects
                )
                status = resp.status_code

                if _shouldRetry(status) and attempt < retries:
                    retryAfter = _parseRetryAfter(resp.headers.get("Retry-After"))
                    delay = retryAfter if retryAfter is not None else _backoffSeconds(attempt, backoffBaseMs, backoffMaxMs)
                    logger.debug("Retrying %s %s after HTTP %d in %.2fs", method, url, status, delay)
                    attempt += 1
                    await asyncio.sleep(delay)
                    continue

                if status >= 500 or status in (408, 429):
                    raise HTTPError(status, resp.text)

                out: dict[str, Any] = {
                    "status": status,
                    "headers": dict(resp.headers), # note: Duplicate header keys are collapsed
                    "text": resp.text,
                    "content": resp.content,
                }
                # Best-effort JSON parse. Static hosts often serve JSON as text/plain.
                try:
                    out["json"] = resp.json()
                except ValueError:
                    pass
                return out

            except httpx.HTTPError as err:
                # Transport-level error. Retry with backoff.
                attempt += 1
                if attempt > retries:
                    raise
                delay = _backoffSeconds(attempt - 1, backoffBaseMs, backoffMaxMs)
                logger.debug("Transport error on %s %s (%s), retrying in %.2fs", method, url, err, delay)
                await asyncio.sleep(delay)



async def download(
    url: str,
    dest: Path,
    *,
    onStart: Callable[[int | None], None] | None = None,
    onChunk: Callable[[int], None] | None = None,
    timeoutMs: int = 30_000,
    chunkSize: int = 64 * 1024,
) -> Path:
    """
    Streams `url` into `dest`.

    onStart(total) is called once with Content-Length (None when unknown),
    onChunk(nbytes) for every chunk written. Non-2xx responses raise HTTPError;
    a partial file is removed on any failure.
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        async with _makeClient(timeoutMs) as cli:
            async with cli.stream("GET", url, follow_redirects=True) as resp:
                if resp.status_code >= 400:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise HTTPError(resp.status_code, body)
                total: int | None = None
                rawLen = resp.headers.get("Content-Length")
                if rawLen and rawLen.isdigit():
                    total = int(rawLen)
                if onStart is not None:
                    onStart(total)
                with dest.open("wb") as fh:
                    async for chunk in resp.aiter_bytes(chunkSize):
                        fh.write(chunk)
                        if onChunk is not None:
                            onChunk(len(chunk))
    except BaseException:
        dest.unlink(missing_ok=True)
        raise
    return dest
