"""Shared async HTTP client for the NWS collaborator."""

from __future__ import annotations

import asyncio
import logging
import random
import ssl

import aiohttp
import certifi

logger = logging.getLogger(__name__)

_RETRY_STATUSES = (429, 500, 502, 503, 504)

_session: aiohttp.ClientSession | None = None
_SSL_CTX = ssl.create_default_context(cafile=certifi.where())


async def get_session() -> aiohttp.ClientSession:
    """Get or create the shared aiohttp session."""
    global _session
    if _session is None or _session.closed:
        connector = aiohttp.TCPConnector(ssl=_SSL_CTX, limit=20)
        _session = aiohttp.ClientSession(connector=connector)
    return _session


async def close_session() -> None:
    """Close the shared session (call at shutdown)."""
    global _session
    if _session and not _session.closed:
        await _session.close()
    _session = None


def _backoff(base_delay: float, attempt: int) -> float:
    return base_delay * (2 ** attempt) * (0.5 + random.random())


async def fetch_json(
    url: str,
    *,
    params: dict | None = None,
    headers: dict | None = None,
    timeout: int = 30,
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> dict | list | None:
    """GET *url* and return parsed JSON, retrying transient failures.

    Returns None when every attempt fails or the server answers with a
    non-retryable status; never raises for network errors.
    """
    session = await get_session()
    for attempt in range(max_retries):
        last = attempt == max_retries - 1
        try:
            async with session.get(
                url, params=params, headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                if resp.status == 200:
                    return await resp.json(content_type=None)
                if resp.status in _RETRY_STATUSES and not last:
                    delay = _backoff(base_delay, attempt)
                    logger.debug("HTTP %d from %s, retry in %.1fs", resp.status, url[:80], delay)
                    await asyncio.sleep(delay)
                    continue
                logger.warning("HTTP %d from %s", resp.status, url[:80])
                return None
        except (aiohttp.ClientError, asyncio.TimeoutError, TimeoutError, ValueError) as exc:
            if last:
                logger.warning("Fetch failed after %d attempts: %s (%s)", max_retries, url[:80], exc)
                return None
            delay = _backoff(base_delay, attempt)
            logger.debug("Fetch error on %s, retry in %.1fs: %s", url[:80], delay, exc)
            await asyncio.sleep(delay)
    return None
