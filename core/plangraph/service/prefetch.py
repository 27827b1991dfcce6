"""Warm remote resources referenced by a service plan before it runs."""

import asyncio
import logging
from collections.abc import Iterable

import httpx

logger = logging.getLogger(__name__)

PREFETCHED = "prefetched"
FAILED = "failed"


async def prefetch_many(
    links: Iterable[str],
    client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
) -> dict[str, str]:
    """
    GET every link concurrently.

    Args:
        links: URLs to fetch; duplicates are fetched once
        client: Client to use (one is created and closed otherwise)
        timeout: Per-request timeout in seconds for a created client

    Returns:
        {url: "prefetched" | "failed"} in first-seen order
    """
    urls = list(dict.fromkeys(str(link) for link in links))
    if not urls:
        return {}

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def _fetch(url: str) -> str:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"⚠ Prefetch failed for {url}: {e}")
            return FAILED
        return PREFETCHED

    try:
        statuses = await asyncio.gather(*(_fetch(url) for url in urls))
    finally:
        if owns_client:
            await client.aclose()

    logger.debug(f"Prefetched {statuses.count(PREFETCHED)}/{len(urls)} links")
    return dict(zip(urls, statuses, strict=True))
