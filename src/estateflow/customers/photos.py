"""Best-effort photo blob cleanup.

Photos are opaque URLs owned by an external blob store. When a property (or
the meeting or customer holding it) is deleted, its photos are handed to a
BlobCleaner. Cleanup failures are logged and swallowed: they must never block
the write they are attached to.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

import httpx
import structlog

logger = structlog.get_logger(__name__)


class BlobCleaner(ABC):
    """Deletes one blob by URL."""

    @abstractmethod
    async def delete(self, url: str) -> None:
        ...


class HttpBlobCleaner(BlobCleaner):
    """Deletes blobs by issuing HTTP DELETE against their URL.

    A 404 means the blob is already gone and counts as success.

    Args:
        client: Shared httpx AsyncClient (auth headers, timeouts configured by caller).
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def delete(self, url: str) -> None:
        response = await self._client.delete(url)
        if response.status_code == 404:
            return
        response.raise_for_status()


async def delete_photos_quietly(cleaner: BlobCleaner | None, urls: Iterable[str]) -> int:
    """Delete every URL, logging and swallowing failures.

    Returns:
        Number of blobs deleted without error.
    """
    if cleaner is None:
        return 0

    deleted = 0
    for url in urls:
        if not url or url.startswith("data:"):
            continue  # inline previews have no blob behind them
        try:
            await cleaner.delete(url)
            deleted += 1
        except Exception as exc:
            logger.warning("photos.cleanup_failed", url=url, error=str(exc))
    return deleted
