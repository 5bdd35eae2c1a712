"""Document store abstract base class -- the interface every storage backend implements.

Documents are addressed by slash-separated paths that alternate collection and
document segments (``customers/{id}/meetings/{meeting_id}``). A document is a
flat dict of top-level fields; nested values are stored as-is. Every snapshot
handed back by a store carries the document id under the ``id`` key.

Backends:
- InMemoryDocumentStore: process-local store used in tests and local development
- RedisDocumentStore: hash-per-document storage with pub/sub change feeds
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.estateflow.store.exceptions import InvalidPathError

logger = structlog.get_logger(__name__)

DocumentCallback = Callable[[dict[str, Any] | None], Awaitable[None]]
CollectionCallback = Callable[[list[dict[str, Any]]], Awaitable[None]]


class _DeleteField:
    """Sentinel value: passing it to ``update`` removes the field."""

    _instance: _DeleteField | None = None

    def __new__(cls) -> _DeleteField:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


class Subscription:
    """Handle returned by the subscribe methods.

    Calling ``unsubscribe()`` more than once is harmless.
    """

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def active(self) -> bool:
        return self._cancel is not None

    def unsubscribe(self) -> None:
        if self._cancel is not None:
            cancel, self._cancel = self._cancel, None
            cancel()


def split_document_path(path: str) -> tuple[str, str]:
    """Split a document path into ``(collection_path, document_id)``.

    Raises:
        InvalidPathError: If the path does not point at a document.
    """
    segments = [s for s in path.split("/") if s]
    if not segments or len(segments) % 2 != 0:
        raise InvalidPathError(f"Not a document path: {path!r}")
    return "/".join(segments[:-1]), segments[-1]


def validate_collection_path(path: str) -> str:
    """Return the normalized collection path.

    Raises:
        InvalidPathError: If the path does not point at a collection.
    """
    segments = [s for s in path.split("/") if s]
    if not segments or len(segments) % 2 != 1:
        raise InvalidPathError(f"Not a collection path: {path!r}")
    return "/".join(segments)


def sort_documents(
    documents: list[dict[str, Any]],
    order_by: str | None,
    descending: bool = False,
) -> list[dict[str, Any]]:
    """Order snapshots by a field. Documents missing the field sort last."""
    if order_by is None:
        return sorted(documents, key=lambda d: str(d.get("id", "")))

    present = [d for d in documents if d.get(order_by) is not None]
    missing = [d for d in documents if d.get(order_by) is None]
    present.sort(key=lambda d: d[order_by], reverse=descending)
    return present + missing


async def notify_safely(callback: Callable[[Any], Awaitable[None]], payload: Any, path: str) -> None:
    """Deliver a snapshot to a subscriber; a failing subscriber never breaks the writer."""
    try:
        await callback(payload)
    except Exception as exc:
        logger.error("store.subscriber_error", path=path, error=str(exc))


class DocumentStore(ABC):
    """Abstract interface for the remote document store.

    Methods:
        get: Fetch one document snapshot, or None if absent.
        set: Create or fully overwrite a document.
        update: Patch top-level fields of an existing document.
        delete: Remove a document (no error if it does not exist).
        list: Fetch the direct children of a collection.
        subscribe_document: Push snapshots of one document on every change.
        subscribe_collection: Push the full child list on every change.
    """

    @abstractmethod
    async def get(self, path: str) -> dict[str, Any] | None:
        """Fetch a document by path."""
        ...

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document."""
        ...

    @abstractmethod
    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Patch top-level fields; raises DocumentNotFoundError if absent."""
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a document by path."""
        ...

    @abstractmethod
    async def list(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """List documents in a collection, optionally ordered by a field."""
        ...

    @abstractmethod
    async def subscribe_document(self, path: str, callback: DocumentCallback) -> Subscription:
        """Deliver the current snapshot, then one per change (None once deleted)."""
        ...

    @abstractmethod
    async def subscribe_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription:
        """Deliver the current child list, then a fresh list per change."""
        ...

    async def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
        return None
