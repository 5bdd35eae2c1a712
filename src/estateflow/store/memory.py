"""In-memory document store -- process-local backend for tests and local development.

Behaves like the remote store from the caller's point of view: snapshots are
deep copies, partial updates on missing documents fail, and subscribers get
an initial snapshot followed by one per change. Subscribers are notified
inline, after the write is applied and before the write call returns.
"""

from __future__ import annotations

import copy
from typing import Any

import structlog

from src.estateflow.store.adapter import (
    DELETE_FIELD,
    CollectionCallback,
    DocumentCallback,
    DocumentStore,
    Subscription,
    notify_safely,
    sort_documents,
    split_document_path,
    validate_collection_path,
)
from src.estateflow.store.exceptions import DocumentNotFoundError

logger = structlog.get_logger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Document store kept in a dict keyed by document path."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._document_subscribers: dict[str, list[DocumentCallback]] = {}
        self._collection_subscribers: dict[
            str, list[tuple[CollectionCallback, str | None, bool]]
        ] = {}

    # ── Reads ───────────────────────────────────────────────────────────

    async def get(self, path: str) -> dict[str, Any] | None:
        _, doc_id = split_document_path(path)
        data = self._documents.get(self._normalize(path))
        if data is None:
            return None
        snapshot = copy.deepcopy(data)
        snapshot["id"] = doc_id
        return snapshot

    async def list(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        collection = validate_collection_path(collection)
        snapshots: list[dict[str, Any]] = []
        for path, data in self._documents.items():
            parent, doc_id = split_document_path(path)
            if parent == collection:
                snapshot = copy.deepcopy(data)
                snapshot["id"] = doc_id
                snapshots.append(snapshot)
        return sort_documents(snapshots, order_by, descending)

    # ── Writes ──────────────────────────────────────────────────────────

    async def set(self, path: str, data: dict[str, Any]) -> None:
        path = self._normalize(path)
        self._documents[path] = {
            k: copy.deepcopy(v) for k, v in data.items() if v is not DELETE_FIELD
        }
        await self._notify(path)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        path = self._normalize(path)
        current = self._documents.get(path)
        if current is None:
            raise DocumentNotFoundError(path)
        for key, value in fields.items():
            if value is DELETE_FIELD:
                current.pop(key, None)
            else:
                current[key] = copy.deepcopy(value)
        await self._notify(path)

    async def delete(self, path: str) -> None:
        path = self._normalize(path)
        if self._documents.pop(path, None) is not None:
            await self._notify(path)

    # ── Subscriptions ───────────────────────────────────────────────────

    async def subscribe_document(self, path: str, callback: DocumentCallback) -> Subscription:
        path = self._normalize(path)
        self._document_subscribers.setdefault(path, []).append(callback)

        def _cancel() -> None:
            subscribers = self._document_subscribers.get(path, [])
            if callback in subscribers:
                subscribers.remove(callback)

        await notify_safely(callback, await self.get(path), path)
        return Subscription(_cancel)

    async def subscribe_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription:
        collection = validate_collection_path(collection)
        entry = (callback, order_by, descending)
        self._collection_subscribers.setdefault(collection, []).append(entry)

        def _cancel() -> None:
            subscribers = self._collection_subscribers.get(collection, [])
            if entry in subscribers:
                subscribers.remove(entry)

        await notify_safely(callback, await self.list(collection, order_by, descending), collection)
        return Subscription(_cancel)

    # ── Internals ───────────────────────────────────────────────────────

    @staticmethod
    def _normalize(path: str) -> str:
        parent, doc_id = split_document_path(path)
        return f"{parent}/{doc_id}"

    async def _notify(self, path: str) -> None:
        collection, _ = split_document_path(path)

        for callback in list(self._document_subscribers.get(path, [])):
            await notify_safely(callback, await self.get(path), path)

        for callback, order_by, descending in list(self._collection_subscribers.get(collection, [])):
            await notify_safely(
                callback, await self.list(collection, order_by, descending), collection
            )
