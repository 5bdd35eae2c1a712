"""Document store layer -- pluggable backends behind one async interface.

Provides the DocumentStore ABC with concrete implementations:
- InMemoryDocumentStore: process-local, used by tests and local development
- RedisDocumentStore: Redis hashes + pub/sub change feeds

``create_document_store()`` picks the backend named by ``STORE_BACKEND``.
"""

from __future__ import annotations

from src.estateflow.config import Settings, StoreBackend, get_settings
from src.estateflow.store.adapter import DELETE_FIELD, DocumentStore, Subscription
from src.estateflow.store.exceptions import DocumentNotFoundError, InvalidPathError, StoreError
from src.estateflow.store.memory import InMemoryDocumentStore

__all__ = [
    "DELETE_FIELD",
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "InvalidPathError",
    "StoreError",
    "Subscription",
    "create_document_store",
]


def create_document_store(settings: Settings | None = None) -> DocumentStore:
    """Build the document store configured for this process."""
    settings = settings or get_settings()
    if settings.STORE_BACKEND == StoreBackend.redis:
        from src.estateflow.core.redis import get_redis_pool
        from src.estateflow.store.redis import RedisDocumentStore

        return RedisDocumentStore(get_redis_pool(), prefix=settings.REDIS_KEY_PREFIX)
    return InMemoryDocumentStore()
