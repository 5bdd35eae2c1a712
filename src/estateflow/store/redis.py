"""Redis document store -- one hash per document, pub/sub for change feeds.

Key patterns (all under the configured prefix):
- ``{prefix}:doc:{path}``: hash, one field per top-level document field,
  each value JSON-encoded. The ``id`` field is always written so a stored
  document is never an empty hash.
- ``{prefix}:col:{collection}``: set of child document ids.
- ``{prefix}:chg:{path}``: pub/sub channel announcing a document change;
  the parent collection path is announced on its own channel.

Partial updates touch only the named hash fields, so two writers patching
different fields of one document never overwrite each other.

Idempotent reads retry on connection errors with exponential backoff; writes
are not retried and surface the error to the caller.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError, WatchError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

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

_read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
    retry=retry_if_exception_type(RedisConnectionError),
    reraise=True,
)


class RedisDocumentStore(DocumentStore):
    """Document store backed by Redis hashes.

    Args:
        redis: Async Redis client created with ``decode_responses=True``.
        prefix: Namespace prepended to every key and channel.
    """

    def __init__(self, redis: aioredis.Redis, prefix: str = "estateflow") -> None:
        self._redis = redis
        self._prefix = prefix
        self._listeners: set[asyncio.Task[None]] = set()

    def _doc_key(self, path: str) -> str:
        return f"{self._prefix}:doc:{path}"

    def _collection_key(self, collection: str) -> str:
        return f"{self._prefix}:col:{collection}"

    def _channel(self, path: str) -> str:
        return f"{self._prefix}:chg:{path}"

    # ── Reads ───────────────────────────────────────────────────────────

    @_read_retry
    async def get(self, path: str) -> dict[str, Any] | None:
        collection, doc_id = split_document_path(path)
        raw = await self._redis.hgetall(self._doc_key(f"{collection}/{doc_id}"))
        if not raw:
            return None
        snapshot = {field: json.loads(value) for field, value in raw.items()}
        snapshot["id"] = doc_id
        return snapshot

    @_read_retry
    async def list(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        collection = validate_collection_path(collection)
        doc_ids = sorted(await self._redis.smembers(self._collection_key(collection)))
        if not doc_ids:
            return []

        async with self._redis.pipeline(transaction=False) as pipe:
            for doc_id in doc_ids:
                pipe.hgetall(self._doc_key(f"{collection}/{doc_id}"))
            rows = await pipe.execute()

        snapshots: list[dict[str, Any]] = []
        for doc_id, raw in zip(doc_ids, rows):
            if not raw:
                continue  # Index entry left behind by an interrupted delete
            snapshot = {field: json.loads(value) for field, value in raw.items()}
            snapshot["id"] = doc_id
            snapshots.append(snapshot)
        return sort_documents(snapshots, order_by, descending)

    # ── Writes ──────────────────────────────────────────────────────────

    async def set(self, path: str, data: dict[str, Any]) -> None:
        collection, doc_id = split_document_path(path)
        path = f"{collection}/{doc_id}"
        mapping = {
            field: json.dumps(value)
            for field, value in data.items()
            if value is not DELETE_FIELD
        }
        mapping["id"] = json.dumps(doc_id)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._doc_key(path))
            pipe.hset(self._doc_key(path), mapping=mapping)
            pipe.sadd(self._collection_key(collection), doc_id)
            await pipe.execute()
        await self._announce(path, collection)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Patch named hash fields of an existing document.

        The existence check and the patch run under ``WATCH`` so a concurrent
        delete can never leave a partial hash behind. A watch conflict re-runs
        the check; it is not a retry of a failed write.
        """
        collection, doc_id = split_document_path(path)
        path = f"{collection}/{doc_id}"
        key = self._doc_key(path)

        removed = [field for field, value in fields.items() if value is DELETE_FIELD and field != "id"]
        mapping = {
            field: json.dumps(value)
            for field, value in fields.items()
            if value is not DELETE_FIELD and field != "id"
        }

        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    if not await pipe.exists(key):
                        raise DocumentNotFoundError(path)
                    pipe.multi()
                    if mapping:
                        pipe.hset(key, mapping=mapping)
                    if removed:
                        pipe.hdel(key, *removed)
                    await pipe.execute()
                    break
                except WatchError:
                    logger.debug("redis_store.update_conflict", path=path)
        await self._announce(path, collection)

    async def delete(self, path: str) -> None:
        collection, doc_id = split_document_path(path)
        path = f"{collection}/{doc_id}"

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._doc_key(path))
            pipe.srem(self._collection_key(collection), doc_id)
            deleted, _ = await pipe.execute()
        if deleted:
            await self._announce(path, collection)

    async def _announce(self, path: str, collection: str) -> None:
        await self._redis.publish(self._channel(path), "changed")
        await self._redis.publish(self._channel(collection), path)

    # ── Subscriptions ───────────────────────────────────────────────────

    async def subscribe_document(self, path: str, callback: DocumentCallback) -> Subscription:
        collection, doc_id = split_document_path(path)
        path = f"{collection}/{doc_id}"

        async def _snapshot() -> None:
            await notify_safely(callback, await self.get(path), path)

        return await self._listen(self._channel(path), _snapshot)

    async def subscribe_collection(
        self,
        collection: str,
        callback: CollectionCallback,
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription:
        collection = validate_collection_path(collection)

        async def _snapshot() -> None:
            await notify_safely(
                callback, await self.list(collection, order_by, descending), collection
            )

        return await self._listen(self._channel(collection), _snapshot)

    async def _listen(self, channel: str, deliver: Any) -> Subscription:
        """Subscribe to a channel, deliver the initial snapshot, then re-fetch per message."""
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        await deliver()

        async def _pump() -> None:
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await deliver()
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.error("redis_store.listener_failed", channel=channel, error=str(exc))
            finally:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()

        task = asyncio.create_task(_pump())
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)

        logger.debug("redis_store.subscribed", channel=channel)
        return Subscription(task.cancel)

    async def close(self) -> None:
        """Stop every listener task started by this store."""
        tasks = list(self._listeners)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
