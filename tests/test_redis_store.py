"""Unit tests for the Redis document store.

Uses MagicMock/AsyncMock for the Redis client and its pipelines -- no real
Redis server.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, WatchError

from src.estateflow.store.adapter import DELETE_FIELD
from src.estateflow.store.exceptions import DocumentNotFoundError
from src.estateflow.store.redis import RedisDocumentStore


def _make_redis():
    """Mock async Redis client whose pipeline() yields one shared mock pipe."""
    redis = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, 1])
    pipe.watch = AsyncMock()
    pipe.exists = AsyncMock(return_value=1)
    redis.pipeline.return_value.__aenter__.return_value = pipe
    redis.pipeline.return_value.__aexit__.return_value = False
    redis.hgetall = AsyncMock()
    redis.smembers = AsyncMock()
    redis.publish = AsyncMock()
    return redis, pipe


def _encoded(**fields) -> dict[str, str]:
    return {k: json.dumps(v) for k, v in fields.items()}


class TestRedisDocumentStoreReads:
    async def test_get_decodes_hash_fields(self):
        redis, _ = _make_redis()
        redis.hgetall.return_value = _encoded(id="c1", name="Kim", checklists=[{"id": "k1"}])
        store = RedisDocumentStore(redis, prefix="t")

        doc = await store.get("customers/c1")

        redis.hgetall.assert_awaited_once_with("t:doc:customers/c1")
        assert doc == {"id": "c1", "name": "Kim", "checklists": [{"id": "k1"}]}

    async def test_get_missing_returns_none(self):
        redis, _ = _make_redis()
        redis.hgetall.return_value = {}
        store = RedisDocumentStore(redis, prefix="t")

        assert await store.get("customers/c1") is None

    async def test_get_retries_connection_errors(self):
        redis, _ = _make_redis()
        redis.hgetall.side_effect = [RedisConnectionError("reset"), _encoded(id="c1")]
        store = RedisDocumentStore(redis, prefix="t")

        assert await store.get("customers/c1") == {"id": "c1"}
        assert redis.hgetall.await_count == 2

    async def test_list_skips_stale_index_entries_and_sorts(self):
        redis, pipe = _make_redis()
        redis.smembers.return_value = {"b", "a", "c"}
        pipe.execute.return_value = [
            _encoded(id="a", createdAt=2),
            _encoded(id="b", createdAt=1),
            {},
        ]
        store = RedisDocumentStore(redis, prefix="t")

        docs = await store.list("customers", "createdAt")

        assert [d["id"] for d in docs] == ["b", "a"]
        redis.pipeline.assert_called_with(transaction=False)

    async def test_list_empty_collection_skips_pipeline(self):
        redis, _ = _make_redis()
        redis.smembers.return_value = set()
        store = RedisDocumentStore(redis, prefix="t")

        assert await store.list("customers") == []
        redis.pipeline.assert_not_called()


class TestRedisDocumentStoreWrites:
    async def test_set_replaces_hash_and_indexes(self):
        redis, pipe = _make_redis()
        store = RedisDocumentStore(redis, prefix="t")

        await store.set("customers/c1", {"name": "Kim"})

        pipe.delete.assert_called_once_with("t:doc:customers/c1")
        pipe.hset.assert_called_once_with(
            "t:doc:customers/c1", mapping={"name": '"Kim"', "id": '"c1"'}
        )
        pipe.sadd.assert_called_once_with("t:col:customers", "c1")
        redis.pipeline.assert_called_with(transaction=True)
        redis.publish.assert_any_await("t:chg:customers/c1", "changed")
        redis.publish.assert_any_await("t:chg:customers", "customers/c1")

    async def test_update_writes_only_named_fields(self):
        redis, pipe = _make_redis()
        store = RedisDocumentStore(redis, prefix="t")

        await store.update(
            "customers/c1", {"memo": "hello", "migratedAt": DELETE_FIELD, "id": "other"}
        )

        pipe.hset.assert_called_once_with("t:doc:customers/c1", mapping={"memo": '"hello"'})
        pipe.hdel.assert_called_once_with("t:doc:customers/c1", "migratedAt")
        pipe.delete.assert_not_called()
        pipe.watch.assert_awaited_once_with("t:doc:customers/c1")
        pipe.multi.assert_called_once()

    async def test_update_missing_document_raises(self):
        redis, pipe = _make_redis()
        pipe.exists.return_value = 0
        store = RedisDocumentStore(redis, prefix="t")

        with pytest.raises(DocumentNotFoundError):
            await store.update("customers/c1", {"memo": "x"})
        pipe.hset.assert_not_called()
        redis.publish.assert_not_awaited()

    async def test_update_rechecks_after_watch_conflict(self):
        redis, pipe = _make_redis()
        pipe.execute.side_effect = [WatchError("changed"), [1]]
        store = RedisDocumentStore(redis, prefix="t")

        await store.update("customers/c1", {"memo": "x"})

        assert pipe.watch.await_count == 2
        assert pipe.exists.await_count == 2
        assert pipe.execute.await_count == 2

    async def test_update_racing_a_delete_does_not_recreate_the_hash(self):
        redis, pipe = _make_redis()
        # The document exists when first checked, then a delete lands before EXEC.
        pipe.exists.side_effect = [1, 0]
        pipe.execute.side_effect = [WatchError("deleted")]
        store = RedisDocumentStore(redis, prefix="t")

        with pytest.raises(DocumentNotFoundError):
            await store.update("customers/c1", {"updatedAt": 5})

        assert pipe.execute.await_count == 1
        redis.publish.assert_not_awaited()

    async def test_delete_announces_only_when_something_was_removed(self):
        redis, pipe = _make_redis()
        store = RedisDocumentStore(redis, prefix="t")

        pipe.execute.return_value = [0, 0]
        await store.delete("customers/c1")
        redis.publish.assert_not_awaited()

        pipe.execute.return_value = [1, 1]
        await store.delete("customers/c1")
        pipe.srem.assert_called_with("t:col:customers", "c1")
        assert redis.publish.await_count == 2

    async def test_writes_are_not_retried(self):
        redis, pipe = _make_redis()
        pipe.execute.side_effect = RedisConnectionError("reset")
        store = RedisDocumentStore(redis, prefix="t")

        with pytest.raises(RedisConnectionError):
            await store.set("customers/c1", {"name": "Kim"})
        assert pipe.execute.await_count == 1
