"""Shared fixtures for the customer sync tests.

Provides:
- In-memory document store, plus a variant that fails chosen writes
- Customer repositories for both storage layouts
- A sync coordinator parametrized over both layouts
"""

from __future__ import annotations

from typing import Any

import pytest

from src.estateflow.customers.repository import CustomerRepository
from src.estateflow.customers.schemas import StorageLayout
from src.estateflow.customers.sync import SyncCoordinator
from src.estateflow.store.exceptions import StoreError
from src.estateflow.store.memory import InMemoryDocumentStore


class FlakyDocumentStore(InMemoryDocumentStore):
    """In-memory store that fails writes to chosen paths a set number of times.

    Also records every write as ``(operation, path)`` in ``writes``.
    """

    def __init__(self) -> None:
        super().__init__()
        self.failures: dict[str, int] = {}
        self.writes: list[tuple[str, str]] = []

    def fail(self, path: str, times: int = 1) -> None:
        self.failures[path] = times

    def _maybe_fail(self, path: str) -> None:
        remaining = self.failures.get(path, 0)
        if remaining > 0:
            self.failures[path] = remaining - 1
            raise StoreError(f"injected failure for {path}")

    async def set(self, path: str, data: dict[str, Any]) -> None:
        self._maybe_fail(path)
        self.writes.append(("set", path))
        await super().set(path, data)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        self._maybe_fail(path)
        self.writes.append(("update", path))
        await super().update(path, fields)

    async def delete(self, path: str) -> None:
        self._maybe_fail(path)
        self.writes.append(("delete", path))
        await super().delete(path)


@pytest.fixture
def store() -> FlakyDocumentStore:
    return FlakyDocumentStore()


@pytest.fixture
def flat_repo(store) -> CustomerRepository:
    return CustomerRepository(store, layout=StorageLayout.FLATTENED)


@pytest.fixture
def tree_repo(store) -> CustomerRepository:
    return CustomerRepository(store, layout=StorageLayout.HIERARCHICAL)


@pytest.fixture(params=[StorageLayout.FLATTENED, StorageLayout.HIERARCHICAL], ids=lambda l: l.value)
def repo(request, store) -> CustomerRepository:
    """Customer repository in each storage layout."""
    return CustomerRepository(store, layout=request.param)


@pytest.fixture
def coordinator(repo) -> SyncCoordinator:
    return SyncCoordinator(repo)
