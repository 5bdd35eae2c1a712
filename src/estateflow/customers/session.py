"""Two-tier customer cache: optimistic local edits over confirmed remote snapshots.

A CustomerSession tracks one customer for one client:

- ``confirmed``: the last snapshot delivered by the store subscription.
- ``pending``: the optimistic state set by ``apply_update`` before the write
  reaches the store.

``view`` is ``pending`` while one exists, otherwise ``confirmed``. Any remote
snapshot replaces ``confirmed`` and clears ``pending``. A snapshot emitted
before the write lands therefore briefly shows the pre-write value until the
write's own snapshot arrives.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic.alias_generators import to_camel

from src.estateflow.customers.exceptions import CustomerNotFoundError
from src.estateflow.customers.schemas import NESTED_FIELDS, Customer, CustomerUpdate, SyncResult
from src.estateflow.customers.sync import SyncCoordinator
from src.estateflow.store.adapter import Subscription, notify_safely

logger = structlog.get_logger(__name__)

ViewListener = Callable[[Customer | None], Awaitable[None]]


class CustomerSession:
    """Per-client view of one customer.

    Args:
        coordinator: Sync coordinator used for writes and subscriptions.
        customer_id: Customer tracked by this session.
    """

    def __init__(self, coordinator: SyncCoordinator, customer_id: str) -> None:
        self._coordinator = coordinator
        self.customer_id = customer_id
        self.confirmed: Customer | None = None
        self.pending: Customer | None = None
        self._subscription: Subscription | None = None
        self._listeners: list[ViewListener] = []

    @property
    def view(self) -> Customer | None:
        return self.pending if self.pending is not None else self.confirmed

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def add_listener(self, listener: ViewListener) -> Callable[[], None]:
        """Register a view listener; returns a function that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    async def open(self) -> None:
        """Subscribe to the customer; the initial snapshot is delivered before returning."""
        if self.is_open:
            return
        self._subscription = await self._coordinator.repository.subscribe_customer(
            self.customer_id, self._on_snapshot
        )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def apply_update(self, update: CustomerUpdate | dict[str, Any]) -> SyncResult:
        """Show the update immediately, then reconcile it through the coordinator.

        On failure the optimistic state is dropped and the error re-raised.

        Raises:
            CustomerNotFoundError: If there is no snapshot to apply the update to.
        """
        if not isinstance(update, CustomerUpdate):
            update = CustomerUpdate.model_validate(update)

        base = self.view
        if base is None:
            raise CustomerNotFoundError(self.customer_id)

        self.pending = base.model_copy(update=_optimistic_changes(update))
        await self._emit()

        try:
            return await self._coordinator.apply_update(self.customer_id, update)
        except Exception as exc:
            logger.warning(
                "session.optimistic_update_reverted",
                customer_id=self.customer_id,
                error=str(exc),
            )
            self.pending = None
            await self._emit()
            raise

    async def _on_snapshot(self, customer: Customer | None) -> None:
        self.confirmed = customer
        self.pending = None
        await self._emit()

    async def _emit(self) -> None:
        view = self.view
        for listener in list(self._listeners):
            await notify_safely(listener, view, f"session:{self.customer_id}")


def _optimistic_changes(update: CustomerUpdate) -> dict[str, Any]:
    """Attributes the update sets, keeping model instances intact."""
    changes: dict[str, Any] = {}
    for name in update.model_fields_set:
        value = getattr(update, name)
        if value is None and to_camel(name) in NESTED_FIELDS:
            continue
        changes[name] = value
    return changes
