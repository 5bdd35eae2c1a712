"""Customer repository -- customer-level CRUD and subscriptions over a DocumentStore.

Provides CustomerRepository, the adapter the sync coordinator, migration
engine, and HTTP layer all go through. Two storage layouts are supported:

- HIERARCHICAL (legacy): checklist items and meetings are sub-records of the
  customer document, properties are sub-records of their meeting::

      customers/{id}
      customers/{id}/checklists/{item_id}
      customers/{id}/meetings/{meeting_id}
      customers/{id}/meetings/{meeting_id}/properties/{property_id}

- FLATTENED: checklists and meetings (with properties) are inline arrays on
  the customer document, alongside a ``migratedAt`` marker. A record without
  the marker is read from its sub-records until it is migrated.

Contract/payment history arrays are inline in both layouts. The sub-record
primitives stay available in either layout because the migration engine
reads one layout and writes the other.

Single-entity operations log failures and re-raise; there is no retry here.
"""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from src.estateflow.customers.diff import to_plain
from src.estateflow.customers.ids import now_ms
from src.estateflow.customers.schemas import (
    CHECKLISTS_FIELD,
    MEETINGS_FIELD,
    ChecklistItem,
    Customer,
    Meeting,
    Property,
    StorageLayout,
    is_migrated,
)
from src.estateflow.store.adapter import DocumentStore, Subscription

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def _log_failures(event: str) -> Callable[[F], F]:
    """Log a failed store operation with its arguments, then re-raise."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: CustomerRepository, *args: Any, **kwargs: Any) -> Any:
            try:
                return await func(self, *args, **kwargs)
            except Exception as exc:
                logger.error(
                    event,
                    ids=[a if isinstance(a, str) else getattr(a, "id", None) for a in args],
                    error=str(exc),
                )
                raise

        return wrapper  # type: ignore[return-value]

    return decorator


class CustomerRepository:
    """Customer-level adapter over a path-addressed document store.

    Args:
        store: DocumentStore backend.
        layout: Layout used for reads and by the sync coordinator.
        collection: Root collection holding customer documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        layout: StorageLayout = StorageLayout.FLATTENED,
        collection: str = "customers",
    ) -> None:
        self._store = store
        self.layout = StorageLayout(layout)
        self._collection = collection

    @property
    def store(self) -> DocumentStore:
        return self._store

    # ── Paths ───────────────────────────────────────────────────────────

    def customer_path(self, customer_id: str) -> str:
        return f"{self._collection}/{customer_id}"

    def checklists_path(self, customer_id: str) -> str:
        return f"{self.customer_path(customer_id)}/{CHECKLISTS_FIELD}"

    def meetings_path(self, customer_id: str) -> str:
        return f"{self.customer_path(customer_id)}/{MEETINGS_FIELD}"

    def properties_path(self, customer_id: str, meeting_id: str) -> str:
        return f"{self.meetings_path(customer_id)}/{meeting_id}/properties"

    # ── Customer reads ──────────────────────────────────────────────────

    @_log_failures("repository.get_customer_failed")
    async def get_customer(
        self, customer_id: str, layout: StorageLayout | None = None
    ) -> Customer | None:
        """Fetch a customer with every nested collection expanded.

        Args:
            customer_id: Customer id.
            layout: Layout to read; defaults to the repository layout.
        """
        document = await self._store.get(self.customer_path(customer_id))
        if document is None:
            return None
        return await self._expand(document, layout or self.layout)

    async def get_customer_document(self, customer_id: str) -> dict[str, Any] | None:
        """Raw stored customer document, without sub-record expansion."""
        return await self._store.get(self.customer_path(customer_id))

    @_log_failures("repository.list_customers_failed")
    async def list_customers(
        self, order_by: str = "createdAt", descending: bool = True
    ) -> list[Customer]:
        """List customers without sub-record expansion (inline arrays only)."""
        documents = await self._store.list(self._collection, order_by, descending)
        return [Customer.model_validate(doc) for doc in documents]

    async def list_customer_documents(self) -> list[dict[str, Any]]:
        """Raw stored customer documents, oldest first."""
        return await self._store.list(self._collection, "createdAt")

    async def load_subcollections(
        self, customer_id: str
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Read legacy sub-records: ``(checklists, meetings)`` with properties nested."""
        checklists = await self._store.list(self.checklists_path(customer_id))
        meetings = await self._store.list(self.meetings_path(customer_id), "createdAt")
        for meeting in meetings:
            meeting["properties"] = await self._store.list(
                self.properties_path(customer_id, meeting["id"])
            )
        return checklists, meetings

    async def _expand(self, document: dict[str, Any], layout: StorageLayout) -> Customer:
        # A record not yet migrated still keeps its nested data in sub-records.
        if layout is StorageLayout.HIERARCHICAL or not is_migrated(document):
            checklists, meetings = await self.load_subcollections(document["id"])
            document[CHECKLISTS_FIELD] = checklists
            document[MEETINGS_FIELD] = meetings
        return Customer.model_validate(document)

    # ── Customer writes ─────────────────────────────────────────────────

    @_log_failures("repository.create_customer_failed")
    async def create_customer(self, customer: Customer) -> Customer:
        """Create a customer and its initial nested collections.

        Customers created in the flattened layout carry the migration marker
        from birth, so the layout migration never touches them.
        """
        now = now_ms()
        customer = customer.model_copy(
            update={"created_at": customer.created_at or now, "updated_at": now}
        )

        if self.layout is StorageLayout.FLATTENED:
            customer = customer.model_copy(update={"migrated_at": now})
            await self._store.set(self.customer_path(customer.id), customer.to_document())
        else:
            await self._store.set(self.customer_path(customer.id), customer.scalar_document())
            for item in customer.checklists:
                await self.create_checklist(customer.id, item)
            for meeting in customer.meetings:
                await self.create_meeting(customer.id, meeting)
                for prop in meeting.properties:
                    await self.create_property(customer.id, meeting.id, prop)

        logger.info("repository.customer_created", customer_id=customer.id, layout=self.layout.value)
        return customer

    @_log_failures("repository.update_customer_failed")
    async def update_customer(
        self, customer_id: str, fields: dict[str, Any], touch: bool = True
    ) -> None:
        """Patch top-level fields of the customer document.

        Values may be models or lists of models; they are stored serialized.
        ``touch`` stamps ``updatedAt``.
        """
        patch = {name: self._serialize(value) for name, value in fields.items()}
        if touch:
            patch["updatedAt"] = now_ms()
        await self._store.update(self.customer_path(customer_id), patch)

    @_log_failures("repository.delete_customer_failed")
    async def delete_customer(self, customer_id: str) -> None:
        """Delete a customer and every sub-record beneath it."""
        for item in await self._store.list(self.checklists_path(customer_id)):
            await self.delete_checklist(customer_id, item["id"])
        for meeting in await self._store.list(self.meetings_path(customer_id)):
            for prop in await self._store.list(self.properties_path(customer_id, meeting["id"])):
                await self.delete_property(customer_id, meeting["id"], prop["id"])
            await self.delete_meeting(customer_id, meeting["id"])
        await self._store.delete(self.customer_path(customer_id))
        logger.info("repository.customer_deleted", customer_id=customer_id)

    # ── Checklist sub-records ───────────────────────────────────────────

    @_log_failures("repository.create_checklist_failed")
    async def create_checklist(self, customer_id: str, item: ChecklistItem) -> None:
        await self._store.set(f"{self.checklists_path(customer_id)}/{item.id}", item.to_document())

    @_log_failures("repository.update_checklist_failed")
    async def update_checklist(self, customer_id: str, item: ChecklistItem) -> None:
        await self._store.set(f"{self.checklists_path(customer_id)}/{item.id}", item.to_document())

    @_log_failures("repository.delete_checklist_failed")
    async def delete_checklist(self, customer_id: str, item_id: str) -> None:
        await self._store.delete(f"{self.checklists_path(customer_id)}/{item_id}")

    # ── Meeting sub-records (properties are written separately) ────────

    @_log_failures("repository.create_meeting_failed")
    async def create_meeting(self, customer_id: str, meeting: Meeting) -> None:
        await self._store.set(
            f"{self.meetings_path(customer_id)}/{meeting.id}", self._meeting_document(meeting)
        )

    @_log_failures("repository.update_meeting_failed")
    async def update_meeting(self, customer_id: str, meeting: Meeting) -> None:
        await self._store.set(
            f"{self.meetings_path(customer_id)}/{meeting.id}", self._meeting_document(meeting)
        )

    @_log_failures("repository.delete_meeting_failed")
    async def delete_meeting(self, customer_id: str, meeting_id: str) -> None:
        await self._store.delete(f"{self.meetings_path(customer_id)}/{meeting_id}")

    # ── Property sub-records ────────────────────────────────────────────

    @_log_failures("repository.create_property_failed")
    async def create_property(self, customer_id: str, meeting_id: str, prop: Property) -> None:
        await self._store.set(
            f"{self.properties_path(customer_id, meeting_id)}/{prop.id}", prop.to_document()
        )

    @_log_failures("repository.update_property_failed")
    async def update_property(self, customer_id: str, meeting_id: str, prop: Property) -> None:
        await self._store.set(
            f"{self.properties_path(customer_id, meeting_id)}/{prop.id}", prop.to_document()
        )

    @_log_failures("repository.delete_property_failed")
    async def delete_property(self, customer_id: str, meeting_id: str, property_id: str) -> None:
        await self._store.delete(f"{self.properties_path(customer_id, meeting_id)}/{property_id}")

    # ── Subscriptions ───────────────────────────────────────────────────

    async def subscribe_customer(
        self,
        customer_id: str,
        callback: Callable[[Customer | None], Awaitable[None]],
    ) -> Subscription:
        """Push the fully expanded customer on every change of its document."""

        async def _on_snapshot(document: dict[str, Any] | None) -> None:
            if document is None:
                await callback(None)
                return
            await callback(await self._expand(document, self.layout))

        return await self._store.subscribe_document(self.customer_path(customer_id), _on_snapshot)

    async def subscribe_customers(
        self, callback: Callable[[list[Customer]], Awaitable[None]]
    ) -> Subscription:
        """Push the customer list (newest first, no sub-record expansion) on every change."""

        async def _on_snapshot(documents: list[dict[str, Any]]) -> None:
            await callback([Customer.model_validate(doc) for doc in documents])

        return await self._store.subscribe_collection(
            self._collection, _on_snapshot, order_by="createdAt", descending=True
        )

    # ── Helpers ─────────────────────────────────────────────────────────

    @staticmethod
    def _meeting_document(meeting: Meeting) -> dict[str, Any]:
        data = meeting.to_document()
        data.pop("properties", None)
        return data

    @staticmethod
    def _serialize(value: Any) -> Any:
        if isinstance(value, list):
            return [to_plain(item) if not isinstance(item, (str, int, float)) else item for item in value]
        if hasattr(value, "model_dump"):
            return to_plain(value)
        return value
