"""Customer sync coordinator -- fetch-latest, merge, diff, apply.

Reconciles a caller's desired customer state with the authoritative record:

1. Fetch the latest record with every nested collection expanded.
2. For each nested collection, take the caller's array if the update names
   it, otherwise the freshly fetched one. Fields the caller did not touch are
   never overwritten from a stale local copy.
3. Patch scalar fields (always stamps ``updatedAt``).
4. Diff checklist-like collections against the fetched state and apply the
   create/update/delete operations.
5. Diff meetings on their scalar fields only; diff the properties of meetings
   present on both sides separately. New meetings are created before their
   properties; removed meetings lose their properties first.

In the flattened layout (and for the history arrays, which are always
inline) the diff only decides *whether* a collection changed; a changed
collection is written as one inline array update.
A customer whose data still sits in legacy sub-records is migrated first, so
an inline write is never later overwritten by the layout migration.

Nothing here is transactional. A failure part way leaves earlier writes in
place; calling ``apply_update`` again is safe because it re-fetches and
re-diffs, so already-applied operations drop out.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic.alias_generators import to_snake

from src.estateflow.customers.diff import diff_collections, renumber_rounds
from src.estateflow.customers.exceptions import CustomerNotFoundError, MeetingNotFoundError
from src.estateflow.customers.ids import now_ms
from src.estateflow.customers.migration import LayoutMigrator
from src.estateflow.customers.photos import BlobCleaner, delete_photos_quietly
from src.estateflow.customers.repository import CustomerRepository
from src.estateflow.customers.schemas import (
    CHECKLISTS_FIELD,
    CONTRACT_HISTORY_FIELD,
    INLINE_ONLY_FIELDS,
    MEETINGS_FIELD,
    NESTED_FIELDS,
    PAYMENT_HISTORY_FIELD,
    CollectionChange,
    Customer,
    CustomerUpdate,
    Meeting,
    StorageLayout,
    SyncResult,
    is_migrated,
)

logger = structlog.get_logger(__name__)

PROPERTIES_CHANGE = "meetings.properties"


class SyncCoordinator:
    """Applies desired customer states through a CustomerRepository.

    Args:
        repository: Customer repository; its layout decides how nested
            collections are written.
        blob_cleaner: Optional photo cleaner invoked for deleted properties.
    """

    def __init__(
        self,
        repository: CustomerRepository,
        blob_cleaner: BlobCleaner | None = None,
    ) -> None:
        self._repo = repository
        self._blob_cleaner = blob_cleaner

    @property
    def repository(self) -> CustomerRepository:
        return self._repo

    def _inline(self, field: str) -> bool:
        return self._repo.layout is StorageLayout.FLATTENED or field in INLINE_ONLY_FIELDS

    # ── Entry points ────────────────────────────────────────────────────

    async def apply_update(
        self, customer_id: str, update: CustomerUpdate | dict[str, Any]
    ) -> SyncResult:
        """Reconcile a partial update against the latest stored customer.

        Args:
            customer_id: Customer to update.
            update: Scalar fields and/or full replacement arrays for
                ``checklists``, ``meetings``, ``contractHistory``,
                ``paymentHistory``.

        Returns:
            SyncResult with the scalar fields written and per-collection counts.

        Raises:
            CustomerNotFoundError: If the customer does not exist.
        """
        if not isinstance(update, CustomerUpdate):
            update = CustomerUpdate.model_validate(update)

        if self._repo.layout is StorageLayout.FLATTENED:
            await self._flatten_if_legacy(customer_id)

        latest = await self._repo.get_customer(customer_id)
        if latest is None:
            raise CustomerNotFoundError(customer_id)

        requested = update.nested_fields()
        desired = {
            field: requested.get(field, getattr(latest, to_snake(field)))
            for field in NESTED_FIELDS
        }

        scalars = update.scalar_fields()
        await self._repo.update_customer(customer_id, scalars)

        result = SyncResult(customer_id=customer_id, scalar_fields=sorted(scalars))
        for field in (CHECKLISTS_FIELD, CONTRACT_HISTORY_FIELD, PAYMENT_HISTORY_FIELD):
            result.changes.append(
                await self._sync_items(
                    customer_id, field, getattr(latest, to_snake(field)), desired[field]
                )
            )
        result.changes.extend(
            await self._sync_meetings(customer_id, latest.meetings, desired[MEETINGS_FIELD])
        )

        if self._repo.layout is StorageLayout.HIERARCHICAL and result.total_operations:
            # Sub-record writes do not touch the parent document; re-stamp it so
            # document subscribers receive the post-write tree.
            await self._repo.update_customer(customer_id, {})

        logger.info(
            "sync.apply_update_complete",
            customer_id=customer_id,
            scalar_fields=result.scalar_fields,
            operations=result.total_operations,
            touched=sorted(requested),
        )
        return result

    async def create_customer(self, customer: Customer) -> Customer:
        """Register a new customer with its initial collections."""
        return await self._repo.create_customer(customer)

    async def delete_customer(self, customer_id: str) -> None:
        """Cascade-delete a customer, then clean up its photos best-effort.

        Raises:
            CustomerNotFoundError: If the customer does not exist.
        """
        latest = await self._repo.get_customer(customer_id)
        if latest is None:
            raise CustomerNotFoundError(customer_id)

        await self._repo.delete_customer(customer_id)
        await delete_photos_quietly(
            self._blob_cleaner,
            [url for meeting in latest.meetings for prop in meeting.properties for url in prop.photos],
        )

    async def delete_meeting(self, customer_id: str, meeting_id: str) -> SyncResult:
        """Delete one meeting and renumber the remaining rounds 1..N.

        Raises:
            CustomerNotFoundError: If the customer does not exist.
            MeetingNotFoundError: If the meeting is not on the customer.
        """
        latest = await self._repo.get_customer(customer_id)
        if latest is None:
            raise CustomerNotFoundError(customer_id)
        if not any(m.id == meeting_id for m in latest.meetings):
            raise MeetingNotFoundError(customer_id, meeting_id)

        remaining = renumber_rounds([m for m in latest.meetings if m.id != meeting_id])
        return await self.apply_update(customer_id, CustomerUpdate(meetings=remaining))

    async def toggle_favorite(self, customer_id: str) -> bool:
        """Flip the favorite flag; returns the new value.

        Raises:
            CustomerNotFoundError: If the customer does not exist.
        """
        document = await self._repo.get_customer_document(customer_id)
        if document is None:
            raise CustomerNotFoundError(customer_id)

        is_favorite = not document.get("isFavorite", False)
        await self.apply_update(
            customer_id,
            CustomerUpdate(
                is_favorite=is_favorite,
                favorited_at=now_ms() if is_favorite else None,
            ),
        )
        return is_favorite

    async def _flatten_if_legacy(self, customer_id: str) -> None:
        document = await self._repo.get_customer_document(customer_id)
        if document is not None and not is_migrated(document):
            logger.info("sync.legacy_customer_migrated_on_write", customer_id=customer_id)
            await LayoutMigrator(self._repo).migrate_customer(customer_id)

    # ── Collection sync ─────────────────────────────────────────────────

    async def _sync_items(
        self, customer_id: str, field: str, current: list[Any], desired: list[Any]
    ) -> CollectionChange:
        diff = diff_collections(current, desired)
        change = CollectionChange(
            field=field,
            added=len(diff.added),
            updated=len(diff.updated),
            removed=len(diff.removed),
        )
        if diff.is_empty:
            return change

        if self._inline(field):
            await self._repo.update_customer(customer_id, {field: desired}, touch=False)
            return change

        for item in diff.added:
            await self._repo.create_checklist(customer_id, item)
        for item in diff.updated:
            await self._repo.update_checklist(customer_id, item)
        for item_id in diff.removed:
            await self._repo.delete_checklist(customer_id, item_id)
        return change

    async def _sync_meetings(
        self, customer_id: str, current: list[Meeting], desired: list[Meeting]
    ) -> list[CollectionChange]:
        meeting_diff = diff_collections(current, desired, exclude=("properties",))
        current_by_id = {m.id: m for m in current}

        property_diffs = {
            meeting.id: diff_collections(current_by_id[meeting.id].properties, meeting.properties)
            for meeting in desired
            if meeting.id in current_by_id
        }

        meetings_change = CollectionChange(
            field=MEETINGS_FIELD,
            added=len(meeting_diff.added),
            updated=len(meeting_diff.updated),
            removed=len(meeting_diff.removed),
        )
        properties_change = CollectionChange(
            field=PROPERTIES_CHANGE,
            added=sum(len(d.added) for d in property_diffs.values())
            + sum(len(m.properties) for m in meeting_diff.added),
            updated=sum(len(d.updated) for d in property_diffs.values()),
            removed=sum(len(d.removed) for d in property_diffs.values())
            + sum(len(current_by_id[mid].properties) for mid in meeting_diff.removed),
        )

        changed = not meeting_diff.is_empty or any(not d.is_empty for d in property_diffs.values())
        if not changed:
            return [meetings_change, properties_change]

        if self._inline(MEETINGS_FIELD):
            await self._repo.update_customer(customer_id, {MEETINGS_FIELD: desired}, touch=False)
        else:
            for meeting in meeting_diff.added:
                await self._repo.create_meeting(customer_id, meeting)
                for prop in meeting.properties:
                    await self._repo.create_property(customer_id, meeting.id, prop)

            for meeting in meeting_diff.updated:
                await self._repo.update_meeting(customer_id, meeting)

            for meeting_id, prop_diff in property_diffs.items():
                for prop in prop_diff.added:
                    await self._repo.create_property(customer_id, meeting_id, prop)
                for prop in prop_diff.updated:
                    await self._repo.update_property(customer_id, meeting_id, prop)
                for property_id in prop_diff.removed:
                    await self._repo.delete_property(customer_id, meeting_id, property_id)

            for meeting_id in meeting_diff.removed:
                for prop in current_by_id[meeting_id].properties:
                    await self._repo.delete_property(customer_id, meeting_id, prop.id)
                await self._repo.delete_meeting(customer_id, meeting_id)

        await delete_photos_quietly(
            self._blob_cleaner, self._orphaned_photos(current_by_id, desired)
        )
        return [meetings_change, properties_change]

    @staticmethod
    def _orphaned_photos(
        current_by_id: dict[str, Meeting], desired: list[Meeting]
    ) -> list[str]:
        """Photo URLs referenced before the write and nowhere after it."""
        kept = {url for meeting in desired for prop in meeting.properties for url in prop.photos}
        before = {
            url
            for meeting in current_by_id.values()
            for prop in meeting.properties
            for url in prop.photos
        }
        return sorted(before - kept)
