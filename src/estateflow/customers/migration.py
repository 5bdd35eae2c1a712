"""Storage migrations for customer records.

LayoutMigrator moves nested collections between the two storage layouts:

- ``migrate_all()``: HIERARCHICAL -> FLATTENED. Reads the checklist, meeting,
  and per-meeting property sub-records, writes them as inline arrays plus a
  ``migratedAt`` marker. Legacy sub-records are left in place.
- ``rollback_all()``: FLATTENED -> HIERARCHICAL. Rewrites the sub-records
  from the inline arrays, then drops the arrays and the marker.

A record is MIGRATED exactly when it carries ``migratedAt``. The marker is
written in the same update as the arrays, so a record is never half
migrated: a failed record stays UNMIGRATED and is retried on the next run,
and migrated records are skipped. Records with empty collections migrate like
any other.

Batch runs catch failures per record, count them, and carry on.

``remap_field`` and ``upgrade_property_shape`` follow the same scan / patch /
count shape for single-field value changes and the legacy property layout.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from src.estateflow.customers.ids import now_ms
from src.estateflow.customers.repository import CustomerRepository
from src.estateflow.customers.schemas import (
    CHECKLISTS_FIELD,
    MEETINGS_FIELD,
    MIGRATION_MARKER,
    ChecklistItem,
    CustomerStage,
    Meeting,
    MigrationReport,
    is_migrated,
)
from src.estateflow.store.adapter import DELETE_FIELD

logger = structlog.get_logger(__name__)

# Obsolete stage values and the stage each one was merged into.
STAGE_REMAP: dict[str, str] = {
    CustomerStage.MEETING_DONE.value: CustomerStage.MEETING_IN_PROGRESS.value,
}


def upgrade_legacy_property(prop: dict[str, Any]) -> dict[str, Any] | None:
    """Convert a legacy property (free-text ``description``, no ``roomName``).

    Returns:
        The upgraded property, or None if it is already in the current shape.
    """
    if "description" not in prop or "roomName" in prop:
        return None
    upgraded = {
        "id": prop["id"],
        "rawInput": prop.get("rawInput") or prop.get("description") or "",
        "roomName": "",
        "jibun": "",
        "agency": "",
        "agencyPhone": "",
        "photos": prop.get("photos") or [],
    }
    if prop.get("description") is not None:
        upgraded["parsedText"] = prop["description"]
    return upgraded


class LayoutMigrator:
    """Batch migrations over every customer in a repository.

    Args:
        repository: Customer repository; its own layout setting is ignored,
            each operation names the layouts it reads and writes.
    """

    def __init__(self, repository: CustomerRepository) -> None:
        self._repo = repository

    async def _run(
        self,
        name: str,
        should_process: Callable[[dict[str, Any]], bool],
        process: Callable[[dict[str, Any]], Awaitable[bool]],
    ) -> MigrationReport:
        """Scan every customer document, process the eligible ones, count outcomes.

        ``process`` returns False when the record needed no change.
        """
        documents = await self._repo.list_customer_documents()
        report = MigrationReport(total=len(documents))

        for document in documents:
            customer_id = document["id"]
            if not should_process(document):
                report.skipped += 1
                continue
            try:
                if await process(document):
                    report.migrated += 1
                else:
                    report.skipped += 1
            except Exception as exc:
                report.failed += 1
                report.errors.append(f"{customer_id}: {exc}")
                logger.error(f"migration.{name}_record_failed", customer_id=customer_id, error=str(exc))

        logger.info(
            f"migration.{name}_complete",
            total=report.total,
            migrated=report.migrated,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    # ── Layout migration ────────────────────────────────────────────────

    async def migrate_all(self) -> MigrationReport:
        """Flatten every unmigrated customer; migrated ones are skipped."""
        return await self._run(
            "layout",
            lambda doc: not is_migrated(doc),
            lambda doc: self.migrate_customer(doc["id"]),
        )

    async def migrate_customer(self, customer_id: str) -> bool:
        """Flatten one customer's sub-records into inline arrays plus the marker."""
        checklists, meetings = await self._repo.load_subcollections(customer_id)
        await self._repo.update_customer(
            customer_id,
            {
                CHECKLISTS_FIELD: [ChecklistItem.model_validate(c) for c in checklists],
                MEETINGS_FIELD: [Meeting.model_validate(m) for m in meetings],
                MIGRATION_MARKER: now_ms(),
            },
            touch=False,
        )
        logger.info(
            "migration.customer_flattened",
            customer_id=customer_id,
            checklists=len(checklists),
            meetings=len(meetings),
        )
        return True

    async def rollback_all(self) -> MigrationReport:
        """Re-expand every migrated customer into sub-records."""
        return await self._run(
            "rollback",
            is_migrated,
            self.rollback_customer,
        )

    async def rollback_customer(self, document: dict[str, Any]) -> bool:
        """Rewrite sub-records from the inline arrays, then drop arrays and marker.

        Stale sub-records are removed first. The marker goes last, so a record
        that fails part way stays MIGRATED with its arrays intact.
        """
        customer_id = document["id"]
        checklists = [ChecklistItem.model_validate(c) for c in document.get(CHECKLISTS_FIELD) or []]
        meetings = [Meeting.model_validate(m) for m in document.get(MEETINGS_FIELD) or []]

        stale_checklists, stale_meetings = await self._repo.load_subcollections(customer_id)
        for item in stale_checklists:
            await self._repo.delete_checklist(customer_id, item["id"])
        for meeting in stale_meetings:
            for prop in meeting["properties"]:
                await self._repo.delete_property(customer_id, meeting["id"], prop["id"])
            await self._repo.delete_meeting(customer_id, meeting["id"])

        for item in checklists:
            await self._repo.create_checklist(customer_id, item)
        for meeting in meetings:
            await self._repo.create_meeting(customer_id, meeting)
            for prop in meeting.properties:
                await self._repo.create_property(customer_id, meeting.id, prop)

        await self._repo.update_customer(
            customer_id,
            {
                CHECKLISTS_FIELD: DELETE_FIELD,
                MEETINGS_FIELD: DELETE_FIELD,
                MIGRATION_MARKER: DELETE_FIELD,
            },
            touch=False,
        )
        logger.info("migration.customer_expanded", customer_id=customer_id, meetings=len(meetings))
        return True

    # ── Field remapping ─────────────────────────────────────────────────

    async def remap_field(self, field: str, mapping: dict[str, Any]) -> MigrationReport:
        """Replace obsolete values of one scalar field on every customer.

        Args:
            field: Stored (camelCase) field name.
            mapping: Old value -> new value. Records holding other values are skipped.
        """

        async def _patch(document: dict[str, Any]) -> bool:
            await self._repo.update_customer(document["id"], {field: mapping[document[field]]})
            return True

        return await self._run(
            f"remap_{field}",
            lambda doc: doc.get(field) in mapping,
            _patch,
        )

    async def remap_stages(self) -> MigrationReport:
        """Merge obsolete customer stages into their replacements."""
        return await self.remap_field("stage", STAGE_REMAP)

    # ── Property shape upgrade ──────────────────────────────────────────

    async def upgrade_property_shape(self) -> MigrationReport:
        """Upgrade legacy property records in whichever layout each customer uses."""
        return await self._run("property_shape", lambda doc: True, self._upgrade_customer_properties)

    async def _upgrade_customer_properties(self, document: dict[str, Any]) -> bool:
        customer_id = document["id"]

        if is_migrated(document):
            meetings = document.get(MEETINGS_FIELD) or []
            changed = False
            for meeting in meetings:
                properties = meeting.get("properties") or []
                for index, prop in enumerate(properties):
                    upgraded = upgrade_legacy_property(prop)
                    if upgraded is not None:
                        properties[index] = upgraded
                        changed = True
            if changed:
                await self._repo.update_customer(customer_id, {MEETINGS_FIELD: meetings})
            return changed

        _, meetings = await self._repo.load_subcollections(customer_id)
        changed = False
        for meeting in meetings:
            for prop in meeting["properties"]:
                upgraded = upgrade_legacy_property(prop)
                if upgraded is not None:
                    await self._repo.store.set(
                        f"{self._repo.properties_path(customer_id, meeting['id'])}/{prop['id']}",
                        upgraded,
                    )
                    changed = True
        return changed

